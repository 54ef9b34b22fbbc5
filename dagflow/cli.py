"""
Command-line interface for dagflow.

Usage:
    dagflow validate workflow.json
    dagflow run workflow.json --input '{"x": 5}'
    dagflow run workflow.json --input-file input.json --log-dir ./runs
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from dagflow.capabilities import Capabilities
from dagflow.config import EngineConfig
from dagflow.errors import WorkflowValidationError
from dagflow.graph.edge import WorkflowSpec
from dagflow.graph.executor import WorkflowExecutor
from dagflow.graph.validator import validate_workflow
from dagflow.llm.litellm import LiteLLMProvider
from dagflow.observability.logging import configure_logging
from dagflow.runtime.run_store import RunStore
from dagflow.schemas.run import RunStatus


def _load_workflow(path: str) -> WorkflowSpec:
    return WorkflowSpec.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _load_input(args: argparse.Namespace) -> dict[str, Any]:
    if args.input_file:
        raw = Path(args.input_file).read_text(encoding="utf-8")
    else:
        raw = args.input or "{}"
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Input must be a JSON object")
    return data


def cmd_validate(args: argparse.Namespace) -> int:
    try:
        workflow = _load_workflow(args.workflow)
    except (OSError, ValidationError) as e:
        print(f"Could not load {args.workflow}: {e}", file=sys.stderr)
        return 1

    result = validate_workflow(workflow)
    if args.json:
        print(
            json.dumps(
                {
                    "valid": result.success,
                    "errors": [str(e) for e in result.errors],
                    "warnings": result.warnings,
                },
                indent=2,
            )
        )
    else:
        for error in result.errors:
            print(f"✗ {error}")
        for warning in result.warnings:
            print(f"⚠ {warning}")
        if result.success:
            counts = f"{len(workflow.nodes)} nodes, {len(workflow.edges)} edges"
            print(f"✓ {workflow.id} is valid ({counts})")
    return 0 if result.success else 1


async def _run(args: argparse.Namespace, workflow: WorkflowSpec, input_data: dict) -> int:
    config = EngineConfig()
    if args.max_concurrency:
        config.max_concurrency = args.max_concurrency
    if args.model:
        config.default_model = args.model

    capabilities = Capabilities(llm=LiteLLMProvider())
    executor = WorkflowExecutor(capabilities, config=config, run_store=RunStore(args.log_dir))
    try:
        run = await executor.execute(workflow, input_data)
    finally:
        await capabilities.aclose()

    print(run.summary().model_dump_json(indent=2))
    return 0 if run.status in (RunStatus.SUCCEEDED, RunStatus.PARTIAL) else 1


def cmd_run(args: argparse.Namespace) -> int:
    try:
        workflow = _load_workflow(args.workflow)
        input_data = _load_input(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(_run(args, workflow, input_data))
    except WorkflowValidationError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    validate_parser = subparsers.add_parser("validate", help="Check a workflow graph")
    validate_parser.add_argument("workflow", help="Path to a workflow JSON file")
    validate_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    validate_parser.set_defaults(func=cmd_validate)

    run_parser = subparsers.add_parser("run", help="Execute a workflow once")
    run_parser.add_argument("workflow", help="Path to a workflow JSON file")
    run_parser.add_argument("--input", help="Run input as a JSON object")
    run_parser.add_argument("--input-file", help="Read the run input from a JSON file")
    run_parser.add_argument("--model", help="Default model for LLM nodes")
    run_parser.add_argument("--max-concurrency", type=int, help="Max nodes running at once")
    run_parser.add_argument("--log-dir", help="Mirror node results and the run to this directory")
    run_parser.set_defaults(func=cmd_run)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="dagflow",
        description="dagflow - Validate and run DAG workflows",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument(
        "--log-format", default="auto", choices=["auto", "json", "human"], help="Log output format"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
