"""
Node Executors - per-kind execution contracts.

Each executor receives the node, its configuration with every reference
already resolved, and a NodeContext carrying the shared capabilities. It
returns a NodeOutcome or raises a DagflowError subclass; the scheduler turns
either into a NodeResult.

Dispatch goes through the NODE_EXECUTORS lookup table keyed by NodeKind.
"""

import copy
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from jsonschema import Draft7Validator

from dagflow.capabilities import Capabilities
from dagflow.config import EngineConfig
from dagflow.errors import (
    ConstructionError,
    HttpTransportError,
    InvalidInput,
    ProviderError,
)
from dagflow.graph.condition import select_branch
from dagflow.graph.node import (
    ConditionNode,
    HttpNode,
    InputNode,
    LLMNode,
    NodeKind,
    NodeSpec,
    OutputNode,
    TemplateNode,
    ToolNode,
)
from dagflow.graph.variables import resolve_value
from dagflow.llm.litellm import parse_json_content
from dagflow.runner.http_client import SUPPORTED_METHODS
from dagflow.schemas.run import NodeResult, TokenUsage

logger = logging.getLogger(__name__)


@dataclass
class NodeContext:
    """Everything a node may touch besides its own configuration."""

    run_id: str
    capabilities: Capabilities
    config: EngineConfig = field(default_factory=EngineConfig)
    run_input: dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeOutcome:
    """What a successful node produced."""

    output: dict[str, Any] | None = None
    branch: str | None = None
    token_usage: TokenUsage | None = None


NodeExecutorFn = Callable[[Any, dict[str, Any], NodeContext], Awaitable[NodeOutcome]]


def _schema_errors(instance: Any, schema: dict[str, Any]) -> list[str]:
    validator = Draft7Validator(schema)
    return [
        f"{'.'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in sorted(validator.iter_errors(instance), key=lambda e: list(e.path))
    ]


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


async def execute_input(
    node: InputNode, resolved: dict[str, Any], ctx: NodeContext
) -> NodeOutcome:
    data = copy.deepcopy(ctx.run_input)
    if ctx.config.validate_input and node.output_schema:
        errors = _schema_errors(data, node.output_schema)
        if errors:
            raise InvalidInput(f"Run input does not match the schema: {'; '.join(errors)}")
    return NodeOutcome(output=data)


async def execute_template(
    node: TemplateNode, resolved: dict[str, Any], ctx: NodeContext
) -> NodeOutcome:
    return NodeOutcome(output={"template": resolved["template"]})


def _build_request(resolved: dict[str, Any]) -> tuple[str, str, dict[str, str], dict[str, str]]:
    url = str(resolved.get("url") or "").strip()
    if not url:
        raise ConstructionError("URL is empty")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConstructionError(f"Invalid URL: '{url}'")

    method = str(resolved.get("method") or "GET").strip().upper()
    if method not in SUPPORTED_METHODS:
        raise ConstructionError(f"Unsupported HTTP method: '{method}'")

    headers: dict[str, str] = {}
    for name, value in (resolved.get("headers") or {}).items():
        name = str(name).strip()
        if not name or any(c in name for c in " :\r\n"):
            raise ConstructionError(f"Invalid header name: '{name}'")
        if "\r" in value or "\n" in value:
            raise ConstructionError(f"Header '{name}' contains a line break")
        headers[name] = value

    query = {str(k): str(v) for k, v in (resolved.get("query") or {}).items()}
    return method, url, headers, query


async def execute_http(node: HttpNode, resolved: dict[str, Any], ctx: NodeContext) -> NodeOutcome:
    method, url, headers, query = _build_request(resolved)
    body = resolved.get("body")
    timeout = node.request_timeout_seconds or ctx.config.http_timeout_seconds

    started = time.perf_counter()
    try:
        response = await ctx.capabilities.http.request(
            method, url, headers=headers, query=query, body=body, timeout=timeout
        )
    except HttpTransportError as e:
        # No response at all is still data: status 0 with the error text.
        logger.warning(f"HTTP node '{node.id}': {method} {url} failed: {e}")
        return NodeOutcome(
            output={
                "response": {
                    "status": 0,
                    "statusText": str(e),
                    "ok": False,
                    "headers": {},
                    "body": "",
                    "duration": round((time.perf_counter() - started) * 1000, 3),
                    "size": 0,
                }
            }
        )

    return NodeOutcome(
        output={
            "response": {
                "status": response.status,
                "statusText": response.status_text,
                "ok": response.ok,
                "headers": dict(response.headers),
                "body": response.body,
                "duration": round(response.duration_ms, 3),
                "size": response.size,
            }
        }
    )


async def execute_llm(node: LLMNode, resolved: dict[str, Any], ctx: NodeContext) -> NodeOutcome:
    provider = ctx.capabilities.llm
    if provider is None:
        raise ProviderError("No LLM provider is configured")

    model = node.model or ctx.config.default_model
    messages = [{"role": m["role"], "content": m["content"]} for m in resolved["messages"]]

    try:
        response = await provider.invoke(messages, model, output_schema=node.answer_schema)
    except ProviderError:
        raise
    except Exception as e:
        raise ProviderError(f"{model}: {e}") from e

    if node.answer_schema is None:
        answer: Any = response.content
    else:
        answer = response.structured
        if answer is None:
            try:
                answer = parse_json_content(response.content)
            except ValueError as e:
                raise ProviderError(f"{model} returned invalid JSON: {e}") from e
        errors = _schema_errors(answer, node.answer_schema)
        if errors:
            raise ProviderError(f"{model} answer does not match the schema: {'; '.join(errors)}")

    usage = TokenUsage(input_tokens=response.input_tokens, output_tokens=response.output_tokens)
    return NodeOutcome(
        output={"totalTokens": usage.total_tokens, "answer": answer},
        token_usage=usage,
    )


async def execute_tool(node: ToolNode, resolved: dict[str, Any], ctx: NodeContext) -> NodeOutcome:
    result = await ctx.capabilities.tools.invoke(node.tool_name, resolved["arguments"])
    return NodeOutcome(output={"tool_result": result})


async def execute_condition(
    node: ConditionNode, resolved: dict[str, Any], ctx: NodeContext
) -> NodeOutcome:
    branch = select_branch(resolved["branches"], node.else_label)
    return NodeOutcome(branch=branch)


async def execute_output(
    node: OutputNode, resolved: dict[str, Any], ctx: NodeContext
) -> NodeOutcome:
    return NodeOutcome(output={m["key"]: m["source"] for m in resolved["outputs"]})


NODE_EXECUTORS: dict[NodeKind, NodeExecutorFn] = {
    NodeKind.INPUT: execute_input,
    NodeKind.TEMPLATE: execute_template,
    NodeKind.HTTP: execute_http,
    NodeKind.LLM: execute_llm,
    NodeKind.TOOL: execute_tool,
    NodeKind.CONDITION: execute_condition,
    NodeKind.OUTPUT: execute_output,
}


async def run_node(
    node: NodeSpec, results: Mapping[str, NodeResult], ctx: NodeContext
) -> NodeOutcome:
    """
    Resolve a node's configuration against the recorded results and execute it.

    Raises ResolutionError or ExecutionError subclasses on failure.
    """
    resolved = resolve_value(node.config(), results)
    executor = NODE_EXECUTORS[NodeKind(node.kind)]
    return await executor(node, resolved, ctx)
