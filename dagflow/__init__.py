"""
dagflow - a DAG workflow execution engine.

Workflows are graphs of typed nodes (Input, LLM, Tool, Condition, HTTP,
Template, Output). Nodes read upstream outputs through variable references,
run concurrently as soon as their dependencies finish, and a failure only
takes down the branch it happened on.

Quick start:
    from dagflow import Capabilities, InMemoryStorage, WorkflowRunner, WorkflowSpec

    runner = WorkflowRunner(InMemoryStorage(), Capabilities())
    await runner.publish(WorkflowSpec.model_validate(definition))
    summary = await runner.run_workflow(definition["id"], {"x": 5})
"""

from dagflow.capabilities import Capabilities
from dagflow.config import EngineConfig
from dagflow.errors import (
    DagflowError,
    ExecutionError,
    NoOutputProduced,
    ResolutionError,
    RunError,
    WorkflowValidationError,
)
from dagflow.graph import (
    EdgeSpec,
    ValidationResult,
    WorkflowExecutor,
    WorkflowSpec,
    validate_workflow,
)
from dagflow.runner.runner import WorkflowRunner
from dagflow.runtime.run_store import RunStore
from dagflow.schemas import ExecutionRun, NodeResult, NodeStatus, RunStatus, RunSummary
from dagflow.storage import FileStorage, InMemoryStorage, WorkflowStorage

__all__ = [
    "Capabilities",
    "EngineConfig",
    "WorkflowSpec",
    "EdgeSpec",
    "ValidationResult",
    "validate_workflow",
    "WorkflowExecutor",
    "WorkflowRunner",
    "RunStore",
    "ExecutionRun",
    "NodeResult",
    "NodeStatus",
    "RunStatus",
    "RunSummary",
    "WorkflowStorage",
    "InMemoryStorage",
    "FileStorage",
    "DagflowError",
    "WorkflowValidationError",
    "ResolutionError",
    "ExecutionError",
    "RunError",
    "NoOutputProduced",
]
