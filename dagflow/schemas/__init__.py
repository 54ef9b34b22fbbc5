"""Run and result schemas."""

from dagflow.schemas.run import (
    ExecutionRun,
    NodeError,
    NodeResult,
    NodeStatus,
    NodeSummary,
    RunStatus,
    RunSummary,
    TokenUsage,
)

__all__ = [
    "ExecutionRun",
    "NodeError",
    "NodeResult",
    "NodeStatus",
    "NodeSummary",
    "RunStatus",
    "RunSummary",
    "TokenUsage",
]
