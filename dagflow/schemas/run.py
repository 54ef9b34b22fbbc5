"""
Run Schema - One execution of a workflow.

An ExecutionRun owns the NodeResult of every node it touched. Results are
append-only: once a node has a terminal result it is never replaced or
mutated.
"""

import copy
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class NodeStatus(StrEnum):
    """State of a node within a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Only reachable through inactive branches
    SKIPPED_DUE_TO_FAILURE = "skipped_due_to_failure"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (NodeStatus.PENDING, NodeStatus.RUNNING)


class RunStatus(StrEnum):
    """Overall status of a run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"  # Some Output nodes produced results, others did not
    FAILED = "failed"
    CANCELLED = "cancelled"


class TokenUsage(BaseModel):
    """Token counts reported by a model invocation."""

    input_tokens: int = 0
    output_tokens: int = 0

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class NodeError(BaseModel):
    """Serializable description of why a node failed."""

    kind: str
    type: str
    message: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_exception(cls, exc: BaseException, kind: str | None = None) -> "NodeError":
        return cls(
            kind=kind or getattr(exc, "kind", "internal_error"),
            type=type(exc).__name__,
            message=str(exc) or type(exc).__name__,
        )


class NodeResult(BaseModel):
    """Outcome of one node's execution within a run."""

    node_id: str
    kind: str
    status: NodeStatus
    output: dict[str, Any] | None = None
    branch: str | None = None  # Selected label, Condition nodes only
    error: NodeError | None = None
    started_at: datetime | None = None
    finished_at: datetime = Field(default_factory=datetime.now)
    token_usage: TokenUsage | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def success(self) -> bool:
        return self.status == NodeStatus.SUCCEEDED

    @computed_field
    @property
    def duration_ms(self) -> int:
        if self.started_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)


class NodeSummary(BaseModel):
    """Per-node line of a RunSummary."""

    status: NodeStatus
    error: str | None = None


class RunSummary(BaseModel):
    """What a caller of a published workflow gets back."""

    run_id: str
    status: RunStatus
    outputs: dict[str, Any] = Field(default_factory=dict)
    nodes: dict[str, NodeSummary] = Field(default_factory=dict)

    @property
    def failed_nodes(self) -> list[str]:
        return [node_id for node_id, n in self.nodes.items() if n.status == NodeStatus.FAILED]


class ExecutionRun(BaseModel):
    """
    A single invocation of a workflow.

    ``node_status`` tracks every node (including pending/running ones);
    ``results`` holds terminal NodeResults in the order they were recorded.
    """

    id: str
    workflow_id: str
    workflow_version: int = 1
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    status: RunStatus = RunStatus.RUNNING
    input: dict[str, Any] = Field(default_factory=dict)

    node_status: dict[str, NodeStatus] = Field(default_factory=dict)
    results: dict[str, NodeResult] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def duration_ms(self) -> int:
        """Duration of the run in milliseconds."""
        if self.finished_at is None:
            return 0
        delta = self.finished_at - self.started_at
        return int(delta.total_seconds() * 1000)

    @computed_field
    @property
    def total_tokens(self) -> int:
        return sum(r.token_usage.total_tokens for r in self.results.values() if r.token_usage)

    def get_result(self, node_id: str) -> NodeResult | None:
        return self.results.get(node_id)

    def nodes_with_status(self, status: NodeStatus) -> list[str]:
        return [node_id for node_id, s in self.node_status.items() if s == status]

    def summary(self) -> RunSummary:
        return RunSummary(
            run_id=self.id,
            status=self.status,
            outputs=copy.deepcopy(self.outputs),
            nodes={
                node_id: NodeSummary(
                    status=status,
                    error=(
                        self.results[node_id].error.message
                        if node_id in self.results and self.results[node_id].error
                        else None
                    ),
                )
                for node_id, status in self.node_status.items()
            },
        )
