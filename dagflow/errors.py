"""
Error taxonomy for workflow validation, resolution and execution.

Propagation:
- WorkflowValidationError: raised before a run starts, surfaced to the caller.
- ResolutionError / ExecutionError: raised inside a node, caught by the
  executor, recorded on the NodeResult and turned into a skip cascade.
- RunError: raised by the runner when a run as a whole produced nothing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dagflow.graph.variables import VariableRef
    from dagflow.schemas.run import RunSummary


class DagflowError(Exception):
    """Base class for all engine errors."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class WorkflowValidationError(DagflowError):
    """The workflow graph is structurally unsound."""


class CycleDetected(WorkflowValidationError):
    def __init__(self, path: list[str]):
        self.path = list(path)
        super().__init__(f"Cycle detected: {' -> '.join(self.path)}")


class DanglingReference(WorkflowValidationError):
    def __init__(self, node_id: str, reference: VariableRef, reason: str = ""):
        self.node_id = node_id
        self.reference = reference
        self.reason = reason
        message = f"Node '{node_id}' references '{reference}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DuplicateNodeId(WorkflowValidationError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id: '{node_id}'")


class UnknownNodeReference(WorkflowValidationError):
    def __init__(self, edge_id: str, node_id: str):
        self.edge_id = edge_id
        self.node_id = node_id
        super().__init__(f"Edge '{edge_id}' references missing node '{node_id}'")


class InvalidBranch(WorkflowValidationError):
    """Branch labels that do not line up with their Condition node."""

    def __init__(self, element_id: str, message: str):
        self.element_id = element_id
        super().__init__(f"'{element_id}': {message}")


class DuplicateOutputKey(WorkflowValidationError):
    def __init__(self, key: str, node_ids: list[str]):
        self.key = key
        self.node_ids = list(node_ids)
        super().__init__(f"Output key '{key}' is produced by several nodes: {self.node_ids}")


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolutionError(DagflowError):
    """A variable reference could not be resolved against the run."""

    kind = "resolution_error"

    def __init__(self, reference: VariableRef, message: str):
        self.reference = reference
        super().__init__(message)


class UnresolvedReference(ResolutionError):
    """The source node has no successful result in the run."""

    def __init__(self, reference: VariableRef):
        super().__init__(reference, f"Node '{reference.node_id}' has no result for '{reference}'")


class FieldNotFound(ResolutionError):
    """The path does not exist in the produced output."""

    def __init__(self, reference: VariableRef, segment: Any):
        self.segment = segment
        super().__init__(reference, f"Field '{segment}' not found while resolving '{reference}'")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(DagflowError):
    """A node failed while executing."""

    kind = "execution_error"


class ProviderError(ExecutionError):
    kind = "provider_error"


class ToolNotFound(ExecutionError):
    kind = "tool_not_found"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is not registered")


class ToolError(ExecutionError):
    kind = "tool_error"


class NodeTimeout(ExecutionError):
    kind = "timeout"

    def __init__(self, node_id: str, timeout: float):
        self.node_id = node_id
        self.timeout = timeout
        super().__init__(f"Node '{node_id}' timed out after {timeout:g}s")


class ConstructionError(ExecutionError):
    kind = "construction_error"


class InvalidInput(ExecutionError):
    kind = "invalid_input"


class HttpTransportError(DagflowError):
    """The HTTP client could not get any response (DNS, connect, read timeout)."""


# ---------------------------------------------------------------------------
# Run level
# ---------------------------------------------------------------------------


class RunError(DagflowError):
    """The run as a whole could not deliver a result."""


class NoOutputProduced(RunError):
    def __init__(self, summary: RunSummary):
        self.summary = summary
        super().__init__(f"Run {summary.run_id} produced no output (status: {summary.status})")


class WorkflowNotFound(RunError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class WorkflowNotPublished(RunError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' is not published")


class ResultAlreadyRecorded(DagflowError):
    def __init__(self, run_id: str, node_id: str):
        self.run_id = run_id
        self.node_id = node_id
        super().__init__(f"Run {run_id} already has a result for node '{node_id}'")
