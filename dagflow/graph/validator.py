"""Structural validation for workflow graphs.

Runs before any node executes and before a workflow can be published.
Validation is a pure function over the graph: hard errors are collected as
WorkflowValidationError instances, soft problems (unreachable nodes, no
Output node) as warning strings.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dagflow.errors import (
    CycleDetected,
    DanglingReference,
    DuplicateNodeId,
    DuplicateOutputKey,
    InvalidBranch,
    UnknownNodeReference,
    WorkflowValidationError,
)
from dagflow.graph.node import ConditionNode, OutputNode

if TYPE_CHECKING:
    from dagflow.graph.edge import WorkflowSpec

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validating a workflow."""

    errors: list[WorkflowValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def error(self) -> str:
        """Get combined error message."""
        return "; ".join(str(e) for e in self.errors)

    def errors_of(self, error_type: type[WorkflowValidationError]) -> list[Any]:
        return [e for e in self.errors if isinstance(e, error_type)]

    def raise_for_errors(self) -> None:
        """Raise the first error found, if any."""
        if self.errors:
            raise self.errors[0]


def find_cycle(workflow: "WorkflowSpec") -> list[str] | None:
    """
    Depth-first search with a recursion stack.

    A back edge to a node still on the stack closes a cycle. Returns the
    cycle as a path whose last element repeats the first, or None.
    """
    adjacency: dict[str, list[str]] = {node.id: [] for node in workflow.nodes}
    for edge in workflow.edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)

    on_stack: set[str] = set()
    done: set[str] = set()

    for root in adjacency:
        if root in done:
            continue
        path = [root]
        on_stack.add(root)
        stack = [iter(adjacency[root])]
        while stack:
            for child in stack[-1]:
                if child in on_stack:
                    return path[path.index(child) :] + [child]
                if child not in done:
                    path.append(child)
                    on_stack.add(child)
                    stack.append(iter(adjacency[child]))
                    break
            else:
                finished = path.pop()
                on_stack.discard(finished)
                done.add(finished)
                stack.pop()
    return None


def _schema_types(schema: dict[str, Any]) -> set[str]:
    declared = schema.get("type")
    if declared is None:
        return set()
    if isinstance(declared, list):
        return set(declared)
    return {declared}


def missing_schema_segment(schema: dict[str, Any], path: tuple[str | int, ...]) -> Any | None:
    """
    Walk ``path`` through a JSON schema.

    Returns the first segment the schema does not allow, or None when the
    path is allowed. Schemas without constraints accept any path below them.
    """
    current = schema
    for segment in path:
        if not current:
            return None
        types = _schema_types(current)
        if "object" in types or "properties" in current:
            properties = current.get("properties")
            if properties is None:
                return None
            if str(segment) in properties:
                current = properties[str(segment)]
                continue
            extra = current.get("additionalProperties")
            if isinstance(extra, dict):
                current = extra
                continue
            return segment
        if "array" in types:
            if not (isinstance(segment, int) or str(segment).isdigit()):
                return segment
            current = current.get("items", {})
            continue
        if not types:
            return None
        return segment
    return None


def _check_references(workflow: "WorkflowSpec", errors: list[WorkflowValidationError]) -> None:
    node_ids = {node.id for node in workflow.nodes}
    for node in workflow.nodes:
        ancestors = workflow.ancestors(node.id)
        for reference in node.references():
            source_id = reference.node_id
            if source_id == node.id:
                errors.append(DanglingReference(node.id, reference, "self reference"))
                continue
            if source_id not in node_ids:
                errors.append(DanglingReference(node.id, reference, "unknown node"))
                continue
            if source_id not in ancestors:
                errors.append(
                    DanglingReference(node.id, reference, f"'{source_id}' is not an upstream node")
                )
                continue
            schema = workflow.get_node(source_id).declared_output_schema()
            if schema is None:
                errors.append(
                    DanglingReference(node.id, reference, f"'{source_id}' produces no output")
                )
                continue
            missing = missing_schema_segment(schema, reference.path)
            if missing is not None:
                errors.append(
                    DanglingReference(
                        node.id, reference, f"field '{missing}' is not in the output schema"
                    )
                )


def _check_branches(workflow: "WorkflowSpec", errors: list[WorkflowValidationError]) -> None:
    for node in workflow.nodes:
        if isinstance(node, ConditionNode):
            for label, count in Counter(node.branch_labels()).items():
                if count > 1:
                    errors.append(InvalidBranch(node.id, f"duplicate branch label '{label}'"))

    for edge in workflow.edges:
        source = workflow.get_node(edge.source)
        if source is None:
            continue
        if isinstance(source, ConditionNode):
            if edge.branch is None:
                errors.append(InvalidBranch(edge.id, "edges leaving a condition need a branch"))
            elif edge.branch not in source.branch_labels():
                errors.append(
                    InvalidBranch(
                        edge.id,
                        f"unknown branch '{edge.branch}' (valid: {source.branch_labels()})",
                    )
                )
        elif edge.branch is not None:
            errors.append(
                InvalidBranch(edge.id, f"branch '{edge.branch}' on an edge from '{source.id}'")
            )


def validate_workflow(workflow: "WorkflowSpec") -> ValidationResult:
    """Check a workflow graph for structural soundness."""
    result = ValidationResult()
    errors = result.errors

    # Unique node ids
    for node_id, count in Counter(node.id for node in workflow.nodes).items():
        if count > 1:
            errors.append(DuplicateNodeId(node_id))

    # Edge endpoints
    node_ids = {node.id for node in workflow.nodes}
    for edge in workflow.edges:
        if edge.source not in node_ids:
            errors.append(UnknownNodeReference(edge.id, edge.source))
        if edge.target not in node_ids:
            errors.append(UnknownNodeReference(edge.id, edge.target))

    cycle = find_cycle(workflow)
    if cycle:
        errors.append(CycleDetected(cycle))

    # Reachability from Input nodes
    entry_nodes = [node.id for node in workflow.input_nodes()]
    if not entry_nodes:
        result.warnings.append("Workflow has no Input node")
    else:
        reachable: set[str] = set()
        to_visit = list(entry_nodes)
        while to_visit:
            current = to_visit.pop()
            if current in reachable:
                continue
            reachable.add(current)
            to_visit.extend(workflow.successors(current))
        for node in workflow.nodes:
            if node.id not in reachable:
                result.warnings.append(f"Node '{node.id}' is unreachable from any Input node")

    _check_references(workflow, errors)
    _check_branches(workflow, errors)

    # Output keys
    output_nodes = [n for n in workflow.nodes if isinstance(n, OutputNode)]
    if not output_nodes:
        result.warnings.append("Workflow has no Output node")
    producers: dict[str, list[str]] = {}
    for node in output_nodes:
        for mapping in node.outputs:
            producers.setdefault(mapping.key, []).append(node.id)
    for key, node_ids_for_key in producers.items():
        if len(node_ids_for_key) > 1:
            errors.append(DuplicateOutputKey(key, node_ids_for_key))

    if errors:
        logger.debug(f"Workflow '{workflow.id}' failed validation: {result.error}")
    for warning in result.warnings:
        logger.debug(f"Workflow '{workflow.id}': {warning}")
    return result


