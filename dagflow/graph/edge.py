"""
Edge Protocol - How nodes connect in a workflow.

An edge is a directed dependency from one node's output to another node.
Edges leaving a Condition node carry the branch label they belong to; the
target only runs when the condition selected that label.

The WorkflowSpec ties nodes and edges together and owns the draft/publish
lifecycle:

    draft (version 1) --publish()--> published (version 1)
    published (version 1) --edit()--> draft (version 2)
"""

import heapq
from typing import Any

from pydantic import BaseModel, Field

from dagflow.graph.node import AnyNode, NodeKind, NodeSpec


class EdgeSpec(BaseModel):
    """
    Specification for an edge between nodes.

    Examples:
        # Plain data dependency
        EdgeSpec(id="fetch-to-format", source="fetch", target="format")

        # Branch of a condition
        EdgeSpec(id="check-to-alert", source="check", target="alert", branch="true")
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    branch: str | None = Field(
        default=None, description="Branch label, required on edges leaving a Condition node"
    )

    model_config = {"extra": "allow"}


class WorkflowSpec(BaseModel):
    """
    A named, versioned DAG of nodes.

    Example:
        WorkflowSpec(
            id="ip-lookup",
            name="IP lookup",
            nodes=[
                InputNode(id="input"),
                HttpNode(id="fetch", url="https://api.example.com/ip"),
                OutputNode(id="out", outputs=[{"key": "result", "source": "fetch.response.body"}]),
            ],
            edges=[
                EdgeSpec(id="e1", source="input", target="fetch"),
                EdgeSpec(id="e2", source="fetch", target="out"),
            ],
        )
    """

    id: str
    name: str = ""
    owner: str = ""
    description: str = ""
    version: int = Field(default=1, ge=1, description="Draft generation")
    published: bool = False

    nodes: list[AnyNode] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges leaving a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[EdgeSpec]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def predecessors(self, node_id: str) -> list[str]:
        return list(dict.fromkeys(e.source for e in self.get_incoming_edges(node_id)))

    def successors(self, node_id: str) -> list[str]:
        return list(dict.fromkeys(e.target for e in self.get_outgoing_edges(node_id)))

    def ancestors(self, node_id: str) -> set[str]:
        """All nodes with a directed path to ``node_id`` (excluding itself unless cyclic)."""
        seen: set[str] = set()
        to_visit = self.predecessors(node_id)
        while to_visit:
            current = to_visit.pop()
            if current in seen:
                continue
            seen.add(current)
            to_visit.extend(self.predecessors(current))
        return seen

    def descendants(self, node_id: str) -> set[str]:
        seen: set[str] = set()
        to_visit = self.successors(node_id)
        while to_visit:
            current = to_visit.pop()
            if current in seen:
                continue
            seen.add(current)
            to_visit.extend(self.successors(current))
        return seen

    def input_nodes(self) -> list[NodeSpec]:
        return [n for n in self.nodes if n.kind == NodeKind.INPUT]

    def output_nodes(self) -> list[NodeSpec]:
        return [n for n in self.nodes if n.kind == NodeKind.OUTPUT]

    def topological_order(self) -> list[str]:
        """
        Kahn's algorithm, ties broken by declaration order.

        Assumes an acyclic graph; nodes on a cycle are left out.
        """
        position = {node.id: i for i, node in enumerate(self.nodes)}
        in_degree = {node.id: len(self.predecessors(node.id)) for node in self.nodes}

        ready = [position[node_id] for node_id, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            current = self.nodes[heapq.heappop(ready)].id
            order.append(current)
            for target in self.successors(current):
                if target not in in_degree:
                    continue
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    heapq.heappush(ready, position[target])
        return order

    def validate_structure(self):
        """Run the graph validator. Returns a ValidationResult."""
        from dagflow.graph.validator import validate_workflow

        return validate_workflow(self)

    def publish(self) -> "WorkflowSpec":
        """Freeze the structure for invocation. Raises the first validation error."""
        self.validate_structure().raise_for_errors()
        return self.model_copy(update={"published": True})

    def edit(self, **changes: Any) -> "WorkflowSpec":
        """
        Return an edited draft.

        Editing a published workflow starts a new draft generation; editing a
        draft keeps its generation.
        """
        data = self.model_dump()
        data.update(changes)
        data["published"] = False
        data["version"] = self.version + 1 if self.published else self.version
        return type(self).model_validate(data)
