"""
Edge Protocol - How nodes connect in a compiled workflow.

Edges carry an action label. After a node succeeds, the engine takes the
first outgoing edge whose action equals the result's action; failing that,
the first edge labelled "default". No match ends the run successfully.

Edges are kept in declaration order per source node, which makes the
fallback deterministic.
"""

from typing import Any

from pydantic import BaseModel, Field

from tinyflow.graph.node import DEFAULT_ACTION, NodeSpec


class EdgeSpec(BaseModel):
    """
    A directed, action-labelled connection.

    Example:
        EdgeSpec(source="check", target="retry_handler", action="error")
    """

    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    action: str = Field(default=DEFAULT_ACTION, description="Branch label that activates the edge")

    model_config = {"extra": "allow"}


class WorkflowGraph(BaseModel):
    """
    Executable graph produced by the compiler.

    `nodes` only contains nodes reachable by traversal; cluster sub-nodes live
    on their root's NodeSpec. `middleware` holds the resolved middleware
    callables applied around every function the run resolves.
    """

    id: str = ""
    nodes: dict[str, NodeSpec] = Field(default_factory=dict)
    edges: dict[str, list[EdgeSpec]] = Field(default_factory=dict)
    start_node_id: str
    # Compile-time base env (lowest layer) and the workflow's own env
    global_env: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)

    # Sub-node edges, recorded against their cluster root
    sub_node_edges: dict[str, list[EdgeSpec]] = Field(default_factory=dict)

    middleware_ids: list[str] = Field(default_factory=list)
    middleware: list[Any] = Field(default_factory=list, exclude=True)

    def get_node(self, node_id: str) -> NodeSpec | None:
        return self.nodes.get(node_id)

    def get_outgoing_edges(self, node_id: str) -> list[EdgeSpec]:
        """Outgoing edges in declaration order."""
        return self.edges.get(node_id, [])

    def select_edge(self, node_id: str, action: str) -> EdgeSpec | None:
        """Exact action match first, then the first "default" edge, else None."""
        edges = self.get_outgoing_edges(node_id)
        for edge in edges:
            if edge.action == action:
                return edge
        for edge in edges:
            if edge.action == DEFAULT_ACTION:
                return edge
        return None

    def structural_errors(self) -> list[str]:
        """Check the structural invariants the executor relies on."""
        errors = []
        if self.start_node_id not in self.nodes:
            errors.append(f'Start node "{self.start_node_id}" not found')
        for source, edges in self.edges.items():
            if source not in self.nodes:
                errors.append(f"Edge source '{source}' not found")
            for edge in edges:
                if edge.target not in self.nodes:
                    errors.append(f"Invalid edge: {edge.source} -> {edge.target}")
        return errors
