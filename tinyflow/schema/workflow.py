"""
Workflow Schema - the JSON document a workflow is authored in.

The document keeps the editor's camelCase keys (`functionId`,
`startNodeId`, `nodeType`, ...). Every model also accepts the snake_case
field names, so workflows can be built directly in Python.
"""

import json
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NodeType(StrEnum):
    """Role of a node in the document."""

    DEFAULT = "default"
    CLUSTER_ROOT = "clusterRoot"
    SUB_NODE = "subNode"


class EdgeType(StrEnum):
    DEFAULT = "default"
    SUBNODE = "subnode"


class NodeRuntime(BaseModel):
    """Retry and timeout settings; `retry_delay` is in milliseconds."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    max_retries: int = Field(default=1, ge=0, alias="maxRetries")
    retry_delay: int = Field(default=0, ge=0, alias="retryDelay")
    timeout: int | None = None


class Position(BaseModel):
    x: float = 0
    y: float = 0


class WorkflowNode(BaseModel):
    """
    A node as authored.

    Example:
        WorkflowNode(id="double", function_id="transform.double", params={"currentItem": 2})
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    function_id: str = Field(alias="functionId")
    params: dict[str, Any] = Field(default_factory=dict)
    runtime: NodeRuntime | None = None
    envs: dict[str, str] = Field(default_factory=dict)
    position: Position | None = None
    label: str | None = None
    node_type: NodeType = Field(default=NodeType.DEFAULT, alias="nodeType")
    parent_id: str | None = Field(default=None, alias="parentId")

    @property
    def is_sub_node(self) -> bool:
        return self.node_type == NodeType.SUB_NODE

    @property
    def is_cluster_root(self) -> bool:
        return self.node_type == NodeType.CLUSTER_ROOT


class WorkflowEdge(BaseModel):
    """An action-labelled edge as authored (`from` / `to` in JSON)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    source: str = Field(alias="from")
    target: str = Field(alias="to")
    action: str = "default"
    condition: str | None = None
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")
    edge_type: EdgeType = Field(default=EdgeType.DEFAULT, alias="edgeType")


class FlowConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    start_node_id: str = Field(alias="startNodeId")
    envs: dict[str, str] = Field(default_factory=dict)
    middleware: list[str] = Field(default_factory=list)
    runtime: NodeRuntime | None = None


class WorkflowDefinition(BaseModel):
    """
    Complete workflow document.

    Example:
        workflow = WorkflowDefinition.from_json(Path("flow.json").read_text())
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    version: str = "1.0.0"
    description: str | None = None
    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)
    flow: FlowConfig
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_json(cls, text: str) -> "WorkflowDefinition":
        """Parse a JSON document. Raises json.JSONDecodeError or pydantic.ValidationError."""
        return cls.model_validate(json.loads(text))

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize using the camelCase document keys."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)

    def get_node(self, node_id: str) -> WorkflowNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None
