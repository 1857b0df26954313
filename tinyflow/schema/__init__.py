"""Workflow document models."""

from tinyflow.schema.workflow import (
    EdgeType,
    FlowConfig,
    NodeRuntime,
    NodeType,
    Position,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
)

__all__ = [
    "WorkflowDefinition",
    "WorkflowNode",
    "WorkflowEdge",
    "FlowConfig",
    "NodeRuntime",
    "NodeType",
    "EdgeType",
    "Position",
]
