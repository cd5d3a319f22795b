"""Pydantic models for the workflow builder."""
from workflow_builder.models.workflow import (
    ConnectionTable,
    Edge,
    Node,
    NodeConnections,
    Position,
    WorkflowSettings,
    WorkflowSpec,
)
from workflow_builder.models.api import (
    ExecutionListOptions,
    ExecutionStats,
    NodeInfo,
    NodeListResponse,
)

__all__ = [
    "ConnectionTable",
    "Edge",
    "Node",
    "NodeConnections",
    "Position",
    "WorkflowSettings",
    "WorkflowSpec",
    "ExecutionListOptions",
    "ExecutionStats",
    "NodeInfo",
    "NodeListResponse",
]
