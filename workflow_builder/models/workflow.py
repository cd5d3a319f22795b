"""Canonical n8n workflow model.

Every construction path (the normalizer for externally authored specs and the
builder for programmatic construction) converges on `WorkflowSpec`. Field
names follow the n8n REST API exactly, so `WorkflowSpec.to_n8n()` can be sent
as the body of a create/update request without further mapping.
"""
from copy import deepcopy
from typing import Any, Literal, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

Coordinate = Union[int, float]

# n8n only renders connections correctly with the v1 execution order
EXECUTION_ORDER = "v1"
DEFAULT_WORKFLOW_NAME = "New Workflow"


class Position(BaseModel):
    """2D position for node layout."""

    model_config = ConfigDict(frozen=True)

    x: Coordinate = Field(0, description="X coordinate")
    y: Coordinate = Field(0, description="Y coordinate")

    @classmethod
    def from_node_position(cls, value: Any) -> "Position":
        """Build from either the `[x, y]` or the `{x, y}` encoding."""
        if isinstance(value, Position):
            return value
        try:
            if isinstance(value, Mapping):
                return cls(x=value["x"], y=value["y"])
            x, y = value
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError("position must be [x, y] or {x, y}") from e
        return cls(x=x, y=y)

    def as_list(self) -> list[Coordinate]:
        return [self.x, self.y]


class Node(BaseModel):
    """A single n8n node."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique node identifier")
    type: str = Field(..., min_length=1, description="Full n8n node type, e.g. n8n-nodes-base.webhook")
    name: str = Field(..., min_length=1, description="Node name, used as the connection table key")
    parameters: dict[str, Any] = Field(default_factory=dict)
    position: list[Coordinate] = Field(..., description="Canvas position as [x, y]")
    credentials: Optional[dict[str, dict[str, Any]]] = None
    typeVersion: Coordinate = 1
    disabled: bool = False
    webhookId: Optional[str] = None

    # Execution behaviour
    continueOnFail: Optional[bool] = None  # deprecated in favour of onError
    onError: Optional[str] = None
    alwaysOutputData: Optional[bool] = None
    retryOnFail: Optional[bool] = None
    maxTries: Optional[int] = None
    waitBetweenTries: Optional[int] = None

    # UI display options
    executeOnce: Optional[bool] = None
    notesInFlow: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, v):
        """Accept `{x, y}` records and emit the `[x, y]` pair n8n expects."""
        if isinstance(v, (Mapping, Position)):
            return Position.from_node_position(v).as_list()
        if isinstance(v, tuple):
            return list(v)
        return v

    @field_validator("position")
    @classmethod
    def validate_position_length(cls, v):
        if len(v) != 2:
            raise ValueError("position must have exactly two coordinates")
        return v

    def get_position(self) -> Position:
        return Position.from_node_position(self.position)

    def to_n8n(self) -> dict:
        """Serialize to n8n node JSON, omitting unset optional flags."""
        data = self.model_dump(exclude={"parameters", "credentials"}, exclude_none=True)
        # parameters and credentials are opaque payloads, dumped untouched
        data["parameters"] = deepcopy(self.parameters)
        if self.credentials is not None:
            data["credentials"] = deepcopy(self.credentials)
        return data


class Edge(BaseModel):
    """A connection into a target node's input port."""

    node: str = Field(..., description="Target node name")
    type: Literal["main"] = "main"
    index: int = Field(0, ge=0, description="Target input port")


class NodeConnections(BaseModel):
    """Outgoing connections of one source node, indexed by output port."""

    main: list[list[Edge]] = Field(default_factory=list)


ConnectionTable = dict[str, NodeConnections]


class WorkflowSettings(BaseModel):
    """Workflow-level settings. Unknown engine settings pass through."""

    model_config = ConfigDict(extra="allow")

    saveExecutionProgress: Optional[bool] = None
    saveManualExecutions: Optional[bool] = None
    saveDataErrorExecution: Optional[Literal["all", "none"]] = None
    saveDataSuccessExecution: Optional[Literal["all", "none"]] = None
    executionTimeout: Optional[int] = None  # seconds
    errorWorkflow: Optional[str] = None
    timezone: Optional[str] = None
    executionOrder: Optional[str] = EXECUTION_ORDER


def default_settings() -> WorkflowSettings:
    """Settings applied when the caller provides none."""
    return WorkflowSettings(
        saveExecutionProgress=True,
        saveManualExecutions=True,
        saveDataErrorExecution="all",
        saveDataSuccessExecution="none",
        executionOrder=EXECUTION_ORDER,
    )


def merge_settings(
    base: WorkflowSettings,
    overrides: Optional[Union[WorkflowSettings, Mapping[str, Any]]] = None,
) -> WorkflowSettings:
    """Shallow-merge overrides onto base, pinning the execution order."""
    merged = base.model_dump(exclude_none=True)
    if isinstance(overrides, WorkflowSettings):
        merged.update(overrides.model_dump(exclude_none=True))
    elif overrides:
        merged.update(overrides)
    merged["executionOrder"] = EXECUTION_ORDER
    return WorkflowSettings.model_validate(merged)


class WorkflowSpec(BaseModel):
    """Canonical workflow ready to be persisted in n8n.

    `tags` and `active` are deliberately absent: n8n rejects them as
    read-only on creation.
    """

    name: str = Field(DEFAULT_WORKFLOW_NAME, min_length=1)
    nodes: list[Node] = Field(default_factory=list)
    connections: ConnectionTable = Field(default_factory=dict)
    settings: WorkflowSettings = Field(default_factory=default_settings)
    staticData: Optional[dict[str, Any]] = None

    def get_node_by_id(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_node_by_name(self, name: str) -> Optional[Node]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def connections_to_n8n(self) -> dict:
        return {
            source: {"main": [[edge.model_dump() for edge in port] for port in conns.main]}
            for source, conns in self.connections.items()
        }

    def to_n8n(self) -> dict:
        """Serialize to the JSON body accepted by the n8n REST API."""
        workflow = {
            "name": self.name,
            "nodes": [node.to_n8n() for node in self.nodes],
            "connections": self.connections_to_n8n(),
            "settings": self.settings.model_dump(exclude_none=True),
        }
        if self.staticData is not None:
            workflow["staticData"] = deepcopy(self.staticData)
        return workflow
