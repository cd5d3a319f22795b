"""Programmatic construction of n8n workflows with automatic layout.

The in-progress workflow lives in a `WorkflowDraft` and every operation is a
plain function over that draft. `WorkflowBuilder` wraps a draft for callers
who prefer method chaining:

    builder = WorkflowBuilder().set_name("Daily report")
    start = builder.add_trigger("n8n-nodes-base.manualTrigger", "Start")
    log = builder.add_node({"type": "n8n-nodes-base.noOp", "name": "Log"})
    builder.connect_nodes(start.id, log.id)
    workflow = builder.export_workflow()

A draft is not safe to share between concurrent requests; give every
workflow under construction its own draft.
"""
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import structlog
from pydantic import ValidationError

from workflow_builder.models.workflow import (
    DEFAULT_WORKFLOW_NAME,
    ConnectionTable,
    Edge,
    Node,
    Position,
    WorkflowSettings,
    WorkflowSpec,
    default_settings,
    merge_settings,
)
from workflow_builder.n8n.errors import InvalidInputError
from workflow_builder.n8n.positioning import DEFAULT_POSITION, branch_position, next_position
from workflow_builder.n8n.references import append_edge, lenient_resolve, port_index, strict_resolve

logger = structlog.get_logger()


@dataclass
class WorkflowDraft:
    """Mutable state of one workflow under construction."""

    name: str = DEFAULT_WORKFLOW_NAME
    nodes: list[Node] = field(default_factory=list)
    connections: ConnectionTable = field(default_factory=dict)
    cursor: Position = DEFAULT_POSITION
    settings: WorkflowSettings = field(default_factory=default_settings)
    # Kept for callers that tag after creation; never exported
    tags: list[str] = field(default_factory=list)
    static_data: Optional[dict[str, Any]] = None


# =============================================================================
# Draft operations
# =============================================================================


def set_name(draft: WorkflowDraft, name: str) -> WorkflowDraft:
    draft.name = name
    return draft


def set_settings(
    draft: WorkflowDraft,
    settings: Union[WorkflowSettings, Mapping[str, Any]],
) -> WorkflowDraft:
    """Shallow-merge settings into the draft; the execution order stays pinned."""
    try:
        draft.settings = merge_settings(draft.settings, settings)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid workflow settings: {e}") from e
    return draft


def set_tags(draft: WorkflowDraft, tags: list[str]) -> WorkflowDraft:
    draft.tags = list(tags)
    return draft


def set_static_data(draft: WorkflowDraft, static_data: Optional[Mapping[str, Any]]) -> WorkflowDraft:
    draft.static_data = None if static_data is None else deepcopy(dict(static_data))
    return draft


def reset_position(draft: WorkflowDraft) -> WorkflowDraft:
    draft.cursor = DEFAULT_POSITION
    return draft


def _check_node_spec(spec: Mapping[str, Any]) -> None:
    if not isinstance(spec.get("type"), str) or not spec["type"]:
        raise InvalidInputError("Node must have a type property")
    if not isinstance(spec.get("name"), str) or not spec["name"]:
        raise InvalidInputError("Node must have a name property")


def add_node(draft: WorkflowDraft, spec: Mapping[str, Any]) -> Node:
    """Add a node, auto-placing it at the layout cursor when no position is given.

    An explicit position is used as-is and leaves the cursor where it was.

    Raises:
        InvalidInputError: if the type or name is missing or a field is invalid
    """
    _check_node_spec(spec)

    data = {k: v for k, v in spec.items() if v is not None}
    auto_placed = "position" not in data
    if auto_placed:
        data["position"] = draft.cursor.as_list()
    data.setdefault("parameters", {})
    if not data.get("id"):
        data.pop("id", None)

    try:
        node = Node.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid node '{spec['name']}': {e}") from e

    if auto_placed:
        draft.cursor = next_position(draft.cursor)

    draft.nodes.append(node)
    logger.debug("node_added", node_name=node.name, node_type=node.type, position=node.position)
    return node


def add_trigger(
    draft: WorkflowDraft,
    node_type: str,
    name: str,
    parameters: Optional[dict[str, Any]] = None,
    credentials: Optional[dict[str, dict[str, Any]]] = None,
) -> Node:
    """Add the entry node of a chain at the default position."""
    node = add_node(draft, {
        "type": node_type,
        "name": name,
        "parameters": parameters or {},
        "credentials": credentials,
        "position": DEFAULT_POSITION.as_list(),
    })
    draft.cursor = next_position(DEFAULT_POSITION)
    return node


def connect_nodes(
    draft: WorkflowDraft,
    source_id: str,
    target_id: str,
    output_index: int = 0,
) -> WorkflowDraft:
    """Connect `source_id`'s output port `output_index` to `target_id`.

    Raises:
        NodeNotFoundError: if either id is not in the draft
    """
    if isinstance(output_index, bool) or not isinstance(output_index, int) or output_index < 0:
        raise InvalidInputError(f"Output index must be a non-negative integer, got {output_index!r}")
    source = strict_resolve(draft.nodes, source_id, "source node")
    target = strict_resolve(draft.nodes, target_id, "target node")

    # n8n keys connections by node name, never by id
    append_edge(
        draft.connections,
        source.name,
        Edge(node=target.name, type="main", index=output_index),
        output_index,
    )
    return draft


def add_branches(
    draft: WorkflowDraft,
    source_id: str,
    branch_specs: list[Mapping[str, Any]],
) -> list[Node]:
    """Fan out one node per spec from `source_id`, stacked vertically.

    Either every branch is added or, on a bad spec, none is.

    Raises:
        NodeNotFoundError: if the source node does not exist
        InvalidInputError: if any branch spec is malformed
    """
    source = strict_resolve(draft.nodes, source_id, "source node")
    for index, spec in enumerate(branch_specs):
        if not isinstance(spec, Mapping):
            raise InvalidInputError(f"Branch at index {index} must be an object")
        _check_node_spec(spec)
    base = source.get_position()

    saved_nodes = list(draft.nodes)
    saved_connections = {name: conns.model_copy(deep=True) for name, conns in draft.connections.items()}
    branches = []
    try:
        for index, spec in enumerate(branch_specs):
            position = branch_position(base, index, len(branch_specs))
            node = add_node(draft, {**spec, "position": position.as_list()})
            connect_nodes(draft, source.id, node.id, 0)
            branches.append(node)
    except InvalidInputError:
        draft.nodes = saved_nodes
        draft.connections = saved_connections
        raise

    logger.debug("branches_added", source=source.name, count=len(branches))
    return branches


def export_workflow(draft: WorkflowDraft) -> WorkflowSpec:
    """Snapshot the draft as a WorkflowSpec; the draft is left untouched."""
    return WorkflowSpec(
        name=draft.name,
        nodes=[node.model_copy(deep=True) for node in draft.nodes],
        connections={name: conns.model_copy(deep=True) for name, conns in draft.connections.items()},
        settings=merge_settings(draft.settings),
        staticData=deepcopy(draft.static_data),
    )


def clear(draft: WorkflowDraft) -> WorkflowDraft:
    """Drop nodes and connections and rewind the cursor; name and settings are kept."""
    draft.nodes = []
    draft.connections = {}
    draft.cursor = DEFAULT_POSITION
    return draft


# =============================================================================
# Chaining facade
# =============================================================================


class WorkflowBuilder:
    """Method-chaining wrapper around a WorkflowDraft."""

    def __init__(self, draft: Optional[WorkflowDraft] = None):
        self.draft = draft or WorkflowDraft()

    def set_name(self, name: str) -> "WorkflowBuilder":
        set_name(self.draft, name)
        return self

    def set_settings(self, settings: Union[WorkflowSettings, Mapping[str, Any]]) -> "WorkflowBuilder":
        set_settings(self.draft, settings)
        return self

    def set_tags(self, tags: list[str]) -> "WorkflowBuilder":
        set_tags(self.draft, tags)
        return self

    def set_static_data(self, static_data: Optional[Mapping[str, Any]]) -> "WorkflowBuilder":
        set_static_data(self.draft, static_data)
        return self

    def reset_position(self) -> "WorkflowBuilder":
        reset_position(self.draft)
        return self

    def add_trigger(
        self,
        node_type: str,
        name: str,
        parameters: Optional[dict[str, Any]] = None,
        credentials: Optional[dict[str, dict[str, Any]]] = None,
    ) -> Node:
        return add_trigger(self.draft, node_type, name, parameters, credentials)

    def add_node(self, spec: Mapping[str, Any]) -> Node:
        return add_node(self.draft, spec)

    def add_branches(self, source_id: str, branch_specs: list[Mapping[str, Any]]) -> list[Node]:
        return add_branches(self.draft, source_id, branch_specs)

    def connect_nodes(self, source_id: str, target_id: str, output_index: int = 0) -> "WorkflowBuilder":
        connect_nodes(self.draft, source_id, target_id, output_index)
        return self

    def export_workflow(self) -> WorkflowSpec:
        return export_workflow(self.draft)

    def clear(self) -> "WorkflowBuilder":
        clear(self.draft)
        return self


def build_workflow(
    nodes: Any,
    connections: Any = None,
    name: Optional[str] = None,
    settings: Optional[Mapping[str, Any]] = None,
) -> WorkflowSpec:
    """Build a workflow from creation instructions.

    Nodes are added in order (explicit positions kept, the rest laid out left
    to right). Connections are `{source, target, sourceOutput?}` records whose
    endpoints may be node names or ids; records pointing at unknown nodes are
    skipped with a warning.

    Raises:
        InvalidInputError: if nodes or connections are not lists of objects
    """
    if not isinstance(nodes, list):
        raise InvalidInputError("Workflow nodes must be an array")
    if connections is not None and not isinstance(connections, list):
        raise InvalidInputError("Workflow connections must be an array of source/target connections")

    builder = WorkflowBuilder().set_name(name or DEFAULT_WORKFLOW_NAME)
    if settings:
        builder.set_settings(settings)

    for index, node_data in enumerate(nodes):
        if not isinstance(node_data, Mapping):
            raise InvalidInputError(f"Node at index {index} must be an object")
        builder.add_node(node_data)

    for conn in connections or []:
        if not isinstance(conn, Mapping):
            raise InvalidInputError("Connection must be an object")
        source = lenient_resolve(builder.draft.nodes, conn.get("source"))
        target = lenient_resolve(builder.draft.nodes, conn.get("target"))
        if source is None or target is None:
            logger.warning(
                "connection_skipped",
                source=conn.get("source"),
                target=conn.get("target"),
            )
            continue
        builder.connect_nodes(source.id, target.id, port_index(conn.get("sourceOutput"), "sourceOutput"))

    return builder.export_workflow()
