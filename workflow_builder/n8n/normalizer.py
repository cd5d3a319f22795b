"""Normalize loosely shaped workflow descriptions into a canonical WorkflowSpec.

Workflows reach us from many authors (LLM tool calls, exported JSON, older
clients) and the connections in particular come in several encodings:

- canonical:        {"A": {"main": [[{"node": "B", "type": "main", "index": 0}]]}}
- flat per source:  {"A": [{"node": "B"}]}  or  {"A": {"main": [{"node": "B"}]}}
- edge list:        [{"source": "A", "target": "B", "sourceOutput": 0, "targetInput": 0}]
- orphan port:      [{"node": "B"}]  or  {"main": [[{"node": "B"}]]}

The shape is detected once by `detect_connection_shape` and handed to the
matching converter. Every converter resolves endpoints leniently: a reference
that matches no node is dropped and reported as a diagnostic instead of
failing the whole workflow.
"""
from copy import deepcopy
from enum import Enum
from typing import Any, Callable, Mapping, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, ValidationError

from workflow_builder.models.workflow import (
    DEFAULT_WORKFLOW_NAME,
    ConnectionTable,
    Edge,
    Node,
    NodeConnections,
    WorkflowSpec,
    default_settings,
    merge_settings,
)
from workflow_builder.n8n.errors import InvalidInputError
from workflow_builder.n8n.positioning import DEFAULT_POSITION
from workflow_builder.n8n.references import append_edge, lenient_resolve, port_index

logger = structlog.get_logger()

# Node names conventionally used for the entry point of a workflow
DEFAULT_SOURCE_NAMES = ("Start", "Trigger")


class ConnectionShape(str, Enum):
    """Encodings accepted for the `connections` field."""
    EMPTY = "empty"
    CANONICAL = "canonical"
    FLAT_PER_SOURCE = "flat_per_source"
    EDGE_LIST = "edge_list"
    ORPHAN_PORT = "orphan_port"


class DiagnosticKind(str, Enum):
    """Non-fatal findings recorded during normalization."""
    UNRESOLVED_REFERENCE = "unresolved_reference"
    INFERRED_SOURCE = "inferred_source"
    UNSUPPORTED_CONNECTION_TYPE = "unsupported_connection_type"


class Diagnostic(BaseModel):
    """A non-fatal problem found while normalizing connections."""

    kind: DiagnosticKind
    message: str
    source: Optional[str] = None
    target: Optional[str] = None
    ambiguous: bool = Field(False, description="Set when a heuristic had more than one plausible answer")


class NormalizationResult(BaseModel):
    """Normalized workflow plus everything that was dropped or guessed."""

    workflow: WorkflowSpec
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    def has(self, kind: DiagnosticKind) -> bool:
        return any(d.kind == kind for d in self.diagnostics)


# =============================================================================
# Shape detection
# =============================================================================


def _is_bare_edge(value: Any) -> bool:
    return isinstance(value, Mapping) and "node" in value


def _is_edge_record(value: Any) -> bool:
    return isinstance(value, Mapping) and ("source" in value or "target" in value)


def _is_port_list(value: Any) -> bool:
    """`[[edge, ...], ...]`; null ports are tolerated."""
    return isinstance(value, list) and all(p is None or isinstance(p, list) for p in value)


def _is_port_table(value: Any) -> bool:
    """`{"main": [[edge, ...], ...], "ai_tool": [...], ...}`; `main` may be absent."""
    if not isinstance(value, Mapping):
        return False
    if "main" in value and not _is_port_list(value["main"]):
        return False
    return all(v is None or isinstance(v, list) for k, v in value.items() if k != "main")


def _is_flat_edges(value: Any) -> bool:
    if isinstance(value, Mapping) and "main" in value:
        value = value["main"]
    return isinstance(value, list) and all(_is_bare_edge(e) for e in value)


def detect_connection_shape(connections: Any, node_names: set[str]) -> ConnectionShape:
    """Classify the `connections` value of a raw workflow.

    Raises:
        InvalidInputError: if the value matches none of the known encodings
    """
    if connections is None or (isinstance(connections, (Mapping, list)) and len(connections) == 0):
        return ConnectionShape.EMPTY

    if isinstance(connections, Mapping):
        if (
            set(connections) == {"main"}
            and "main" not in node_names
            and (_is_port_list(connections["main"]) or _is_flat_edges(connections["main"]))
        ):
            return ConnectionShape.ORPHAN_PORT
        values = list(connections.values())
        if all(_is_port_table(v) for v in values):
            return ConnectionShape.CANONICAL
        if all(_is_flat_edges(v) for v in values):
            return ConnectionShape.FLAT_PER_SOURCE
        raise InvalidInputError(
            "Workflow connections object must map node names to port arrays or edge arrays"
        )

    if isinstance(connections, list):
        if all(_is_edge_record(c) for c in connections):
            return ConnectionShape.EDGE_LIST
        if all(_is_bare_edge(c) for c in connections) or all(
            isinstance(p, list) and all(_is_bare_edge(e) for e in p) for p in connections
        ):
            return ConnectionShape.ORPHAN_PORT
        raise InvalidInputError(
            "Workflow connections array must contain source/target connections"
        )

    raise InvalidInputError(
        "Workflow connections must be an object or an array of source/target connections"
    )


# =============================================================================
# Conversion
# =============================================================================


def infer_default_source(nodes: list[Node]) -> tuple[Optional[Node], bool]:
    """Best-effort guess of the node a sourceless connection list belongs to.

    Prefers a node named Start or Trigger, then a node whose type mentions
    "trigger", then the first node.

    Returns:
        The chosen node (None for an empty workflow) and whether the choice
        was ambiguous.
    """
    named = [n for n in nodes if n.name in DEFAULT_SOURCE_NAMES]
    if named:
        return named[0], len(named) > 1

    typed = [n for n in nodes if "trigger" in n.type.lower()]
    if typed:
        return typed[0], len(typed) > 1

    if nodes:
        return nodes[0], len(nodes) > 1
    return None, False


class _TableAssembler:
    """Accumulates a connection table and the diagnostics produced building it."""

    def __init__(self, nodes: list[Node]):
        self.nodes = nodes
        self.table: ConnectionTable = {}
        self.diagnostics: list[Diagnostic] = []

    def unresolved(self, source: Any, target: Any) -> None:
        message = f"Cannot find nodes for connection from {source} to {target}"
        logger.warning("connection_unresolved", source=source, target=target)
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.UNRESOLVED_REFERENCE,
            message=message,
            source=None if source is None else str(source),
            target=None if target is None else str(target),
        ))

    def unsupported(self, source: str, connection_type: Any) -> None:
        logger.warning("connection_type_unsupported", source=source, connection_type=connection_type)
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.UNSUPPORTED_CONNECTION_TYPE,
            message=f"Connection type {connection_type!r} from {source} is not supported",
            source=source,
        ))

    def reserve_ports(self, source: Node, count: int) -> None:
        entry = self.table.setdefault(source.name, NodeConnections())
        while len(entry.main) < count:
            entry.main.append([])

    def add_edge(self, source: Node, raw_edge: Any, output_index: int) -> None:
        if not _is_bare_edge(raw_edge):
            raise InvalidInputError(f"Connection from {source.name} must be an object with a node property")
        edge_type = raw_edge.get("type") or "main"
        if edge_type != "main":
            self.unsupported(source.name, edge_type)
            return
        target = lenient_resolve(self.nodes, raw_edge["node"])
        if target is None:
            self.unresolved(source.name, raw_edge["node"])
            return
        edge = Edge(node=target.name, index=port_index(raw_edge.get("index"), "index"))
        append_edge(self.table, source.name, edge, output_index)

    def connect(self, source_ref: Any, target_ref: Any, output_index: int, input_index: int) -> None:
        source = lenient_resolve(self.nodes, source_ref)
        target = lenient_resolve(self.nodes, target_ref)
        if source is None or target is None:
            self.unresolved(source_ref, target_ref)
            return
        append_edge(self.table, source.name, Edge(node=target.name, index=input_index), output_index)


def _from_canonical(connections: Mapping, asm: _TableAssembler) -> None:
    for source_ref, entry in connections.items():
        source = lenient_resolve(asm.nodes, source_ref)
        if source is None:
            asm.unresolved(source_ref, None)
            continue
        for key in entry:
            if key != "main":
                asm.unsupported(source.name, key)
        if "main" not in entry:
            # AI sub-nodes and unconnected nodes carry no main outputs
            continue
        ports = entry["main"] or []
        asm.reserve_ports(source, len(ports))
        for output_index, port in enumerate(ports):
            for raw_edge in port or []:
                asm.add_edge(source, raw_edge, output_index)


def _from_flat_per_source(connections: Mapping, asm: _TableAssembler) -> None:
    for source_ref, entry in connections.items():
        source = lenient_resolve(asm.nodes, source_ref)
        if source is None:
            asm.unresolved(source_ref, None)
            continue
        edges = entry["main"] if isinstance(entry, Mapping) else entry
        for raw_edge in edges:
            asm.add_edge(source, raw_edge, 0)


def _from_edge_list(connections: list, asm: _TableAssembler) -> None:
    for conn in connections:
        source_ref = conn.get("source")
        target_ref = conn.get("target")
        if not source_ref or not target_ref:
            raise InvalidInputError("Connection must have source and target properties")
        asm.connect(
            source_ref,
            target_ref,
            port_index(conn.get("sourceOutput"), "sourceOutput"),
            port_index(conn.get("targetInput"), "targetInput"),
        )


def _make_orphan_converter(infer_source: bool) -> Callable[[Any, _TableAssembler], None]:
    def _from_orphan_port(connections: Any, asm: _TableAssembler) -> None:
        if not infer_source:
            raise InvalidInputError(
                "Workflow connections do not identify a source node; "
                "use source/target connections or a per-node connection object"
            )
        ports = connections["main"] if isinstance(connections, Mapping) else connections
        if not _is_port_list(ports):
            ports = [ports]

        source, ambiguous = infer_default_source(asm.nodes)
        if source is None:
            asm.unresolved(None, None)
            return

        logger.warning(
            "connection_source_inferred",
            source=source.name,
            ambiguous=ambiguous,
        )
        asm.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.INFERRED_SOURCE,
            message=f"Connections without a source were attached to {source.name}",
            source=source.name,
            ambiguous=ambiguous,
        ))
        for output_index, port in enumerate(ports):
            for raw_edge in port or []:
                asm.add_edge(source, raw_edge, output_index)

    return _from_orphan_port


def normalize_connections(
    connections: Any,
    nodes: list[Node],
    infer_source: bool = True,
) -> tuple[ConnectionTable, list[Diagnostic]]:
    """Convert any supported connection encoding into a canonical table."""
    shape = detect_connection_shape(connections, {n.name for n in nodes})
    converters: dict[ConnectionShape, Callable[[Any, _TableAssembler], None]] = {
        ConnectionShape.EMPTY: lambda _connections, _asm: None,
        ConnectionShape.CANONICAL: _from_canonical,
        ConnectionShape.FLAT_PER_SOURCE: _from_flat_per_source,
        ConnectionShape.EDGE_LIST: _from_edge_list,
        ConnectionShape.ORPHAN_PORT: _make_orphan_converter(infer_source),
    }

    asm = _TableAssembler(nodes)
    converters[shape](connections, asm)
    logger.debug("connections_normalized", shape=shape.value, sources=len(asm.table))
    return asm.table, asm.diagnostics


# =============================================================================
# Workflow
# =============================================================================


def _normalize_node(raw: Any, index: int) -> Node:
    if not isinstance(raw, Mapping):
        raise InvalidInputError(f"Node at index {index} must be an object")
    if not isinstance(raw.get("type"), str) or not raw["type"]:
        raise InvalidInputError(f"Node at index {index} must have a type property")
    if not isinstance(raw.get("name"), str) or not raw["name"]:
        raise InvalidInputError(f"Node at index {index} must have a name property")

    data = dict(raw)
    data["id"] = str(data["id"]) if data.get("id") else str(uuid4())
    if not data.get("position"):
        data["position"] = DEFAULT_POSITION.as_list()
    if not data.get("typeVersion"):
        data["typeVersion"] = 1
    if data.get("disabled") is None:
        data["disabled"] = False
    if data.get("parameters") is None:
        data["parameters"] = {}

    try:
        return Node.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid node '{raw['name']}': {e}") from e


def normalize_with_diagnostics(raw: Any, *, infer_source: bool = True) -> NormalizationResult:
    """Normalize a raw workflow description and report what was dropped or guessed.

    Args:
        raw: JSON-compatible object with `nodes` and optional `connections`,
            `name`, `settings` and `staticData`
        infer_source: attach sourceless connection lists to a guessed entry
            node; when False such input is rejected

    Returns:
        The canonical workflow and the diagnostics collected on the way

    Raises:
        InvalidInputError: if the top-level shape or a node is malformed
    """
    if not isinstance(raw, Mapping):
        raise InvalidInputError("Workflow spec must be an object")
    if not isinstance(raw.get("nodes"), list):
        raise InvalidInputError("Workflow nodes must be an array")

    # Never touch the caller's object
    raw = deepcopy(raw)

    nodes = [_normalize_node(node, i) for i, node in enumerate(raw["nodes"])]
    connections, diagnostics = normalize_connections(raw.get("connections"), nodes, infer_source)

    name = raw.get("name")
    if name is None or name == "":
        name = DEFAULT_WORKFLOW_NAME
    elif not isinstance(name, str):
        raise InvalidInputError("Workflow name must be a string")

    raw_settings = raw.get("settings")
    if raw_settings is not None and not isinstance(raw_settings, Mapping):
        raise InvalidInputError("Workflow settings must be an object")
    static_data = raw.get("staticData")
    if static_data is not None and not isinstance(static_data, Mapping):
        raise InvalidInputError("Workflow staticData must be an object")

    try:
        settings = merge_settings(default_settings(), raw_settings)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid workflow settings: {e}") from e

    workflow = WorkflowSpec(
        name=name,
        nodes=nodes,
        connections=connections,
        settings=settings,
        staticData=static_data,
    )

    logger.debug(
        "workflow_normalized",
        workflow_name=name,
        node_count=len(nodes),
        diagnostic_count=len(diagnostics),
    )
    return NormalizationResult(workflow=workflow, diagnostics=diagnostics)


def normalize_workflow(raw: Any, *, infer_source: bool = True) -> WorkflowSpec:
    """Normalize a raw workflow description into a canonical WorkflowSpec."""
    return normalize_with_diagnostics(raw, infer_source=infer_source).workflow
