"""Node reference resolution and connection table bookkeeping.

Two resolution policies exist on purpose:

- `lenient_resolve` is used for externally authored specs, which may point at
  nodes by id or by name and may reference nodes that were never declared.
  A miss yields `None` and the caller drops the connection.
- `strict_resolve` is used by the builder, where the caller created both
  endpoints itself, so a miss is a programming error and raises.
"""
from typing import Any, Iterable, Optional

from workflow_builder.models.workflow import ConnectionTable, Edge, Node, NodeConnections
from workflow_builder.n8n.errors import InvalidInputError, NodeNotFoundError


def lenient_resolve(nodes: Iterable[Node], ref: Any) -> Optional[Node]:
    """Find the first node whose id or name equals `ref`."""
    if ref is None:
        return None
    for node in nodes:
        if node.id == ref or node.name == ref:
            return node
    return None


def strict_resolve(nodes: Iterable[Node], node_id: str, role: str = "node") -> Node:
    """Find a node by id or raise NodeNotFoundError."""
    for node in nodes:
        if node.id == node_id:
            return node
    raise NodeNotFoundError(f"{role.capitalize()} with ID {node_id} not found", node_id=node_id)


def port_index(value: Any, field: str) -> int:
    """Validate a port number from JSON input; integral floats such as 1.0 are accepted."""
    if value is None:
        return 0
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"Connection {field} must be a non-negative integer, got {value!r}")
    return value


def append_edge(
    connections: ConnectionTable,
    source_name: str,
    edge: Edge,
    output_index: int = 0,
) -> None:
    """Append `edge` to `source_name`'s output port, padding lower ports with empty lists."""
    if output_index < 0:
        raise ValueError(f"output index must be >= 0, got {output_index}")

    node_connections = connections.setdefault(source_name, NodeConnections())
    while len(node_connections.main) <= output_index:
        node_connections.main.append([])
    node_connections.main[output_index].append(edge)
