"""Node layout helpers for the n8n canvas."""
from workflow_builder.models.workflow import Position

# Starting position of the first node in a chain
DEFAULT_POSITION = Position(x=100, y=240)

# Horizontal distance between consecutive nodes
NODE_HORIZONTAL_SPACING = 200

# Vertical distance between sibling branch nodes
NODE_VERTICAL_SPACING = 140


def next_position(current: Position) -> Position:
    """Position one step to the right of `current`, on the same row."""
    return Position(x=current.x + NODE_HORIZONTAL_SPACING, y=current.y)


def branch_position(base: Position, branch_index: int, total_branches: int) -> Position:
    """Position of branch `branch_index` out of `total_branches` fanning out of `base`.

    Branches are centered on the source row around index
    `total_branches // 2`, so an even fan sits one slot higher than it
    sits lower (2 branches -> offsets -140, 0).
    """
    center = total_branches // 2
    y_offset = (branch_index - center) * NODE_VERTICAL_SPACING
    return Position(x=base.x + NODE_HORIZONTAL_SPACING, y=base.y + y_offset)
