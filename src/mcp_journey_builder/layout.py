import math

from .journey_model import Node

NODE_SPACING = 150.0
LAYOUT_OFFSET = 100.0
MIN_COLUMNS = 3

Point = tuple[float, float]


def grid_columns(node_count: int) -> int:
    "Number of grid columns used for `node_count` nodes."
    return max(MIN_COLUMNS, math.ceil(math.sqrt(node_count * 1.5)))


def compute_layout(
    nodes: list[Node],
    spacing: float = NODE_SPACING,
    offset: float = LAYOUT_OFFSET,
) -> dict[str, Point]:
    """
    Place nodes on a grid in journey order. {node_id: (x, y)}

    Node `i` lands in row `i // columns`, column `i % columns`. A node carrying
    an explicit `x` and/or `y` keeps that coordinate, so removing or inserting
    other nodes never moves it. The result is recomputed on every call.
    """
    columns = grid_columns(len(nodes))
    positions: dict[str, Point] = {}
    for index, node in enumerate(nodes):
        row, col = divmod(index, columns)
        x = node.x if node.x is not None else (col + 1) * spacing + offset
        y = node.y if node.y is not None else (row + 1) * spacing + offset
        positions[node.id] = (float(x), float(y))
    return positions
