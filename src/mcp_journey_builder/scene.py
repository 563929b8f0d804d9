import logging
import math

from pydantic import BaseModel, Field

from .journey_model import (
    DEFAULT_NODE_COLORS,
    NODE_TYPE_COLORS,
    Edge,
    Function,
    Journey,
    Node,
    NodeFunctionMapping,
    Property,
)
from .layout import Point, compute_layout
from .viewport import ViewportTransform

logger = logging.getLogger(__name__)

NODE_RADIUS = 35.0
LABEL_MAX_CHARS = 12
LABEL_CHAR_WIDTH = 6.0
LABEL_HEIGHT = 12.0
LABEL_BASELINE_OFFSET = 5.0
CAPTION_BASELINE_OFFSET = 45.0
EDGE_LABEL_OFFSET = 8.0
BADGE_OFFSET: Point = (20.0, -20.0)
BADGE_RADIUS = 8.0

NODE_STROKE = "#374151"
SELECTED_NODE_STROKE = "#3B82F6"

Box = tuple[float, float, float, float]


def truncate_label(name: str, max_chars: int = LABEL_MAX_CHARS) -> str:
    return name[:max_chars] + "..." if len(name) > max_chars else name


def _text_box(text: str, x: float, baseline: float) -> Box:
    "Approximate bounding box of centred text. (x0, y0, x1, y1)"
    half_width = len(text) * LABEL_CHAR_WIDTH / 2
    return (x - half_width, baseline - LABEL_HEIGHT, x + half_width, baseline + 2)


def _in_box(point: Point, box: Box) -> bool:
    return box[0] <= point[0] <= box[2] and box[1] <= point[1] <= box[3]


def _in_circle(point: Point, center: Point, radius: float) -> bool:
    return math.hypot(point[0] - center[0], point[1] - center[1]) <= radius


def edge_segment(source: Point, target: Point, radius: float) -> tuple[Point, Point] | None:
    """
    Segment from the boundary of the source circle to the boundary of the target
    circle. None when the centres coincide and no direction exists.
    """
    dx, dy = target[0] - source[0], target[1] - source[1]
    distance = math.hypot(dx, dy)
    if distance == 0:
        return None
    ux, uy = dx / distance, dy / distance
    return (
        (source[0] + ux * radius, source[1] + uy * radius),
        (target[0] - ux * radius, target[1] - uy * radius),
    )


def edge_label_position(start: Point, end: Point, offset: float = EDGE_LABEL_OFFSET) -> Point:
    "Midpoint of the segment pushed `offset` units along its left-hand normal."
    dx, dy = end[0] - start[0], end[1] - start[1]
    length = math.hypot(dx, dy) or 1.0
    mid_x, mid_y = (start[0] + end[0]) / 2, (start[1] + end[1]) / 2
    return (mid_x + dy / length * offset, mid_y - dx / length * offset)


class NodeGlyph(BaseModel):
    "A node as drawn: circle, label, property caption and mapping badge."

    id: str
    label: str
    node_type: str
    center: Point
    radius: float
    fill: str
    stroke: str
    selected: bool = False
    property_count: int = 0
    caption: str | None = None
    has_mapping: bool = False
    badge_center: Point | None = None
    label_box: Box
    caption_box: Box | None = None

    def contains(self, point: Point) -> bool:
        "Whether a scene point falls on any clickable part of the node."
        if _in_circle(point, self.center, self.radius):
            return True
        if _in_box(point, self.label_box):
            return True
        if self.caption_box is not None and _in_box(point, self.caption_box):
            return True
        return self.badge_center is not None and _in_circle(
            point, self.badge_center, BADGE_RADIUS
        )


class EdgeGlyph(BaseModel):
    "An edge as drawn, clipped to the node circles."

    id: str
    from_node_id: str
    to_node_id: str
    start: Point
    end: Point
    label: str | None = None
    label_position: Point | None = None


class Scene(BaseModel):
    """
    Renderer-independent description of one frame. Glyph coordinates are in
    scene space; `transform` maps them to the screen.
    """

    transform: ViewportTransform = Field(default_factory=ViewportTransform)
    nodes: list[NodeGlyph] = Field(default_factory=list)
    edges: list[EdgeGlyph] = Field(default_factory=list)
    selected_node_id: str | None = None

    def node_at(self, scene_point: Point) -> str | None:
        "Id of the topmost node under a scene point."
        for glyph in reversed(self.nodes):
            if glyph.contains(scene_point):
                return glyph.id
        return None

    def hit_test(self, screen_x: float, screen_y: float) -> str | None:
        "Id of the topmost node under a screen point."
        return self.node_at(self.transform.to_scene(screen_x, screen_y))


def _node_glyph(
    node: Node, center: Point, radius: float, selected: bool, has_mapping: bool
) -> NodeGlyph:
    label = truncate_label(node.name)
    caption = f"{len(node.properties)} props" if node.properties else None
    fill = NODE_TYPE_COLORS.get(node.type, DEFAULT_NODE_COLORS)[1]
    return NodeGlyph(
        id=node.id,
        label=label,
        node_type=node.type,
        center=center,
        radius=radius,
        fill=fill,
        stroke=SELECTED_NODE_STROKE if selected else NODE_STROKE,
        selected=selected,
        property_count=len(node.properties),
        caption=caption,
        has_mapping=has_mapping,
        badge_center=(
            (center[0] + BADGE_OFFSET[0], center[1] + BADGE_OFFSET[1])
            if has_mapping
            else None
        ),
        label_box=_text_box(label, center[0], center[1] + LABEL_BASELINE_OFFSET),
        caption_box=(
            _text_box(caption, center[0], center[1] + CAPTION_BASELINE_OFFSET)
            if caption
            else None
        ),
    )


def build_scene(
    journey: Journey,
    transform: ViewportTransform | None = None,
    selected_node_id: str | None = None,
    radius: float = NODE_RADIUS,
) -> Scene:
    """
    Build the scene for a journey snapshot and a viewport.

    Edges are drawn only when both endpoints exist and the source node is not a
    dead end. Elements that cannot be drawn are skipped, never fatal.
    """
    positions = compute_layout(journey.nodes)
    nodes = journey.nodes_dict
    mapped_node_ids = {m.node_id for m in journey.mappings}
    if selected_node_id not in nodes:
        selected_node_id = None

    edge_glyphs = []
    for edge in journey.edges:
        source, target = nodes.get(edge.from_node_id), nodes.get(edge.to_node_id)
        if source is None or target is None:
            if not edge.is_placeholder(nodes):
                logger.warning(f"Skipping edge {edge.id}: an endpoint does not exist")
            continue
        if source.is_terminal:
            continue
        segment = edge_segment(positions[source.id], positions[target.id], radius)
        if segment is None:
            logger.warning(f"Skipping edge {edge.id}: its nodes share a position")
            continue
        start, end = segment
        condition = edge.validation_condition.strip()
        edge_glyphs.append(
            EdgeGlyph(
                id=edge.id,
                from_node_id=edge.from_node_id,
                to_node_id=edge.to_node_id,
                start=start,
                end=end,
                label=condition or None,
                label_position=edge_label_position(start, end) if condition else None,
            )
        )

    node_glyphs = [
        _node_glyph(
            node,
            positions[node.id],
            radius,
            selected=node.id == selected_node_id,
            has_mapping=node.id in mapped_node_ids,
        )
        for node in journey.nodes
    ]

    return Scene(
        transform=transform or ViewportTransform(),
        nodes=node_glyphs,
        edges=edge_glyphs,
        selected_node_id=selected_node_id,
    )


class MappingDetail(BaseModel):
    "A mapping joined with the function it invokes."

    mapping: NodeFunctionMapping
    function: Function | None = None


class NodeDetails(BaseModel):
    "Everything the details panel shows for a selected node."

    node: Node
    properties: list[Property] = Field(default_factory=list)
    mappings: list[MappingDetail] = Field(default_factory=list)
    incoming: list[Edge] = Field(default_factory=list)
    outgoing: list[Edge] = Field(default_factory=list)


def node_details(journey: Journey, node_id: str) -> NodeDetails | None:
    "Resolve a node's properties, mappings with functions, and incident edges."
    node = journey.nodes_dict.get(node_id)
    if node is None:
        return None
    properties = journey.properties_dict
    functions = journey.functions_dict
    return NodeDetails(
        node=node,
        properties=[properties[pid] for pid in node.properties if pid in properties],
        mappings=[
            MappingDetail(mapping=m, function=functions.get(m.function_id))
            for m in journey.mappings
            if m.node_id == node_id
        ],
        incoming=[e for e in journey.edges if e.to_node_id == node_id],
        outgoing=[e for e in journey.edges if e.from_node_id == node_id],
    )
