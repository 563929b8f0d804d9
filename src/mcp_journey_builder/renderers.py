from html import escape

from .scene import BADGE_RADIUS, CAPTION_BASELINE_OFFSET, LABEL_BASELINE_OFFSET, Scene

SVG_WIDTH = 800
SVG_HEIGHT = 600
EDGE_COLOR = "#374151"
EDGE_LABEL_COLOR = "#FF0000"
LABEL_COLOR = "#1F2937"
CAPTION_COLOR = "#6B7280"
BADGE_COLOR = "#8B5CF6"
FONT = "system-ui, sans-serif"

_ARROWHEAD_DEFS = f"""<defs>
<marker id="arrowhead" markerWidth="10" markerHeight="7" refX="9" refY="3.5" orient="auto" markerUnits="strokeWidth">
<polygon points="0 0, 10 3.5, 0 7" fill="{EDGE_COLOR}"/>
</marker>
</defs>"""


def render_svg(scene: Scene, width: int = SVG_WIDTH, height: int = SVG_HEIGHT) -> str:
    """
    Render a scene to an SVG document. Edges are drawn first so node circles sit
    on top of the arrow tails.
    """
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" class="graph-background">',
        _ARROWHEAD_DEFS,
        f'<g transform="{scene.transform.svg_transform}">',
    ]

    for edge in scene.edges:
        (x1, y1), (x2, y2) = edge.start, edge.end
        parts.append(
            f'<line data-edge-id="{escape(edge.id)}" x1="{x1}" y1="{y1}" x2="{x2}" y2="{y2}" stroke="{EDGE_COLOR}" stroke-width="2" marker-end="url(#arrowhead)"/>'
        )
        if edge.label and edge.label_position:
            lx, ly = edge.label_position
            parts.append(
                f'<text data-edge-id="{escape(edge.id)}" x="{lx}" y="{ly}" text-anchor="middle" font-size="10" font-family="{FONT}" fill="{EDGE_LABEL_COLOR}">{escape(edge.label)}</text>'
            )

    for node in scene.nodes:
        cx, cy = node.center
        stroke_width = 3 if node.selected else 2
        parts.append(
            f'<circle data-node-id="{escape(node.id)}" cx="{cx}" cy="{cy}" r="{node.radius}" fill="{node.fill}" stroke="{node.stroke}" stroke-width="{stroke_width}"/>'
        )
        parts.append(
            f'<text data-node-id="{escape(node.id)}" x="{cx}" y="{cy + LABEL_BASELINE_OFFSET}" text-anchor="middle" font-size="10" font-weight="bold" font-family="{FONT}" fill="{LABEL_COLOR}">{escape(node.label)}</text>'
        )
        if node.caption:
            parts.append(
                f'<text data-node-id="{escape(node.id)}" x="{cx}" y="{cy + CAPTION_BASELINE_OFFSET}" text-anchor="middle" font-size="10" font-family="{FONT}" fill="{CAPTION_COLOR}">{escape(node.caption)}</text>'
            )
        if node.badge_center:
            bx, by = node.badge_center
            parts.append(
                f'<circle data-node-id="{escape(node.id)}" cx="{bx}" cy="{by}" r="{BADGE_RADIUS}" fill="{BADGE_COLOR}" stroke="#FFFFFF" stroke-width="2"/>'
            )
            parts.append(
                f'<text data-node-id="{escape(node.id)}" x="{bx}" y="{by + 5}" text-anchor="middle" font-size="10" font-weight="bold" font-family="{FONT}" fill="#FFFFFF">f</text>'
            )

    parts.append("</g>")
    parts.append("</svg>")
    return "\n".join(parts)
