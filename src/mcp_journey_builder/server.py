import logging
from collections.abc import Callable
from typing import Any, Literal, TypeVar

from fastmcp.exceptions import ToolError
from fastmcp.server import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field, ValidationError
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from .canvas import GraphCanvas
from .errors import JourneyError
from .journey_model import (
    Edge,
    Function,
    Journey,
    Node,
    NodeFunctionMapping,
    Property,
)
from .models import ExampleJourneyResponse, RenderedJourneyResponse
from .renderers import render_svg
from .scene import NodeDetails, Scene, node_details
from .static import EXAMPLE_JOURNEYS
from .store import JourneyStore
from .utils import format_namespace
from .viewport import ViewportTransform

logger = logging.getLogger("mcp_journey_builder")

T = TypeVar("T")

READ_ONLY = ToolAnnotations(
    readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False
)
DESTRUCTIVE = ToolAnnotations(
    readOnlyHint=False, destructiveHint=True, idempotentHint=True, openWorldHint=False
)


def _run(description: str, operation: Callable[..., T], *args: Any) -> T:
    "Run a store operation, turning rejections into tool errors."
    try:
        return operation(*args)
    except (JourneyError, ValidationError) as e:
        logger.error(f"Error during {description}: {e}")
        raise ToolError(f"Error during {description}: {e}")


def create_mcp_server(store: JourneyStore | None = None, namespace: str = "") -> FastMCP:
    """Create an MCP server instance around one journey editing session."""

    mcp: FastMCP = FastMCP("mcp-journey-builder")

    namespace_prefix = format_namespace(namespace)
    store = store if store is not None else JourneyStore()
    canvas = GraphCanvas.attach(store)

    @mcp.resource("resource://schema/journey")
    def journey_schema() -> dict[str, Any]:
        """Get the schema for a journey."""
        logger.info("Getting the schema for a journey.")
        return Journey.model_json_schema(by_alias=True)

    @mcp.resource("resource://schema/property")
    def property_schema() -> dict[str, Any]:
        """Get the schema for a property."""
        logger.info("Getting the schema for a property.")
        return Property.model_json_schema(by_alias=True)

    @mcp.resource("resource://schema/node")
    def node_schema() -> dict[str, Any]:
        """Get the schema for a node."""
        logger.info("Getting the schema for a node.")
        return Node.model_json_schema(by_alias=True)

    @mcp.resource("resource://schema/function")
    def function_schema() -> dict[str, Any]:
        """Get the schema for a function."""
        logger.info("Getting the schema for a function.")
        return Function.model_json_schema(by_alias=True)

    @mcp.resource("resource://schema/mapping")
    def mapping_schema() -> dict[str, Any]:
        """Get the schema for a node/function mapping."""
        logger.info("Getting the schema for a node/function mapping.")
        return NodeFunctionMapping.model_json_schema(by_alias=True)

    @mcp.resource("resource://schema/edge")
    def edge_schema() -> dict[str, Any]:
        """Get the schema for an edge."""
        logger.info("Getting the schema for an edge.")
        return Edge.model_json_schema(by_alias=True)

    # Journey

    @mcp.tool(name=namespace_prefix + "get_journey", annotations=READ_ONLY)
    def get_journey() -> Journey:
        "Return the journey being edited."
        logger.info("MCP tool: get_journey")
        return store.journey

    @mcp.tool(name=namespace_prefix + "new_journey")
    def new_journey(name: str = "", description: str = "") -> Journey:
        "Start editing a new, empty journey. The current journey is discarded."
        logger.info("MCP tool: new_journey")
        return store.load(Journey(name=name, description=description))

    @mcp.tool(name=namespace_prefix + "load_journey")
    def load_journey(
        journey: dict[str, Any] = Field(
            ..., description="A journey in the catalog (camelCase) shape."
        ),
    ) -> Journey:
        "Start editing a journey fetched from the catalog. The snapshot is validated first."
        logger.info("MCP tool: load_journey")
        return _run("load_journey", store.load, journey)

    @mcp.tool(name=namespace_prefix + "update_journey_details")
    def update_journey_details(
        name: str | None = None, description: str | None = None
    ) -> Journey:
        "Change the journey name and/or description."
        logger.info("MCP tool: update_journey_details")
        return store.update_details(name=name, description=description)

    @mcp.tool(name=namespace_prefix + "set_active")
    def set_active(active: bool = Field(..., description="Whether the journey is active.")) -> Journey:
        "Activate or deactivate the journey."
        logger.info(f"MCP tool: set_active ({active})")
        return store.set_active(active)

    @mcp.tool(name=namespace_prefix + "export_journey_json", annotations=READ_ONLY)
    def export_journey_json() -> str:
        "Export the journey as catalog JSON for saving. The journey must have a name."
        logger.info("MCP tool: export_journey_json")
        _run("export_journey_json", store.export_for_save)
        return store.journey.to_json_str()

    # Properties

    @mcp.tool(name=namespace_prefix + "add_property")
    def add_property(
        key: str = Field(..., description="The property key. Unique within the journey."),
        type: str = Field(
            ...,
            description="STRING, NUMBER, BOOLEAN, DATE, TIMESTAMP, RANGE, LIST or MAP.",
        ),
        validation_condition: str | None = None,
    ) -> Property:
        "Add a property to the journey's vocabulary."
        logger.info(f"MCP tool: add_property ({key})")
        return _run("add_property", store.add_property, key, type, validation_condition)

    @mcp.tool(name=namespace_prefix + "update_property")
    def update_property(
        property_id: str = Field(..., description="The id of the property."),
        patch: dict[str, Any] = Field(..., description="The fields to change."),
    ) -> Property:
        "Update a property. Renaming the key carries the new key into functions and mappings."
        logger.info(f"MCP tool: update_property ({property_id})")
        return _run("update_property", store.update_property, property_id, patch)

    @mcp.tool(name=namespace_prefix + "delete_property", annotations=DESTRUCTIVE)
    def delete_property(
        property_id: str = Field(..., description="The id of the property."),
    ) -> Journey:
        "Delete a property and every reference to it."
        logger.info(f"MCP tool: delete_property ({property_id})")
        _run("delete_property", store.delete_property, property_id)
        return store.journey

    # Nodes

    @mcp.tool(name=namespace_prefix + "add_node")
    def add_node(
        node: dict[str, Any] = Field(
            ..., description="The node: name, type (input, loader, dead_end), description, properties, optional x/y."
        ),
    ) -> Node:
        "Add a node to the journey."
        logger.info("MCP tool: add_node")
        return _run("add_node", store.add_node, node)

    @mcp.tool(name=namespace_prefix + "update_node")
    def update_node(
        node_id: str = Field(..., description="The id of the node."),
        patch: dict[str, Any] = Field(..., description="The fields to change."),
    ) -> Node:
        "Update a node."
        logger.info(f"MCP tool: update_node ({node_id})")
        return _run("update_node", store.update_node, node_id, patch)

    @mcp.tool(name=namespace_prefix + "delete_node", annotations=DESTRUCTIVE)
    def delete_node(node_id: str = Field(..., description="The id of the node.")) -> Journey:
        "Delete a node with its edges and mappings."
        logger.info(f"MCP tool: delete_node ({node_id})")
        _run("delete_node", store.delete_node, node_id)
        return store.journey

    # Functions

    @mcp.tool(name=namespace_prefix + "add_function")
    def add_function(
        function: dict[str, Any] = Field(
            ..., description="The function: referenceId (optional), name, type (API, KAFKA), config, inputProperties, outputProperties."
        ),
    ) -> Function:
        "Add a function to the journey."
        logger.info("MCP tool: add_function")
        return _run("add_function", store.add_function, function)

    @mcp.tool(name=namespace_prefix + "update_function")
    def update_function(
        reference_id: str = Field(..., description="The referenceId of the function."),
        patch: dict[str, Any] = Field(..., description="The fields to change."),
    ) -> Function:
        "Update a function."
        logger.info(f"MCP tool: update_function ({reference_id})")
        return _run("update_function", store.update_function, reference_id, patch)

    @mcp.tool(name=namespace_prefix + "delete_function", annotations=DESTRUCTIVE)
    def delete_function(
        reference_id: str = Field(..., description="The referenceId of the function."),
    ) -> Journey:
        "Delete a function and the mappings that invoke it."
        logger.info(f"MCP tool: delete_function ({reference_id})")
        _run("delete_function", store.delete_function, reference_id)
        return store.journey

    # Mappings

    @mcp.tool(name=namespace_prefix + "add_mapping")
    def add_mapping(
        mapping: dict[str, Any] = Field(
            ..., description="The mapping: nodeId, functionId, name, description, condition and optional variableMappings."
        ),
    ) -> NodeFunctionMapping:
        "Bind a function to a node. Variable mappings are derived from the function when omitted."
        logger.info("MCP tool: add_mapping")
        return _run("add_mapping", store.add_mapping, mapping)

    @mcp.tool(name=namespace_prefix + "update_mapping")
    def update_mapping(
        mapping_id: str = Field(..., description="The id of the mapping."),
        patch: dict[str, Any] = Field(..., description="The fields to change."),
    ) -> NodeFunctionMapping:
        "Update a mapping."
        logger.info(f"MCP tool: update_mapping ({mapping_id})")
        return _run("update_mapping", store.update_mapping, mapping_id, patch)

    @mcp.tool(name=namespace_prefix + "delete_mapping", annotations=DESTRUCTIVE)
    def delete_mapping(
        mapping_id: str = Field(..., description="The id of the mapping."),
    ) -> Journey:
        "Delete a mapping."
        logger.info(f"MCP tool: delete_mapping ({mapping_id})")
        _run("delete_mapping", store.delete_mapping, mapping_id)
        return store.journey

    # Edges

    @mcp.tool(name=namespace_prefix + "add_edge")
    def add_edge(
        edge: dict[str, Any] = Field(
            ..., description="The edge: fromNodeId, toNodeId and an optional validationCondition."
        ),
    ) -> Edge:
        "Add a directed edge between two different nodes."
        logger.info("MCP tool: add_edge")
        return _run("add_edge", store.add_edge, edge)

    @mcp.tool(name=namespace_prefix + "update_edge")
    def update_edge(
        edge_id: str = Field(..., description="The id of the edge."),
        patch: dict[str, Any] = Field(..., description="The fields to change."),
    ) -> Edge:
        "Update an edge."
        logger.info(f"MCP tool: update_edge ({edge_id})")
        return _run("update_edge", store.update_edge, edge_id, patch)

    @mcp.tool(name=namespace_prefix + "delete_edge", annotations=DESTRUCTIVE)
    def delete_edge(edge_id: str = Field(..., description="The id of the edge.")) -> Journey:
        "Delete an edge."
        logger.info(f"MCP tool: delete_edge ({edge_id})")
        _run("delete_edge", store.delete_edge, edge_id)
        return store.journey

    # Canvas

    @mcp.tool(name=namespace_prefix + "get_scene", annotations=READ_ONLY)
    def get_scene() -> Scene:
        "Get the laid out scene of the journey graph for the current viewport and selection."
        logger.info("MCP tool: get_scene")
        return canvas.scene

    @mcp.tool(name=namespace_prefix + "click_canvas")
    def click_canvas(
        screen_x: float = Field(..., description="Pointer x in screen coordinates."),
        screen_y: float = Field(..., description="Pointer y in screen coordinates."),
    ) -> NodeDetails | None:
        "Click the canvas. Toggles selection of the node under the pointer and returns its details."
        logger.info(f"MCP tool: click_canvas ({screen_x}, {screen_y})")
        canvas.click(screen_x, screen_y)
        return canvas.selected_details()

    @mcp.tool(name=namespace_prefix + "zoom_canvas")
    def zoom_canvas(
        screen_x: float = Field(..., description="Pointer x in screen coordinates."),
        screen_y: float = Field(..., description="Pointer y in screen coordinates."),
        delta_y: float = Field(
            ..., description="Wheel delta. Positive zooms out, negative zooms in."
        ),
    ) -> ViewportTransform:
        "Zoom the canvas towards the pointer."
        logger.info(f"MCP tool: zoom_canvas ({screen_x}, {screen_y}, {delta_y})")
        return canvas.wheel(screen_x, screen_y, delta_y)

    @mcp.tool(name=namespace_prefix + "zoom_canvas_in")
    def zoom_canvas_in() -> ViewportTransform:
        "Zoom in one toolbar step, keeping the translation."
        logger.info("MCP tool: zoom_canvas_in")
        return canvas.zoom_in()

    @mcp.tool(name=namespace_prefix + "zoom_canvas_out")
    def zoom_canvas_out() -> ViewportTransform:
        "Zoom out one toolbar step, keeping the translation."
        logger.info("MCP tool: zoom_canvas_out")
        return canvas.zoom_out()

    @mcp.tool(name=namespace_prefix + "pan_canvas")
    def pan_canvas(
        start_x: float = Field(..., description="Drag start x in screen coordinates."),
        start_y: float = Field(..., description="Drag start y in screen coordinates."),
        end_x: float = Field(..., description="Drag end x in screen coordinates."),
        end_y: float = Field(..., description="Drag end y in screen coordinates."),
    ) -> ViewportTransform:
        """
        Drag the canvas from one screen point to another. A drag that starts on
        a node does not pan.
        """
        logger.info(f"MCP tool: pan_canvas ({start_x}, {start_y}) -> ({end_x}, {end_y})")
        if canvas.pointer_down(start_x, start_y):
            canvas.pointer_move(end_x, end_y)
            canvas.pointer_up()
        return canvas.transform

    @mcp.tool(name=namespace_prefix + "reset_view")
    def reset_view() -> ViewportTransform:
        "Reset pan and zoom."
        logger.info("MCP tool: reset_view")
        return canvas.reset_view()

    @mcp.tool(name=namespace_prefix + "render_journey_svg", annotations=READ_ONLY)
    def render_journey_svg() -> RenderedJourneyResponse:
        "Render the journey graph as SVG. This should be presented to the user as an artifact if possible."
        logger.info("MCP tool: render_journey_svg")
        scene = canvas.scene
        return RenderedJourneyResponse(scene=scene, svg=render_svg(scene))

    @mcp.tool(name=namespace_prefix + "get_mermaid_config_str", annotations=READ_ONLY)
    def get_mermaid_config_str() -> str:
        "Get the Mermaid configuration string for the journey. This may be visualized in applications with Mermaid support."
        logger.info("MCP tool: get_mermaid_config_str")
        return store.journey.get_mermaid_config_str()

    @mcp.tool(name=namespace_prefix + "get_node_details", annotations=READ_ONLY)
    def get_node_details(
        node_id: str = Field(..., description="The id of the node."),
    ) -> NodeDetails:
        "Get a node's properties, mappings with their functions, and incoming and outgoing edges."
        logger.info(f"MCP tool: get_node_details ({node_id})")
        details = node_details(store.journey, node_id)
        if details is None:
            logger.error(f"Node {node_id} does not exist in journey")
            raise ToolError(f"Node {node_id} does not exist in journey")
        return details

    # Examples

    @mcp.tool(name=namespace_prefix + "get_example_journey", annotations=READ_ONLY)
    def get_example_journey(
        example_name: str = Field(
            ...,
            description="Name of the example to load: 'kyc_onboarding' or 'draft'",
        ),
    ) -> ExampleJourneyResponse:
        """Get an example journey. Returns the journey and its Mermaid visualization configuration."""
        logger.info(f"Getting example journey: {example_name}")

        if example_name not in EXAMPLE_JOURNEYS:
            raise ValueError(
                f"Unknown example: {example_name}. Available examples: {list(EXAMPLE_JOURNEYS.keys())}"
            )

        journey = Journey.model_validate(EXAMPLE_JOURNEYS[example_name]["journey"])
        return ExampleJourneyResponse(
            journey=journey, mermaid_config=journey.get_mermaid_config_str()
        )

    @mcp.tool(name=namespace_prefix + "list_example_journeys", annotations=READ_ONLY)
    def list_example_journeys() -> dict[str, Any]:
        """List all available example journeys with descriptions."""
        logger.info("Listing available example journeys.")

        examples = {
            name: {
                "name": example["name"],
                "description": example["description"],
                "nodes": len(example["journey"]["nodes"]),
                "edges": len(example["journey"]["edges"]),
            }
            for name, example in EXAMPLE_JOURNEYS.items()
        }

        return {
            "available_examples": examples,
            "total_examples": len(examples),
            "usage": "Use the get_example_journey tool with any of the example names above to get a specific journey, then load_journey to edit it",
        }

    return mcp


async def main(
    transport: Literal["stdio", "sse", "http"] = "stdio",
    namespace: str = "",
    host: str = "127.0.0.1",
    port: int = 8000,
    path: str = "/mcp/",
    allow_origins: list[str] = [],
    allowed_hosts: list[str] = [],
) -> None:
    logger.info("Starting MCP Journey Builder Server")

    custom_middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        ),
        Middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts),
    ]

    mcp = create_mcp_server(namespace=namespace)

    match transport:
        case "http":
            logger.info(
                f"Running Journey Builder MCP Server with HTTP transport on {host}:{port}..."
            )
            await mcp.run_http_async(
                host=host, port=port, path=path, middleware=custom_middleware
            )
        case "stdio":
            logger.info("Running Journey Builder MCP Server with stdio transport...")
            await mcp.run_stdio_async()
        case "sse":
            logger.info(
                f"Running Journey Builder MCP Server with SSE transport on {host}:{port}..."
            )
            await mcp.run_http_async(
                host=host,
                port=port,
                path=path,
                middleware=custom_middleware,
                transport="sse",
            )
