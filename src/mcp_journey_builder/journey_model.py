import json
import uuid
from collections import Counter
from collections.abc import Container
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

PropertyType = Literal[
    "STRING", "NUMBER", "BOOLEAN", "DATE", "TIMESTAMP", "RANGE", "LIST", "MAP"
]
NodeType = Literal["input", "loader", "dead_end"]
FunctionType = Literal["API", "KAFKA"]
HeaderType = Literal["constant", "property"]
MappingType = Literal["INPUT", "OUTPUT"]

PROPERTY_TYPES: tuple[str, ...] = PropertyType.__args__
NODE_TYPES: tuple[str, ...] = NodeType.__args__
FUNCTION_TYPES: tuple[str, ...] = FunctionType.__args__

# Placeholder edge some remote snapshots carry before any real edge exists.
START_MARKER = "start"
END_MARKER = "end"

NODE_TYPE_COLORS = {
    "input": ("#dbeafe", "#3B82F6"),  # Light Blue / Blue
    "loader": ("#fef3c7", "#F59E0B"),  # Light Amber / Amber
    "dead_end": ("#fee2e2", "#EF4444"),  # Light Red / Red
}
DEFAULT_NODE_COLORS = ("#f3f4f6", "#6B7280")  # Light Grey / Grey


def new_id() -> str:
    "Generate an opaque identifier."
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _find_duplicates(values: list[str]) -> dict[str, int]:
    return {value: count for value, count in Counter(values).items() if count > 1}


class JourneyBaseModel(BaseModel):
    "Frozen model that reads and writes the camelCase catalog shape."

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class Property(JourneyBaseModel):
    "A named, typed value in the journey's shared vocabulary."

    id: str = Field(default_factory=new_id, description="The property identifier.")
    key: str = Field(description="The property key. Unique within a journey.")
    type: PropertyType = Field(default="STRING", description="The value type.")
    validation_condition: str | None = Field(
        default=None, description="An opaque validation expression, if any."
    )

    @field_validator("key", mode="before")
    def validate_key(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("type", mode="before")
    def validate_type(cls, v: Any) -> Any:
        "Validate the type."
        return v.upper() if isinstance(v, str) else v


class Node(JourneyBaseModel):
    "A step in the journey graph."

    id: str = Field(default_factory=new_id, description="The node identifier.")
    name: str = Field(default="", description="The display name of the node.")
    type: NodeType = Field(description="The node type.")
    description: str = Field(default="", description="A free text description.")
    properties: list[str] = Field(
        default_factory=list, description="The ids of the properties attached to the node."
    )
    x: float | None = Field(default=None, description="Manual x position, if any.")
    y: float | None = Field(default=None, description="Manual y position, if any.")

    @field_validator("type", mode="before")
    def validate_type(cls, v: Any) -> Any:
        "Validate the type."
        return v.lower() if isinstance(v, str) else v

    @property
    def is_terminal(self) -> bool:
        return self.type == "dead_end"


class HeaderEntry(JourneyBaseModel):
    "A request header. `value` is a literal for constants and a property key otherwise."

    key: str
    type: HeaderType = "constant"
    value: str = ""


class RequestBodyEntry(JourneyBaseModel):
    "Binds an API request body field to a property key."

    id: str = Field(default_factory=new_id)
    api_field: str
    property: str


class FunctionConfig(JourneyBaseModel):
    "Transport configuration of a function. Unknown keys from the catalog are kept."

    model_config = ConfigDict(extra="allow")

    host: str = ""
    path: str = ""
    method: str = Field(
        default="GET", validation_alias=AliasChoices("method", "httpMethod")
    )
    headers: list[HeaderEntry] = Field(default_factory=list)
    header_params: dict[str, str] = Field(default_factory=dict)
    request_body: list[RequestBodyEntry] = Field(default_factory=list)
    request_body_path: dict[str, str] = Field(default_factory=dict)

    @field_validator("headers", mode="before")
    def validate_headers(cls, v: Any) -> Any:
        "Accept the legacy {key: value} header map as constant headers."
        if isinstance(v, dict):
            return [{"key": k, "type": "constant", "value": val} for k, val in v.items()]
        return v

    @field_validator("request_body", mode="before")
    def validate_request_body(cls, v: Any) -> Any:
        "Legacy catalogs send a raw JSON string or null here, which carries no bindings."
        if v is None or isinstance(v, str):
            return []
        return v

    @property
    def referenced_property_keys(self) -> list[str]:
        "Property keys referenced by property headers and request body bindings, in order."
        keys = [h.value for h in self.headers if h.type == "property" and h.value]
        keys.extend(entry.property for entry in self.request_body if entry.property)
        return list(dict.fromkeys(keys))


class Function(JourneyBaseModel):
    "A declarative description of an invocable external operation."

    reference_id: str = Field(
        default_factory=new_id, description="The function identifier."
    )
    name: str = Field(default="", description="The display name of the function.")
    type: FunctionType = Field(default="API", description="API or KAFKA.")
    config: FunctionConfig = Field(default_factory=FunctionConfig)
    input_properties: dict[str, str] = Field(
        default_factory=dict, description="Declared inputs. {property_key: type}"
    )
    output_properties: dict[str, str] = Field(
        default_factory=dict, description="Declared outputs. {property_key: type}"
    )

    @field_validator("type", mode="before")
    def validate_type(cls, v: Any) -> Any:
        "Validate the type."
        return v.upper() if isinstance(v, str) else v

    @property
    def id(self) -> str:
        return self.reference_id


class VariableMapping(JourneyBaseModel):
    "A single field binding between a function contract and a journey property."

    id: str = Field(default_factory=new_id)
    mapping_type: MappingType
    strategy: str = "DIRECT"
    source_variable_name: str = ""
    source_variable_type: str = ""
    source_variable_expression: str = ""
    mandatory: bool = False
    target_parameter_name: str = ""
    target_parameter_type: str = ""
    transformation_expression: str | None = None
    default_value: str | None = None


class NodeFunctionMapping(JourneyBaseModel):
    "Binds one function invocation to one node."

    id: str = Field(default_factory=new_id)
    name: str = ""
    description: str = ""
    node_id: str
    function_id: str
    condition: str = ""
    variable_mappings: list[VariableMapping] = Field(default_factory=list)

    @field_validator("variable_mappings", mode="before")
    def validate_variable_mappings(cls, v: Any) -> Any:
        return [] if v is None else v


class Edge(JourneyBaseModel):
    "A directed, optionally guarded transition between two nodes."

    id: str = Field(default_factory=new_id)
    from_node_id: str
    to_node_id: str
    validation_condition: str = ""

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_node_id, self.to_node_id)

    def is_placeholder(self, node_ids: Container[str] = ()) -> bool:
        """
        Whether this is the start/end marker edge. Once both markers are real
        nodes of the journey the edge is an ordinary edge.
        """
        if self.pair != (START_MARKER, END_MARKER):
            return False
        return not (self.from_node_id in node_ids and self.to_node_id in node_ids)


class Journey(JourneyBaseModel):
    "The aggregate root: properties, nodes, functions, mappings and edges."

    id: str = Field(default_factory=new_id)
    name: str = ""
    description: str = ""
    properties: list[Property] = Field(default_factory=list)
    nodes: list[Node] = Field(default_factory=list)
    functions: list[Function] = Field(default_factory=list)
    mappings: list[NodeFunctionMapping] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    is_active: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("properties")
    def validate_properties(cls, properties: list[Property]) -> list[Property]:
        "Validate the properties."
        for key, count in _find_duplicates([p.key for p in properties]).items():
            raise ValueError(f"Property key {key} appears {count} times in journey")
        for pid, count in _find_duplicates([p.id for p in properties]).items():
            raise ValueError(f"Property id {pid} appears {count} times in journey")
        return properties

    @field_validator("nodes")
    def validate_nodes(cls, nodes: list[Node], info: ValidationInfo) -> list[Node]:
        "Validate the nodes."
        for nid, count in _find_duplicates([n.id for n in nodes]).items():
            raise ValueError(f"Node id {nid} appears {count} times in journey")

        property_ids = {p.id for p in info.data.get("properties", [])}
        for node in nodes:
            for pid in node.properties:
                if pid not in property_ids:
                    raise ValueError(
                        f"Node {node.id} references property {pid} that does not exist in journey"
                    )
        return nodes

    @field_validator("functions")
    def validate_functions(cls, functions: list[Function]) -> list[Function]:
        "Validate the functions."
        for fid, count in _find_duplicates([f.reference_id for f in functions]).items():
            raise ValueError(f"Function {fid} appears {count} times in journey")
        return functions

    @field_validator("mappings")
    def validate_mappings(
        cls, mappings: list[NodeFunctionMapping], info: ValidationInfo
    ) -> list[NodeFunctionMapping]:
        "Validate the mappings."
        node_ids = {n.id for n in info.data.get("nodes", [])}
        function_ids = {f.reference_id for f in info.data.get("functions", [])}
        for mapping in mappings:
            if mapping.node_id not in node_ids:
                raise ValueError(
                    f"Mapping {mapping.id} has a node that does not exist in journey"
                )
            if mapping.function_id not in function_ids:
                raise ValueError(
                    f"Mapping {mapping.id} has a function that does not exist in journey"
                )

        bindings = [f"{m.node_id}/{m.function_id}" for m in mappings]
        for binding, count in _find_duplicates(bindings).items():
            raise ValueError(f"Mapping {binding} appears {count} times in journey")
        return mappings

    @field_validator("edges")
    def validate_edges(cls, edges: list[Edge], info: ValidationInfo) -> list[Edge]:
        "Validate the edges."
        node_ids = {n.id for n in info.data.get("nodes", [])}
        for edge in edges:
            if edge.from_node_id == edge.to_node_id:
                raise ValueError(f"Edge {edge.id} starts and ends on the same node")
            if edge.is_placeholder(node_ids):
                continue
            if edge.from_node_id not in node_ids:
                raise ValueError(
                    f"Edge {edge.id} has a start node that does not exist in journey"
                )
            if edge.to_node_id not in node_ids:
                raise ValueError(
                    f"Edge {edge.id} has an end node that does not exist in journey"
                )

        pairs = [f"{e.from_node_id}->{e.to_node_id}" for e in edges]
        for pair, count in _find_duplicates(pairs).items():
            raise ValueError(f"Edge {pair} appears {count} times in journey")
        return edges

    @property
    def properties_dict(self) -> dict[str, Property]:
        "Return a dictionary of the properties of the journey. {property_id: property}"
        return {p.id: p for p in self.properties}

    @property
    def nodes_dict(self) -> dict[str, Node]:
        "Return a dictionary of the nodes of the journey. {node_id: node}"
        return {n.id: n for n in self.nodes}

    @property
    def functions_dict(self) -> dict[str, Function]:
        "Return a dictionary of the functions of the journey. {reference_id: function}"
        return {f.reference_id: f for f in self.functions}

    def property_by_key(self, key: str) -> Property | None:
        return next((p for p in self.properties if p.key == key), None)

    def _generate_mermaid_config_styling_str(self) -> str:
        "Generate the Mermaid styling string, one class per node type."
        node_color_config = ""

        for node_type in NODE_TYPES:
            fill, stroke = NODE_TYPE_COLORS[node_type]
            members = [
                f"node_{idx}" for idx, n in enumerate(self.nodes) if n.type == node_type
            ]
            if not members:
                continue
            node_color_config += f"classDef {node_type}_color fill:{fill},stroke:{stroke},stroke-width:3px,color:#000,font-size:12px\nclass {','.join(members)} {node_type}_color\n\n"

        return f"""
%% Styling
{node_color_config}
        """

    def get_mermaid_config_str(self) -> str:
        "Get the Mermaid configuration string for the journey."
        mermaid_ids = {n.id: f"node_{idx}" for idx, n in enumerate(self.nodes)}
        properties = self.properties_dict
        mermaid_nodes = []
        for node in self.nodes:
            props = [
                f"<br/>{properties[pid].key}: {properties[pid].type}"
                for pid in node.properties
                if pid in properties
            ]
            mermaid_nodes.append(
                f'{mermaid_ids[node.id]}["{node.name} ({node.type}){"".join(props)}"]'
            )

        mermaid_edges = []
        for edge in self.edges:
            if edge.from_node_id not in mermaid_ids or edge.to_node_id not in mermaid_ids:
                continue
            condition = (
                f"|{edge.validation_condition}|" if edge.validation_condition.strip() else ""
            )
            mermaid_edges.append(
                f"{mermaid_ids[edge.from_node_id]} -->{condition} {mermaid_ids[edge.to_node_id]}"
            )

        nodes_formatted = "\n".join(mermaid_nodes)
        edges_formatted = "\n".join(mermaid_edges)
        return f"""graph TD
%% Nodes
{nodes_formatted}

%% Edges
{edges_formatted}

{self._generate_mermaid_config_styling_str()}
"""

    def to_catalog_dict(self) -> dict[str, Any]:
        "Convert the journey to the camelCase dictionary the remote catalog stores."
        return self.model_dump(mode="json", by_alias=True)

    def to_json_str(self) -> str:
        "Convert the journey to a catalog JSON string."
        return json.dumps(self.to_catalog_dict(), indent=2)
