import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel

from .errors import (
    DanglingReferenceError,
    DuplicateEdgeError,
    DuplicateKeyError,
    DuplicateMappingError,
    ImmutableIdentifierError,
    MissingRequiredFieldError,
    SelfLoopError,
)
from .journey_model import (
    Edge,
    Function,
    Journey,
    Node,
    NodeFunctionMapping,
    Property,
    new_id,
    utc_now,
)
from .mapping_draft import derive_variable_mappings

logger = logging.getLogger("mcp_journey_builder")

ModelT = TypeVar("ModelT", bound=BaseModel)
Listener = Callable[[Journey], None]


def _normalize_keys(model_cls: type[BaseModel], data: Mapping[str, Any]) -> dict[str, Any]:
    "Translate camelCase aliases to field names. Unknown keys are passed through."
    names = {}
    for name, field in model_cls.model_fields.items():
        names[name] = name
        if field.alias:
            names[field.alias] = name
    return {names.get(k, k): v for k, v in data.items()}


def _as_data(model_cls: type[ModelT], value: ModelT | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(value, model_cls):
        return value.model_dump()
    return _normalize_keys(model_cls, value)


def _require(data: Mapping[str, Any], field: str, entity: str) -> None:
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingRequiredFieldError(f"{entity} {field} is required")


def _apply_patch(entity: ModelT, patch: Mapping[str, Any], id_field: str) -> ModelT:
    "Merge `patch` over `entity` and revalidate. Identifiers are immutable."
    changes = _normalize_keys(type(entity), patch)
    current_id = getattr(entity, id_field)
    if id_field in changes and changes[id_field] != current_id:
        raise ImmutableIdentifierError(
            f"{type(entity).__name__} {current_id} cannot change its identifier"
        )
    data = entity.model_dump()
    data.update(changes)
    return type(entity).model_validate(data)


def _replace(items: list[ModelT], old: ModelT, new: ModelT) -> list[ModelT]:
    return [new if item is old else item for item in items]


def merge_function_catalog(
    catalog: Iterable[Function | Mapping[str, Any]], journey_functions: Iterable[Function]
) -> list[Function]:
    """
    Merge the remote function catalog with the functions already in a journey.
    Journey functions take precedence over catalog entries with the same referenceId.
    """
    merged: dict[str, Function] = {}
    for item in catalog:
        function = item if isinstance(item, Function) else Function.model_validate(item)
        merged[function.reference_id] = function
    for function in journey_functions:
        merged[function.reference_id] = function
    return list(merged.values())


class JourneyStore:
    """
    Owns the journey being edited and every mutation of it.

    Each successful edit replaces the snapshot with a new `Journey`
    (unchanged children are shared), refreshes `updated_at` and notifies
    subscribers. `load` notifies without touching `updated_at`. A rejected
    operation raises a `JourneyError` and leaves the snapshot as it was.
    """

    def __init__(
        self,
        journey: Journey | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self._clock = clock
        self._new_id = id_factory
        if journey is None:
            now = clock()
            journey = Journey(id=id_factory(), created_at=now, updated_at=now)
        self._journey = journey
        self._listeners: list[Listener] = []

    @classmethod
    def from_catalog(cls, data: Mapping[str, Any], **kwargs: Any) -> "JourneyStore":
        "Open an editing session on a journey fetched by the host."
        return cls(Journey.model_validate(data), **kwargs)

    @property
    def journey(self) -> Journey:
        "The current snapshot."
        return self._journey

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        "Call `listener` with every new snapshot. Returns an unsubscribe callable."
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, journey: Journey, operation: str) -> Journey:
        self._journey = journey
        logger.info(f"Journey {journey.id}: {operation}")
        for listener in list(self._listeners):
            listener(journey)
        return journey

    def _commit(self, operation: str, **changes: Any) -> Journey:
        journey = self._journey.model_copy(
            update={**changes, "updated_at": self._clock()}
        )
        return self._publish(journey, operation)

    def _get_property(self, property_id: str) -> Property:
        for prop in self._journey.properties:
            if prop.id == property_id:
                return prop
        raise DanglingReferenceError(f"Property {property_id} does not exist in journey")

    def _get_node(self, node_id: str) -> Node:
        for node in self._journey.nodes:
            if node.id == node_id:
                return node
        raise DanglingReferenceError(f"Node {node_id} does not exist in journey")

    def _get_function(self, reference_id: str) -> Function:
        for function in self._journey.functions:
            if function.reference_id == reference_id:
                return function
        raise DanglingReferenceError(f"Function {reference_id} does not exist in journey")

    def _get_mapping(self, mapping_id: str) -> NodeFunctionMapping:
        for mapping in self._journey.mappings:
            if mapping.id == mapping_id:
                return mapping
        raise DanglingReferenceError(f"Mapping {mapping_id} does not exist in journey")

    def _get_edge(self, edge_id: str) -> Edge:
        for edge in self._journey.edges:
            if edge.id == edge_id:
                return edge
        raise DanglingReferenceError(f"Edge {edge_id} does not exist in journey")

    # Journey

    def load(self, journey: Journey | Mapping[str, Any]) -> Journey:
        """
        Replace the whole snapshot, e.g. after the host fetched a journey. The
        loaded journey keeps its own `updated_at`.
        """
        if not isinstance(journey, Journey):
            journey = Journey.model_validate(journey)
        return self._publish(journey, "load")

    def update_details(
        self, name: str | None = None, description: str | None = None
    ) -> Journey:
        "Change the journey name and/or description."
        changes = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        return self._commit("update details", **changes)

    def set_active(self, active: bool) -> Journey:
        "Toggle the active flag. Nothing else changes."
        return self._commit(f"set active={active}", is_active=active)

    def export_for_save(self) -> dict[str, Any]:
        "Return the catalog dictionary the host persists. The journey must be named."
        if not self._journey.name.strip():
            raise MissingRequiredFieldError("Journey name is required before saving")
        return self._journey.to_catalog_dict()

    # Properties

    def add_property(
        self, key: str, type: str, validation_condition: str | None = None
    ) -> Property:
        "Add a property with a fresh id. Keys are unique within the journey."
        _require({"key": key, "type": type}, "key", "Property")
        _require({"key": key, "type": type}, "type", "Property")
        key = key.strip()
        if self._journey.property_by_key(key) is not None:
            raise DuplicateKeyError(f"Property {key} already exists in journey")

        prop = Property(
            id=self._new_id(),
            key=key,
            type=type,
            validation_condition=validation_condition,
        )
        self._commit(
            f"add property {key}", properties=[*self._journey.properties, prop]
        )
        return prop

    def update_property(self, property_id: str, patch: Mapping[str, Any]) -> Property:
        """
        Update a property. Keys are stripped as on add. A key rename is carried
        into every function contract, property header, request body binding and
        variable mapping target that used the old key.
        """
        current = self._get_property(property_id)
        updated = _apply_patch(current, patch, "id")
        _require(updated.model_dump(), "key", "Property")

        old_key, new_key = current.key, updated.key
        changes: dict[str, Any] = {
            "properties": _replace(self._journey.properties, current, updated)
        }
        if new_key != old_key:
            if self._journey.property_by_key(new_key) is not None:
                raise DuplicateKeyError(f"Property {new_key} already exists in journey")
            changes["functions"] = [
                _rename_function_key(f, old_key, new_key) for f in self._journey.functions
            ]
            changes["mappings"] = [
                _rename_mapping_target(m, old_key, new_key)
                for m in self._journey.mappings
            ]

        self._commit(f"update property {property_id}", **changes)
        return updated

    def delete_property(self, property_id: str) -> None:
        """
        Delete a property, removing it from every node and removing its key from
        every function contract, property header and request body binding.
        Variable mappings targeting the key are left unbound.
        """
        prop = self._get_property(property_id)
        nodes = [
            n.model_copy(update={"properties": [p for p in n.properties if p != prop.id]})
            if prop.id in n.properties
            else n
            for n in self._journey.nodes
        ]
        functions = [_drop_function_key(f, prop.key) for f in self._journey.functions]
        mappings = [_unbind_mapping_target(m, prop.key) for m in self._journey.mappings]
        self._commit(
            f"delete property {property_id}",
            properties=[p for p in self._journey.properties if p is not prop],
            nodes=nodes,
            functions=functions,
            mappings=mappings,
        )

    # Nodes

    def _check_node_properties(self, node: Node) -> None:
        property_ids = {p.id for p in self._journey.properties}
        for pid in node.properties:
            if pid not in property_ids:
                raise DanglingReferenceError(
                    f"Node {node.name} references property {pid} that does not exist in journey"
                )

    def add_node(self, node: Node | Mapping[str, Any]) -> Node:
        "Add a node. The id is generated unless the caller supplies one."
        data = _as_data(Node, node)
        _require(data, "name", "Node")
        _require(data, "type", "Node")
        if not data.get("id"):
            data["id"] = self._new_id()
        if data["id"] in self._journey.nodes_dict:
            raise DuplicateKeyError(f"Node {data['id']} already exists in journey")

        new_node = Node.model_validate(data)
        self._check_node_properties(new_node)
        self._commit(f"add node {new_node.id}", nodes=[*self._journey.nodes, new_node])
        return new_node

    def update_node(self, node_id: str, patch: Mapping[str, Any]) -> Node:
        current = self._get_node(node_id)
        updated = _apply_patch(current, patch, "id")
        _require(updated.model_dump(), "name", "Node")
        self._check_node_properties(updated)
        self._commit(
            f"update node {node_id}",
            nodes=_replace(self._journey.nodes, current, updated),
        )
        return updated

    def delete_node(self, node_id: str) -> None:
        "Delete a node together with every edge touching it and every mapping on it."
        node = self._get_node(node_id)
        edges = [
            e
            for e in self._journey.edges
            if e.from_node_id != node_id and e.to_node_id != node_id
        ]
        mappings = [m for m in self._journey.mappings if m.node_id != node_id]
        logger.info(
            f"Deleting node {node_id} removes {len(self._journey.edges) - len(edges)} edges and {len(self._journey.mappings) - len(mappings)} mappings"
        )
        self._commit(
            f"delete node {node_id}",
            nodes=[n for n in self._journey.nodes if n is not node],
            edges=edges,
            mappings=mappings,
        )

    # Functions

    def _synchronise_inputs(self, function: Function) -> Function:
        "Declare every property key the headers and request body use as an input."
        inputs = dict(function.input_properties)
        for key in function.config.referenced_property_keys:
            if key in inputs:
                continue
            prop = self._journey.property_by_key(key)
            if prop is None:
                raise DanglingReferenceError(
                    f"Function {function.name} references property {key} that does not exist in journey"
                )
            inputs[key] = prop.type
        if inputs == function.input_properties:
            return function
        return function.model_copy(update={"input_properties": inputs})

    def add_function(self, function: Function | Mapping[str, Any]) -> Function:
        "Add a function. The referenceId is generated unless the caller supplies one."
        data = _as_data(Function, function)
        _require(data, "name", "Function")
        _require(data, "type", "Function")
        if not data.get("reference_id"):
            data["reference_id"] = self._new_id()
        if data["reference_id"] in self._journey.functions_dict:
            raise DuplicateKeyError(
                f"Function {data['reference_id']} already exists in journey"
            )

        new_function = self._synchronise_inputs(Function.model_validate(data))
        self._commit(
            f"add function {new_function.reference_id}",
            functions=[*self._journey.functions, new_function],
        )
        return new_function

    def update_function(self, reference_id: str, patch: Mapping[str, Any]) -> Function:
        current = self._get_function(reference_id)
        updated = _apply_patch(current, patch, "reference_id")
        _require(updated.model_dump(), "name", "Function")
        updated = self._synchronise_inputs(updated)
        self._commit(
            f"update function {reference_id}",
            functions=_replace(self._journey.functions, current, updated),
        )
        return updated

    def delete_function(self, reference_id: str) -> None:
        "Delete a function together with every mapping that invokes it."
        function = self._get_function(reference_id)
        self._commit(
            f"delete function {reference_id}",
            functions=[f for f in self._journey.functions if f is not function],
            mappings=[m for m in self._journey.mappings if m.function_id != reference_id],
        )

    # Mappings

    def _check_mapping(self, mapping: NodeFunctionMapping) -> None:
        self._get_node(mapping.node_id)
        self._get_function(mapping.function_id)
        for other in self._journey.mappings:
            if other.id == mapping.id:
                continue
            if (other.node_id, other.function_id) == (mapping.node_id, mapping.function_id):
                raise DuplicateMappingError(
                    "A mapping between this node and function already exists"
                )

    def add_mapping(self, mapping: NodeFunctionMapping | Mapping[str, Any]) -> NodeFunctionMapping:
        """
        Bind a function to a node. When `variable_mappings` is omitted it is
        derived from the function's declared inputs and outputs.
        """
        data = _as_data(NodeFunctionMapping, mapping)
        _require(data, "node_id", "Mapping")
        _require(data, "function_id", "Mapping")
        if not data.get("id"):
            data["id"] = self._new_id()
        if any(m.id == data["id"] for m in self._journey.mappings):
            raise DuplicateKeyError(f"Mapping {data['id']} already exists in journey")
        derive = data.get("variable_mappings") is None
        if derive:
            data.pop("variable_mappings", None)

        new_mapping = NodeFunctionMapping.model_validate(data)
        self._check_mapping(new_mapping)
        if derive:
            function = self._get_function(new_mapping.function_id)
            new_mapping = new_mapping.model_copy(
                update={"variable_mappings": derive_variable_mappings(function)}
            )

        self._commit(
            f"add mapping {new_mapping.id}",
            mappings=[*self._journey.mappings, new_mapping],
        )
        return new_mapping

    def update_mapping(self, mapping_id: str, patch: Mapping[str, Any]) -> NodeFunctionMapping:
        current = self._get_mapping(mapping_id)
        updated = _apply_patch(current, patch, "id")
        self._check_mapping(updated)
        self._commit(
            f"update mapping {mapping_id}",
            mappings=_replace(self._journey.mappings, current, updated),
        )
        return updated

    def delete_mapping(self, mapping_id: str) -> None:
        mapping = self._get_mapping(mapping_id)
        self._commit(
            f"delete mapping {mapping_id}",
            mappings=[m for m in self._journey.mappings if m is not mapping],
        )

    # Edges

    def _check_edge(self, edge: Edge) -> None:
        if edge.from_node_id == edge.to_node_id:
            raise SelfLoopError("Source and target nodes cannot be the same")
        self._get_node(edge.from_node_id)
        self._get_node(edge.to_node_id)
        for other in self._journey.edges:
            if other.id != edge.id and other.pair == edge.pair:
                raise DuplicateEdgeError("An edge between these nodes already exists")

    def add_edge(self, edge: Edge | Mapping[str, Any]) -> Edge:
        """
        Add a directed edge. The first real edge of a journey discards the
        placeholder edge between the start and end markers.
        """
        data = _as_data(Edge, edge)
        _require(data, "from_node_id", "Edge")
        _require(data, "to_node_id", "Edge")
        if not data.get("id"):
            data["id"] = self._new_id()
        if any(e.id == data["id"] for e in self._journey.edges):
            raise DuplicateKeyError(f"Edge {data['id']} already exists in journey")

        new_edge = Edge.model_validate(data)
        self._check_edge(new_edge)

        edges = self._journey.edges
        node_ids = self._journey.nodes_dict
        if all(e.is_placeholder(node_ids) for e in edges):
            edges = []
        self._commit(f"add edge {new_edge.id}", edges=[*edges, new_edge])
        return new_edge

    def update_edge(self, edge_id: str, patch: Mapping[str, Any]) -> Edge:
        current = self._get_edge(edge_id)
        updated = _apply_patch(current, patch, "id")
        self._check_edge(updated)
        self._commit(
            f"update edge {edge_id}",
            edges=_replace(self._journey.edges, current, updated),
        )
        return updated

    def delete_edge(self, edge_id: str) -> None:
        edge = self._get_edge(edge_id)
        self._commit(
            f"delete edge {edge_id}",
            edges=[e for e in self._journey.edges if e is not edge],
        )


def _rename_function_key(function: Function, old: str, new: str) -> Function:
    "Carry a property key rename into a function's contract and config."
    config = function.config
    changes: dict[str, Any] = {}
    for field in ("input_properties", "output_properties"):
        declared = getattr(function, field)
        if old in declared:
            changes[field] = {(new if k == old else k): v for k, v in declared.items()}

    config_changes: dict[str, Any] = {}
    if any(h.type == "property" and h.value == old for h in config.headers):
        config_changes["headers"] = [
            h.model_copy(update={"value": new})
            if h.type == "property" and h.value == old
            else h
            for h in config.headers
        ]
    if any(entry.property == old for entry in config.request_body):
        config_changes["request_body"] = [
            entry.model_copy(update={"property": new}) if entry.property == old else entry
            for entry in config.request_body
        ]
    if config_changes:
        changes["config"] = config.model_copy(update=config_changes)

    return function.model_copy(update=changes) if changes else function


def _drop_function_key(function: Function, key: str) -> Function:
    "Remove every use of a deleted property key from a function."
    config = function.config
    changes: dict[str, Any] = {}
    for field in ("input_properties", "output_properties"):
        declared = getattr(function, field)
        if key in declared:
            changes[field] = {k: v for k, v in declared.items() if k != key}

    config_changes: dict[str, Any] = {}
    if any(h.type == "property" and h.value == key for h in config.headers):
        config_changes["headers"] = [
            h for h in config.headers if not (h.type == "property" and h.value == key)
        ]
    if any(entry.property == key for entry in config.request_body):
        config_changes["request_body"] = [
            entry for entry in config.request_body if entry.property != key
        ]
    if config_changes:
        changes["config"] = config.model_copy(update=config_changes)

    return function.model_copy(update=changes) if changes else function


def _rename_mapping_target(
    mapping: NodeFunctionMapping, old: str, new: str
) -> NodeFunctionMapping:
    if not any(v.target_parameter_name == old for v in mapping.variable_mappings):
        return mapping
    return mapping.model_copy(
        update={
            "variable_mappings": [
                v.model_copy(update={"target_parameter_name": new})
                if v.target_parameter_name == old
                else v
                for v in mapping.variable_mappings
            ]
        }
    )


def _unbind_mapping_target(mapping: NodeFunctionMapping, key: str) -> NodeFunctionMapping:
    if not any(v.target_parameter_name == key for v in mapping.variable_mappings):
        return mapping
    return mapping.model_copy(
        update={
            "variable_mappings": [
                v.model_copy(update={"target_parameter_name": "", "target_parameter_type": ""})
                if v.target_parameter_name == key
                else v
                for v in mapping.variable_mappings
            ]
        }
    )
