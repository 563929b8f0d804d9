from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mcp_journey_builder.errors import (
    DanglingReferenceError,
    DuplicateEdgeError,
    DuplicateKeyError,
    DuplicateMappingError,
    ImmutableIdentifierError,
    JourneyError,
    MissingRequiredFieldError,
    SelfLoopError,
)
from mcp_journey_builder.journey_model import Journey
from mcp_journey_builder.static import EMPTY_JOURNEY_WITH_PLACEHOLDER, KYC_ONBOARDING_JOURNEY
from mcp_journey_builder.store import JourneyStore, merge_function_catalog


class TestSession:
    def test_new_store_starts_with_an_empty_journey(self, store: JourneyStore):
        journey = store.journey
        assert journey.id == "id-1"
        assert journey.nodes == []
        assert journey.created_at == journey.updated_at

    def test_from_catalog(self):
        store = JourneyStore.from_catalog(KYC_ONBOARDING_JOURNEY)
        assert store.journey.id == "kyc-onboarding"
        assert len(store.journey.functions) == 2

    def test_load_replaces_the_snapshot(self, store: JourneyStore):
        journey = store.load(KYC_ONBOARDING_JOURNEY)
        assert store.journey is journey
        assert journey.name == "KYC Onboarding"

    def test_load_keeps_the_snapshot_timestamp(self, store: JourneyStore):
        received = []
        store.subscribe(received.append)

        journey = store.load(KYC_ONBOARDING_JOURNEY)

        assert journey.updated_at == journey.created_at
        assert journey.updated_at == datetime(2024, 1, 15, 9, tzinfo=timezone.utc)
        assert received == [journey]

    def test_load_invalid_snapshot_leaves_journey_unchanged(self, store: JourneyStore):
        before = store.journey
        with pytest.raises(ValidationError):
            store.load({"edges": [{"fromNodeId": "a", "toNodeId": "b"}]})
        assert store.journey is before

    def test_every_mutation_refreshes_updated_at(self, store: JourneyStore):
        stamps = [store.journey.updated_at]
        store.add_property("age", "NUMBER")
        stamps.append(store.journey.updated_at)
        store.add_node({"name": "A", "type": "input"})
        stamps.append(store.journey.updated_at)
        store.set_active(True)
        stamps.append(store.journey.updated_at)

        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)
        assert store.journey.created_at == stamps[0]

    def test_mutation_builds_a_new_snapshot(self, abc_store: JourneyStore):
        before = abc_store.journey
        abc_store.add_node({"id": "D", "name": "D", "type": "loader"})
        after = abc_store.journey

        assert after is not before
        assert len(before.nodes) == 3
        assert len(after.nodes) == 4
        assert after.nodes[0] is before.nodes[0]

    def test_subscribers_receive_every_snapshot(self, store: JourneyStore):
        received = []
        unsubscribe = store.subscribe(received.append)

        store.add_property("age", "NUMBER")
        store.set_active(True)
        unsubscribe()
        store.set_active(False)

        assert len(received) == 2
        assert received[-1].is_active is True

    def test_rejected_operation_does_not_notify(self, abc_store: JourneyStore):
        received = []
        abc_store.subscribe(received.append)
        with pytest.raises(SelfLoopError):
            abc_store.add_edge({"fromNodeId": "A", "toNodeId": "A"})
        assert received == []

    def test_errors_are_value_errors(self):
        assert issubclass(JourneyError, ValueError)
        assert issubclass(SelfLoopError, JourneyError)


class TestJourneyOperations:
    def test_update_details(self, store: JourneyStore):
        journey = store.update_details(name="Onboarding", description="New customers")
        assert journey.name == "Onboarding"
        assert journey.description == "New customers"

        journey = store.update_details(description="Changed")
        assert journey.name == "Onboarding"

    def test_set_active_has_no_cascade(self, kyc_store: JourneyStore):
        before = kyc_store.journey
        after = kyc_store.set_active(True)

        assert after.is_active is True
        assert after.nodes == before.nodes
        assert after.edges == before.edges
        assert after.mappings == before.mappings

    def test_export_for_save_requires_name(self, store: JourneyStore):
        with pytest.raises(MissingRequiredFieldError, match="Journey name is required"):
            store.export_for_save()

        store.update_details(name="Onboarding")
        data = store.export_for_save()
        assert data["name"] == "Onboarding"
        assert "updatedAt" in data


class TestProperties:
    def test_add_property(self, store: JourneyStore):
        prop = store.add_property("age", "number", "age >= 18")
        assert prop.type == "NUMBER"
        assert prop.validation_condition == "age >= 18"
        assert store.journey.properties == [prop]

    def test_add_duplicate_key_raises(self, store: JourneyStore):
        store.add_property("age", "NUMBER")
        before = store.journey
        with pytest.raises(DuplicateKeyError):
            store.add_property("age", "STRING")
        assert store.journey is before

    def test_add_property_without_key_raises(self, store: JourneyStore):
        with pytest.raises(MissingRequiredFieldError):
            store.add_property("  ", "NUMBER")

    def test_update_property_type(self, kyc_store: JourneyStore):
        prop = kyc_store.update_property("p-age", {"type": "STRING"})
        assert prop.type == "STRING"
        assert kyc_store.journey.properties_dict["p-age"].type == "STRING"

    def test_update_property_unknown_id_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.update_property("p-missing", {"type": "STRING"})

    def test_update_property_key_collision_raises(self, kyc_store: JourneyStore):
        before = kyc_store.journey
        with pytest.raises(DuplicateKeyError):
            kyc_store.update_property("p-pan", {"key": "dob"})
        assert kyc_store.journey is before

    def test_update_property_strips_key_before_collision_check(self, store: JourneyStore):
        store.add_property("age", "NUMBER")
        years = store.add_property("years", "NUMBER")
        before = store.journey

        with pytest.raises(DuplicateKeyError):
            store.update_property(years.id, {"key": " age"})
        assert store.journey is before

        assert store.update_property(years.id, {"key": " tenure "}).key == "tenure"
        assert [p.key for p in store.journey.properties] == ["age", "tenure"]

    def test_update_property_id_is_immutable(self, kyc_store: JourneyStore):
        with pytest.raises(ImmutableIdentifierError):
            kyc_store.update_property("p-pan", {"id": "p-other"})

    def test_key_rename_cascades(self, kyc_store: JourneyStore):
        kyc_store.update_property("p-pan", {"key": "panNumber"})
        journey = kyc_store.journey

        verify = journey.functions_dict["fn-pan-verify"]
        assert list(verify.input_properties) == ["panNumber", "dob", "name"]
        assert [e.property for e in verify.config.request_body] == ["panNumber", "dob"]
        credit = journey.functions_dict["fn-credit-score"]
        assert credit.input_properties == {"panNumber": "STRING"}

        mapping = next(m for m in journey.mappings if m.id == "m-verify")
        assert mapping.variable_mappings[0].target_parameter_name == "panNumber"
        # Nodes reference properties by id.
        assert "p-pan" in journey.nodes_dict["n-details"].properties

    def test_key_rename_cascades_into_property_headers(self, kyc_store: JourneyStore):
        kyc_store.update_property("p-name", {"key": "fullName"})
        verify = kyc_store.journey.functions_dict["fn-pan-verify"]
        assert [h.value for h in verify.config.headers] == ["application/json", "fullName"]
        assert "fullName" in verify.input_properties

    def test_delete_property_cascades(self, kyc_store: JourneyStore):
        kyc_store.delete_property("p-pan")
        journey = kyc_store.journey

        assert "p-pan" not in journey.properties_dict
        for node in journey.nodes:
            assert "p-pan" not in node.properties
        for function in journey.functions:
            assert "pan" not in function.input_properties
            assert "pan" not in function.output_properties
        verify = journey.functions_dict["fn-pan-verify"]
        assert [e.property for e in verify.config.request_body] == ["dob"]

    def test_delete_property_unbinds_mapping_targets(self, kyc_store: JourneyStore):
        kyc_store.update_property("p-verified", {"key": "verified"})
        kyc_store.delete_property("p-verified")

        mapping = next(m for m in kyc_store.journey.mappings if m.id == "m-verify")
        output = mapping.variable_mappings[1]
        assert output.target_parameter_name == ""
        assert output.target_parameter_type == ""
        assert mapping.variable_mappings[0].target_parameter_name == "pan"

    def test_delete_property_removes_property_headers(self, kyc_store: JourneyStore):
        kyc_store.delete_property("p-name")
        verify = kyc_store.journey.functions_dict["fn-pan-verify"]
        assert [h.key for h in verify.config.headers] == ["Content-Type"]

    def test_delete_output_property_cascades(self, kyc_store: JourneyStore):
        kyc_store.delete_property("p-score")
        credit = kyc_store.journey.functions_dict["fn-credit-score"]
        assert credit.output_properties == {}

    def test_delete_unknown_property_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.delete_property("p-missing")


class TestNodes:
    def test_add_node_generates_id(self, store: JourneyStore):
        node = store.add_node({"name": "Details", "type": "input"})
        assert node.id == "id-2"
        assert store.journey.nodes == [node]

    @pytest.mark.parametrize(
        "node", [{"type": "input"}, {"name": "", "type": "input"}, {"name": "Details"}]
    )
    def test_add_node_missing_field_raises(self, store: JourneyStore, node: dict):
        with pytest.raises(MissingRequiredFieldError):
            store.add_node(node)

    def test_add_node_duplicate_id_raises(self, abc_store: JourneyStore):
        with pytest.raises(DuplicateKeyError):
            abc_store.add_node({"id": "A", "name": "Again", "type": "input"})

    def test_add_node_with_unknown_property_raises(self, abc_store: JourneyStore):
        before = abc_store.journey
        with pytest.raises(DanglingReferenceError):
            abc_store.add_node({"name": "D", "type": "loader", "properties": ["p-x"]})
        assert abc_store.journey is before

    def test_update_node(self, abc_store: JourneyStore):
        node = abc_store.update_node("A", {"name": "Start", "x": 10, "y": 20})
        assert node.name == "Start"
        assert (node.x, node.y) == (10, 20)
        assert abc_store.journey.nodes_dict["A"] == node

    def test_update_node_empty_name_raises(self, abc_store: JourneyStore):
        with pytest.raises(MissingRequiredFieldError):
            abc_store.update_node("A", {"name": ""})

    def test_update_node_id_is_immutable(self, abc_store: JourneyStore):
        with pytest.raises(ImmutableIdentifierError):
            abc_store.update_node("A", {"id": "Z"})

    def test_update_node_same_id_is_allowed(self, abc_store: JourneyStore):
        assert abc_store.update_node("A", {"id": "A", "name": "A2"}).name == "A2"

    def test_delete_node_cascades(self, kyc_store: JourneyStore):
        kyc_store.delete_node("n-verify")
        journey = kyc_store.journey

        assert "n-verify" not in journey.nodes_dict
        for edge in journey.edges:
            assert "n-verify" not in edge.pair
        assert [m.id for m in journey.mappings] == ["m-credit"]

    def test_delete_unknown_node_raises(self, abc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            abc_store.delete_node("Z")


class TestFunctions:
    def test_add_function_generates_reference_id(self, store: JourneyStore):
        function = store.add_function({"name": "Score", "type": "kafka"})
        assert function.reference_id == "id-2"
        assert function.type == "KAFKA"

    def test_add_function_duplicate_reference_id_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DuplicateKeyError):
            kyc_store.add_function(
                {"referenceId": "fn-pan-verify", "name": "Again", "type": "API"}
            )

    def test_add_function_missing_name_raises(self, store: JourneyStore):
        with pytest.raises(MissingRequiredFieldError):
            store.add_function({"type": "API"})

    def test_add_function_synchronises_inputs(self, kyc_store: JourneyStore):
        function = kyc_store.add_function(
            {
                "name": "Age check",
                "type": "API",
                "config": {
                    "headers": [{"key": "X-Dob", "type": "property", "value": "dob"}],
                    "requestBody": [{"apiField": "customerAge", "property": "age"}],
                },
                "inputProperties": {"pan": "STRING"},
            }
        )
        assert function.input_properties == {"pan": "STRING", "dob": "DATE", "age": "NUMBER"}

    def test_add_function_with_unknown_property_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.add_function(
                {
                    "name": "Broken",
                    "type": "API",
                    "config": {"requestBody": [{"apiField": "x", "property": "missing"}]},
                }
            )

    def test_update_function_synchronises_inputs(self, kyc_store: JourneyStore):
        function = kyc_store.update_function(
            "fn-credit-score",
            {
                "config": {
                    "host": "kafka.example.com:9092",
                    "headers": [{"key": "X-Name", "type": "property", "value": "name"}],
                }
            },
        )
        assert function.input_properties == {"pan": "STRING", "name": "STRING"}

    def test_update_function_reference_id_is_immutable(self, kyc_store: JourneyStore):
        with pytest.raises(ImmutableIdentifierError):
            kyc_store.update_function("fn-credit-score", {"referenceId": "fn-x"})

    def test_delete_function_cascades(self, kyc_store: JourneyStore):
        kyc_store.delete_function("fn-pan-verify")
        journey = kyc_store.journey

        assert "fn-pan-verify" not in journey.functions_dict
        assert all(m.function_id != "fn-pan-verify" for m in journey.mappings)
        assert [m.id for m in journey.mappings] == ["m-credit"]

    def test_merge_function_catalog_prefers_journey_functions(self, kyc_journey: Journey):
        catalog = [
            {"referenceId": "fn-pan-verify", "name": "Stale", "type": "API"},
            {"referenceId": "fn-new", "name": "New", "type": "KAFKA"},
        ]
        merged = merge_function_catalog(catalog, kyc_journey.functions)

        assert [f.reference_id for f in merged] == ["fn-pan-verify", "fn-new", "fn-credit-score"]
        assert merged[0].name == "PAN Verification"


class TestMappings:
    def test_add_mapping_derives_variable_mappings(self, store: JourneyStore):
        store.add_node({"id": "N", "name": "N", "type": "loader"})
        store.add_function(
            {"referenceId": "F", "name": "F", "type": "API", "inputProperties": {"age": "NUMBER"}}
        )

        mapping = store.add_mapping({"nodeId": "N", "functionId": "F"})

        assert len(mapping.variable_mappings) == 1
        entry = mapping.variable_mappings[0]
        assert entry.mapping_type == "INPUT"
        assert entry.source_variable_name == "age"
        assert entry.source_variable_type == "NUMBER"
        assert entry.target_parameter_name == ""

    def test_add_mapping_keeps_explicit_variable_mappings(self, kyc_store: JourneyStore):
        mapping = kyc_store.add_mapping(
            {"nodeId": "n-details", "functionId": "fn-pan-verify", "variableMappings": []}
        )
        assert mapping.variable_mappings == []

    def test_add_duplicate_mapping_raises(self, kyc_store: JourneyStore):
        before = kyc_store.journey
        with pytest.raises(DuplicateMappingError, match="already exists"):
            kyc_store.add_mapping({"nodeId": "n-verify", "functionId": "fn-pan-verify"})
        assert kyc_store.journey is before

    def test_add_mapping_unknown_node_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.add_mapping({"nodeId": "n-missing", "functionId": "fn-pan-verify"})

    def test_add_mapping_unknown_function_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.add_mapping({"nodeId": "n-details", "functionId": "fn-missing"})

    def test_update_mapping(self, kyc_store: JourneyStore):
        mapping = kyc_store.update_mapping("m-credit", {"condition": "panVerified == true"})
        assert mapping.condition == "panVerified == true"

    def test_update_mapping_to_existing_binding_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DuplicateMappingError):
            kyc_store.update_mapping(
                "m-credit", {"nodeId": "n-verify", "functionId": "fn-pan-verify"}
            )

    def test_delete_mapping(self, kyc_store: JourneyStore):
        kyc_store.delete_mapping("m-credit")
        assert [m.id for m in kyc_store.journey.mappings] == ["m-verify"]

    def test_delete_unknown_mapping_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.delete_mapping("m-missing")


class TestEdges:
    def test_edge_scenario(self, abc_store: JourneyStore):
        abc_store.add_edge({"fromNodeId": "A", "toNodeId": "B"})
        abc_store.add_edge({"fromNodeId": "B", "toNodeId": "A"})
        assert len(abc_store.journey.edges) == 2

        with pytest.raises(DuplicateEdgeError, match="already exists"):
            abc_store.add_edge({"fromNodeId": "A", "toNodeId": "B"})
        assert len(abc_store.journey.edges) == 2

        abc_store.delete_node("B")
        assert abc_store.journey.edges == []

    def test_self_loop_raises(self, abc_store: JourneyStore):
        abc_store.add_edge({"fromNodeId": "A", "toNodeId": "B"})
        before = abc_store.journey.edges
        with pytest.raises(SelfLoopError, match="cannot be the same"):
            abc_store.add_edge({"fromNodeId": "A", "toNodeId": "A"})
        assert abc_store.journey.edges == before

    def test_self_loop_on_unknown_node_raises_self_loop(self, abc_store: JourneyStore):
        with pytest.raises(SelfLoopError):
            abc_store.add_edge({"fromNodeId": "Z", "toNodeId": "Z"})

    def test_edge_to_unknown_node_raises(self, abc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            abc_store.add_edge({"fromNodeId": "A", "toNodeId": "Z"})

    def test_edge_missing_endpoint_raises(self, abc_store: JourneyStore):
        with pytest.raises(MissingRequiredFieldError):
            abc_store.add_edge({"fromNodeId": "A"})

    def test_first_edge_discards_placeholder(self, store: JourneyStore):
        store.load(EMPTY_JOURNEY_WITH_PLACEHOLDER)
        store.add_node({"id": "A", "name": "A", "type": "input"})
        store.add_node({"id": "B", "name": "B", "type": "loader"})
        assert store.journey.edges[0].is_placeholder(store.journey.nodes_dict)

        edge = store.add_edge({"fromNodeId": "A", "toNodeId": "B"})

        assert store.journey.edges == [edge]

    def test_edge_between_real_start_and_end_nodes_is_kept(self, store: JourneyStore):
        for node_id in ("start", "end", "other"):
            store.add_node({"id": node_id, "name": node_id, "type": "loader"})
        first = store.add_edge({"fromNodeId": "start", "toNodeId": "end"})
        second = store.add_edge({"fromNodeId": "end", "toNodeId": "other"})

        assert store.journey.edges == [first, second]

    def test_update_edge_condition(self, kyc_store: JourneyStore):
        edge = kyc_store.update_edge("e-1", {"validationCondition": "age >= 18"})
        assert edge.validation_condition == "age >= 18"
        assert edge.pair == ("n-details", "n-verify")

    def test_update_edge_to_duplicate_pair_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DuplicateEdgeError):
            kyc_store.update_edge("e-2", {"toNodeId": "n-rejected"})

    def test_update_edge_to_self_loop_raises(self, kyc_store: JourneyStore):
        with pytest.raises(SelfLoopError):
            kyc_store.update_edge("e-1", {"toNodeId": "n-details"})

    def test_delete_edge(self, kyc_store: JourneyStore):
        kyc_store.delete_edge("e-3")
        assert [e.id for e in kyc_store.journey.edges] == ["e-1", "e-2"]

    def test_delete_unknown_edge_raises(self, kyc_store: JourneyStore):
        with pytest.raises(DanglingReferenceError):
            kyc_store.delete_edge("e-missing")
