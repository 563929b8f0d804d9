import pytest

from mcp_journey_builder.errors import DanglingReferenceError
from mcp_journey_builder.journey_model import Function, Journey, VariableMapping
from mcp_journey_builder.mapping_draft import (
    DraftState,
    MappingDraft,
    derive_variable_mappings,
)
from mcp_journey_builder.store import JourneyStore


@pytest.fixture
def age_function() -> Function:
    return Function(
        reference_id="F",
        name="Age check",
        input_properties={"age": "NUMBER", "dob": "DATE"},
        output_properties={"eligible": "BOOLEAN"},
    )


@pytest.fixture
def score_function() -> Function:
    return Function(
        reference_id="G",
        name="Score",
        type="KAFKA",
        input_properties={"pan": "STRING"},
    )


class TestDeriveVariableMappings:
    def test_one_entry_per_declared_key_in_order(self, age_function: Function):
        entries = derive_variable_mappings(age_function)

        assert [e.id for e in entries] == ["input_age", "input_dob", "output_eligible"]
        assert [e.mapping_type for e in entries] == ["INPUT", "INPUT", "OUTPUT"]
        assert [e.source_variable_type for e in entries] == ["NUMBER", "DATE", "BOOLEAN"]
        assert all(e.strategy == "DIRECT" for e in entries)
        assert all(e.target_parameter_name == "" for e in entries)
        assert all(e.mandatory is False for e in entries)

    def test_deriving_twice_yields_the_same_entries(self, age_function: Function):
        assert derive_variable_mappings(age_function) == derive_variable_mappings(
            age_function
        )

    def test_function_without_contract(self):
        assert derive_variable_mappings(Function(name="Empty")) == []


class TestMappingDraft:
    def test_new_draft_is_empty(self):
        draft = MappingDraft(node_id="N")
        assert draft.state == DraftState.EMPTY
        assert draft.variable_mappings == []

    def test_selecting_a_function_derives(self, age_function: Function):
        draft = MappingDraft(node_id="N")
        draft.select_function(age_function)

        assert draft.state == DraftState.AUTO_DERIVED
        assert draft.function_id == "F"
        assert draft.derived_from == "F"
        assert len(draft.variable_mappings) == 3

    def test_reselecting_the_same_function_does_not_duplicate(self, age_function: Function):
        draft = MappingDraft(node_id="N")
        draft.select_function(age_function)
        first = list(draft.variable_mappings)
        draft.select_function(age_function)

        assert draft.variable_mappings == first

    def test_selecting_another_function_rederives_while_auto_derived(
        self, age_function: Function, score_function: Function
    ):
        draft = MappingDraft(node_id="N")
        draft.select_function(age_function)
        draft.select_function(score_function)

        assert draft.state == DraftState.AUTO_DERIVED
        assert [e.id for e in draft.variable_mappings] == ["input_pan"]

    def test_manual_edit_stops_derivation(
        self, age_function: Function, score_function: Function
    ):
        draft = MappingDraft(node_id="N")
        draft.select_function(age_function)
        draft.update_variable_mapping("input_age", target_parameter_name="age")
        assert draft.state == DraftState.USER_EDITED

        draft.select_function(score_function)

        assert draft.function_id == "G"
        assert [e.id for e in draft.variable_mappings] == [
            "input_age",
            "input_dob",
            "output_eligible",
        ]
        assert draft.variable_mappings[0].target_parameter_name == "age"

    def test_add_and_remove_entries_mark_user_edited(self, age_function: Function):
        draft = MappingDraft(node_id="N")
        draft.add_variable_mapping(
            VariableMapping(id="extra", mapping_type="INPUT", source_variable_name="x")
        )
        assert draft.state == DraftState.USER_EDITED

        draft.remove_variable_mapping("extra")
        assert draft.variable_mappings == []

        draft.select_function(age_function)
        assert draft.variable_mappings == []

    def test_unknown_entry_raises(self):
        draft = MappingDraft(node_id="N")
        with pytest.raises(DanglingReferenceError):
            draft.update_variable_mapping("missing", mandatory=True)
        with pytest.raises(DanglingReferenceError):
            draft.remove_variable_mapping("missing")
        assert draft.state == DraftState.EMPTY

    def test_existing_mapping_opens_user_edited(self, kyc_journey: Journey):
        mapping = kyc_journey.mappings[0]
        draft = MappingDraft.from_mapping(mapping)

        assert draft.state == DraftState.USER_EDITED
        assert draft.mapping_id == "m-verify"

        draft.select_function(kyc_journey.functions_dict["fn-pan-verify"])
        assert draft.variable_mappings == mapping.variable_mappings

    def test_empty_payload_leaves_derivation_to_the_store(self, store: JourneyStore):
        store.add_node({"id": "N", "name": "N", "type": "loader"})
        store.add_function(
            {"referenceId": "F", "name": "F", "type": "API", "inputProperties": {"age": "NUMBER"}}
        )
        draft = MappingDraft(node_id="N", function_id="F")

        payload = draft.to_payload()
        assert "variable_mappings" not in payload

        mapping = store.add_mapping(payload)
        assert [e.source_variable_name for e in mapping.variable_mappings] == ["age"]

    def test_edited_payload_is_kept_by_the_store(
        self, store: JourneyStore, age_function: Function
    ):
        store.add_node({"id": "N", "name": "N", "type": "loader"})
        store.add_function(age_function)
        draft = MappingDraft(node_id="N", name="Check age")
        draft.select_function(age_function)
        draft.remove_variable_mapping("output_eligible")

        mapping = store.add_mapping(draft.to_payload())

        assert mapping.name == "Check age"
        assert [e.id for e in mapping.variable_mappings] == ["input_age", "input_dob"]
