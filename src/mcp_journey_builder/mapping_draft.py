from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .errors import DanglingReferenceError
from .journey_model import Function, NodeFunctionMapping, VariableMapping


def derive_variable_mappings(function: Function) -> list[VariableMapping]:
    """
    Seed one INPUT entry per declared input and one OUTPUT entry per declared
    output, in declaration order, with an empty target binding.
    Entry ids are derived from the key so deriving twice yields the same entries.
    """
    entries = [
        VariableMapping(
            id=f"input_{key}",
            mapping_type="INPUT",
            source_variable_name=key,
            source_variable_type=type_,
        )
        for key, type_ in function.input_properties.items()
    ]
    entries.extend(
        VariableMapping(
            id=f"output_{key}",
            mapping_type="OUTPUT",
            source_variable_name=key,
            source_variable_type=type_,
        )
        for key, type_ in function.output_properties.items()
    )
    return entries


class DraftState(str, Enum):
    EMPTY = "EMPTY"
    AUTO_DERIVED = "AUTO_DERIVED"
    USER_EDITED = "USER_EDITED"


class MappingDraft(BaseModel):
    """
    Editable form state for a node/function mapping.

    Variable mappings are derived from the function contract only when the draft
    is EMPTY (or still AUTO_DERIVED for a different function). Any manual edit,
    or opening an existing mapping, moves the draft to USER_EDITED and derivation
    stops for the lifetime of the draft.
    """

    mapping_id: str | None = None
    name: str = ""
    description: str = ""
    node_id: str = ""
    function_id: str = ""
    condition: str = ""
    variable_mappings: list[VariableMapping] = Field(default_factory=list)
    state: DraftState = DraftState.EMPTY
    derived_from: str | None = None

    @classmethod
    def from_mapping(cls, mapping: NodeFunctionMapping) -> "MappingDraft":
        "Open an existing mapping for editing."
        return cls(
            mapping_id=mapping.id,
            name=mapping.name,
            description=mapping.description,
            node_id=mapping.node_id,
            function_id=mapping.function_id,
            condition=mapping.condition,
            variable_mappings=list(mapping.variable_mappings),
            state=DraftState.USER_EDITED,
        )

    def select_function(self, function: Function) -> None:
        "Select the function to invoke, deriving variable mappings when allowed."
        self.function_id = function.reference_id
        if self.state == DraftState.USER_EDITED:
            return
        if (
            self.state == DraftState.AUTO_DERIVED
            and self.derived_from == function.reference_id
        ):
            return
        self.variable_mappings = derive_variable_mappings(function)
        self.derived_from = function.reference_id
        self.state = DraftState.AUTO_DERIVED

    def update_variable_mapping(self, entry_id: str, **changes: Any) -> None:
        "Change fields of one variable mapping entry."
        for idx, entry in enumerate(self.variable_mappings):
            if entry.id == entry_id:
                self.variable_mappings[idx] = entry.model_copy(update=changes)
                self.state = DraftState.USER_EDITED
                return
        raise DanglingReferenceError(f"Variable mapping {entry_id} does not exist")

    def add_variable_mapping(self, entry: VariableMapping) -> None:
        self.variable_mappings.append(entry)
        self.state = DraftState.USER_EDITED

    def remove_variable_mapping(self, entry_id: str) -> None:
        remaining = [e for e in self.variable_mappings if e.id != entry_id]
        if len(remaining) == len(self.variable_mappings):
            raise DanglingReferenceError(f"Variable mapping {entry_id} does not exist")
        self.variable_mappings = remaining
        self.state = DraftState.USER_EDITED

    def to_payload(self) -> dict[str, Any]:
        """
        Return the fields for `JourneyStore.add_mapping` / `update_mapping`.
        An EMPTY draft leaves `variable_mappings` out so the store derives them.
        """
        payload: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "node_id": self.node_id,
            "function_id": self.function_id,
            "condition": self.condition,
        }
        if self.state != DraftState.EMPTY:
            payload["variable_mappings"] = list(self.variable_mappings)
        return payload
