from pydantic import BaseModel, Field

from .errors import DuplicateKeyError, MissingRequiredFieldError


class KeyValueEntry(BaseModel):
    "One row of a map-shaped field."

    key: str
    value: str


class KeyValueEntries(BaseModel):
    """
    Ordered key/value rows used to edit map-shaped fields such as
    `inputProperties`, `outputProperties`, `headerParams` and `requestBodyPath`.

    Rows are addressed by position so a key can be renamed in place without the
    entry losing its slot. Keys stay unique.
    """

    entries: list[KeyValueEntry] = Field(default_factory=list)

    @classmethod
    def from_dict(cls, mapping: dict[str, str]) -> "KeyValueEntries":
        "Build the rows from a dictionary, keeping its order."
        return cls(entries=[KeyValueEntry(key=k, value=v) for k, v in mapping.items()])

    def to_dict(self) -> dict[str, str]:
        "Return the rows as a dictionary, in row order."
        return {e.key: e.value for e in self.entries}

    @property
    def keys(self) -> list[str]:
        return [e.key for e in self.entries]

    def add_entry(self, key: str, value: str) -> None:
        "Append a new row."
        key = key.strip()
        if not key:
            raise MissingRequiredFieldError("Entry key is required")
        if key in self.keys:
            raise DuplicateKeyError(f"Entry {key} already exists")
        self.entries.append(KeyValueEntry(key=key, value=value))

    def update_entry(
        self, index: int, key: str | None = None, value: str | None = None
    ) -> None:
        "Rename and/or change the value of the row at `index`."
        entry = self.entries[index]
        if key is not None:
            key = key.strip()
            if not key:
                raise MissingRequiredFieldError("Entry key is required")
            if key != entry.key and key in self.keys:
                raise DuplicateKeyError(f"Entry {key} already exists")
        self.entries[index] = KeyValueEntry(
            key=entry.key if key is None else key,
            value=entry.value if value is None else value,
        )

    def remove_entry(self, index: int) -> None:
        "Remove the row at `index`."
        del self.entries[index]
