"""Attribute types, definitions, entity references and value records."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_INTEGER_ID_RE = re.compile(r"^(0|-?[1-9][0-9]*)$")

STRING_SLOT = "string_value"
NUMBER_SLOT = "number_value"
DATE_SLOT = "date_value"
BOOLEAN_SLOT = "boolean_value"

VALUE_SLOTS: tuple[str, ...] = (STRING_SLOT, NUMBER_SLOT, DATE_SLOT, BOOLEAN_SLOT)


class AttributeType(str, Enum):
    """Supported attribute value types."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"

    @property
    def slot(self) -> str:
        """Column of the value table that holds values of this type."""
        return SLOT_BY_TYPE[self]

    @classmethod
    def values(cls) -> list[str]:
        return [t.value for t in cls]


SLOT_BY_TYPE: dict[AttributeType, str] = {
    AttributeType.TEXT: STRING_SLOT,
    AttributeType.SELECT: STRING_SLOT,
    AttributeType.NUMBER: NUMBER_SLOT,
    AttributeType.DATE: DATE_SLOT,
    AttributeType.BOOLEAN: BOOLEAN_SLOT,
}

# Rule names legal for each type; anything else is a definition error.
RULES_BY_TYPE: dict[AttributeType, frozenset[str]] = {
    AttributeType.TEXT: frozenset({"min", "max", "min_length", "max_length"}),
    AttributeType.NUMBER: frozenset({"min", "max"}),
    AttributeType.DATE: frozenset({"after", "before"}),
    AttributeType.BOOLEAN: frozenset(),
    AttributeType.SELECT: frozenset(),
}

KNOWN_RULES: frozenset[str] = frozenset().union(*RULES_BY_TYPE.values())


class AttributeDefinition(BaseModel):
    """A catalog entry describing one custom attribute."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    name: str
    label: str
    type: AttributeType
    required: bool = False
    options: list[str] = Field(default_factory=list)
    rules: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def slot(self) -> str:
        return self.type.slot

    def slot_values(self, value: Any) -> dict[str, Any]:
        """Column values for storing an already-cast value: one slot set, the rest NULL."""
        columns: dict[str, Any] = {slot: None for slot in VALUE_SLOTS}
        columns[self.slot] = encode_slot_value(self.slot, value)
        return columns


def encode_slot_value(slot: str, value: Any) -> Any:
    """Convert a cast Python value to its sqlite column representation."""
    if value is None:
        return None
    if slot == DATE_SLOT:
        return value.isoformat() if isinstance(value, date) else str(value)
    if slot == BOOLEAN_SLOT:
        return 1 if value else 0
    if slot == NUMBER_SLOT:
        return float(value)
    return str(value)


def decode_slot_value(slot: str, raw: Any) -> Any:
    """Inverse of :func:`encode_slot_value`."""
    if raw is None:
        return None
    if slot == DATE_SLOT:
        return date.fromisoformat(str(raw)[:10])
    if slot == BOOLEAN_SLOT:
        return bool(raw)
    if slot == NUMBER_SLOT:
        return float(raw)
    return raw


@dataclass(frozen=True)
class EntityRef:
    """Opaque reference to a host record: its id plus a type tag.

    Integer-looking string ids are stored as integers, the way an INTEGER
    host key would store them, so ``EntityRef("1", t)`` and ``EntityRef(1, t)``
    address the same record.
    """

    id: int | str | None
    type: str

    def __post_init__(self) -> None:
        if isinstance(self.id, str) and _INTEGER_ID_RE.fullmatch(self.id):
            object.__setattr__(self, "id", int(self.id))

    @property
    def persisted(self) -> bool:
        return self.id is not None

    def __str__(self) -> str:
        return f"{self.type}#{self.id}"


@dataclass
class ValueRecord:
    """One stored (entity, attribute) value row."""

    entity_id: int | str
    entity_type: str
    attribute_id: int
    attribute_name: str
    string_value: str | None = None
    number_value: float | None = None
    date_value: str | None = None
    boolean_value: int | None = None

    @property
    def value(self) -> Any:
        """Typed value of whichever slot is populated, or None for an explicit null."""
        for slot in VALUE_SLOTS:
            raw = getattr(self, slot)
            if raw is not None:
                return decode_slot_value(slot, raw)
        return None


@dataclass(frozen=True)
class HostBinding:
    """Where an entity type keeps its cache document on the host table."""

    entity_type: str
    table: str
    id_column: str = "id"
    cache_column: str = "custom_attributes"

    def __post_init__(self) -> None:
        for label, ident in (
            ("table", self.table),
            ("id_column", self.id_column),
            ("cache_column", self.cache_column),
        ):
            if not _IDENTIFIER_RE.match(ident):
                raise ValueError(
                    f"Invalid {label} '{ident}': must match [A-Za-z_][A-Za-z0-9_]*"
                )
