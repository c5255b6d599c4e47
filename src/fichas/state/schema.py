"""
Pydantic models for fichas character sheets.

Snapshots arrive from an external key/value store, so Character is
lenient: bad numbers degrade to 0 and stored entries are repaired by
degrade_entry() before validation. An Entry built directly (or imported)
is strict about its modifier invariant.

Wire names are camelCase; Python attributes are snake_case with aliases.
"""

import math
from enum import Enum
from typing import Annotated, NamedTuple

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class StatKey(str, Enum):
    """Keys an entry can be based on: four attributes plus four derived-stat tags."""
    QI = "QI"
    FOR = "FOR"
    DEX = "DEX"
    VIG = "VIG"
    # Reserved tags, only meaningful for PASSIVE entries
    INTENTIONS = "INTENTIONS"
    MOVEMENT = "MOVEMENT"
    DEFENSE = "DEFENSE"
    INVENTORY = "INVENTORY"

    @property
    def is_attribute(self) -> bool:
        return self in ATTRIBUTE_KEYS


ATTRIBUTE_KEYS = (StatKey.QI, StatKey.FOR, StatKey.DEX, StatKey.VIG)
DERIVED_KEYS = (StatKey.INTENTIONS, StatKey.MOVEMENT, StatKey.DEFENSE, StatKey.INVENTORY)


class EntryType(str, Enum):
    ACTIVE = "ACTIVE"    # Triggered explicitly by the player per roll
    PASSIVE = "PASSIVE"  # Armed ahead of time, auto-applies to matching rolls


class ModMode(str, Enum):
    NONE = "NONE"
    ADD = "ADD"
    MULT = "MULT"  # Combined as 1 + sum of all MULT values


class Collection(str, Enum):
    """The three entry collections on a sheet."""
    ITEMS = "items"
    ADVANTAGES = "advantages"
    DISADVANTAGES = "disadvantages"


# -----------------------------------------------------------------------------
# Numeric helpers
# -----------------------------------------------------------------------------

def coerce_number(value, fallback: float = 0) -> float | int:
    """Return value if it is a finite number, else fallback."""
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)) and math.isfinite(value):
        return value
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return fallback
        if not math.isfinite(parsed):
            return fallback
        return int(parsed) if parsed.is_integer() else parsed
    return fallback


def coerce_int(value, fallback: int = 0) -> int:
    """Truncate a finite number toward zero, else fallback."""
    number = coerce_number(value, fallback)
    return math.trunc(number)


def _finite_number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    if not math.isfinite(value):
        raise ValueError("must be a finite number")
    return value


def _whole_number(value):
    _finite_number(value)
    if value != math.trunc(value):
        raise ValueError("must be an integer")
    return int(value)


FiniteNumber = Annotated[int | float, BeforeValidator(_finite_number)]
WholeNumber = Annotated[int, BeforeValidator(_whole_number)]
EntryName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=80)]


# -----------------------------------------------------------------------------
# Core Models
# -----------------------------------------------------------------------------

class Entry(BaseModel):
    """
    An item, advantage or disadvantage on a sheet.

    modMode NONE carries no value; ADD and MULT always carry a finite
    number. Anything else fails validation, so an Entry instance is
    always well-formed.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: EntryName
    type: EntryType = EntryType.PASSIVE
    attribute_base: StatKey | None = Field(default=None, alias="attributeBase")
    mod_mode: ModMode = Field(default=ModMode.NONE, alias="modMode")
    mod_value: FiniteNumber | None = Field(default=None, alias="modValue")
    uses_current: WholeNumber | None = Field(default=None, alias="usesCurrent")
    uses_max: WholeNumber | None = Field(default=None, alias="usesMax")
    notes: str = ""

    @model_validator(mode="after")
    def _check_modifier(self) -> "Entry":
        if self.mod_mode is ModMode.NONE and self.mod_value is not None:
            raise ValueError("modValue must be null when modMode is NONE")
        if self.mod_mode is not ModMode.NONE and self.mod_value is None:
            raise ValueError(f"modValue is required when modMode is {self.mod_mode.value}")
        return self

    @property
    def effective_value(self) -> float | int:
        """Modifier value, 0 for inert entries."""
        return self.mod_value if self.mod_value is not None else 0

    @property
    def has_effect(self) -> bool:
        """True when the entry actually changes a roll (zero counts as absent)."""
        return self.mod_mode is not ModMode.NONE and self.effective_value != 0


class Attributes(BaseModel):
    """The four base attributes. Missing or non-finite values read as 0."""
    QI: float | int = 0
    FOR: float | int = 0
    DEX: float | int = 0
    VIG: float | int = 0

    @field_validator("QI", "FOR", "DEX", "VIG", mode="before")
    @classmethod
    def _degrade(cls, value):
        return coerce_number(value)

    def value_of(self, key: StatKey | str | None) -> float | int:
        """Attribute value for key; derived tags and None have no attribute term."""
        if key is None:
            return 0
        key = StatKey(key)
        if not key.is_attribute:
            return 0
        return getattr(self, key.value)


class EntryRef(NamedTuple):
    """Points at one entry of one collection on a sheet."""
    collection: Collection
    entry_id: str

    @classmethod
    def parse(cls, text: str) -> "EntryRef":
        """Parse "items/espada-elfica" style references."""
        collection, sep, entry_id = text.partition("/")
        if not sep or not entry_id:
            raise ValueError(f"Entry reference must look like collection/id: {text!r}")
        return cls(Collection(collection), entry_id)

    def __str__(self) -> str:
        return f"{self.collection.value}/{self.entry_id}"


def degrade_entry(entry_id: str, value: dict) -> dict:
    """
    Repair a stored entry record so it always validates.

    Snapshots come from an external store, so a broken entry must not make
    the whole sheet unreadable: unknown enums fall back to their defaults,
    a missing or non-finite modValue reads as 0 (inert for ADD and MULT),
    and a blank name falls back to the entry id.
    """
    record = dict(value)

    name = record.get("name")
    name = name.strip() if isinstance(name, str) else ""
    record["name"] = (name or entry_id or "?")[:80]

    if record.get("type") not in {t.value for t in EntryType}:
        record["type"] = EntryType.PASSIVE.value
    if record.get("attributeBase") not in {k.value for k in StatKey}:
        record["attributeBase"] = None

    mode = record.get("modMode")
    if mode not in {m.value for m in ModMode}:
        mode = ModMode.NONE.value
    record["modMode"] = mode
    if mode == ModMode.NONE.value:
        record["modValue"] = None
    else:
        record["modValue"] = coerce_number(record.get("modValue"))

    for key in ("usesCurrent", "usesMax"):
        uses = record.get(key)
        if uses is not None:
            number = coerce_number(uses, fallback=None)
            record[key] = None if number is None else math.trunc(number)

    if not isinstance(record.get("notes", ""), str):
        record["notes"] = ""
    return record


class Character(BaseModel):
    """A character sheet snapshot as materialized from the store."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    attributes: Attributes = Field(default_factory=Attributes)
    mental: int = 0  # Discrete narrative state, only specific values matter
    notes: str = ""

    items: dict[str, Entry] = Field(default_factory=dict)
    advantages: dict[str, Entry] = Field(default_factory=dict)
    disadvantages: dict[str, Entry] = Field(default_factory=dict)

    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @field_validator("mental", mode="before")
    @classmethod
    def _truncate_mental(cls, value):
        return coerce_int(value)

    @field_validator("attributes", mode="before")
    @classmethod
    def _default_attributes(cls, value):
        return value if isinstance(value, (dict, Attributes)) else {}

    @field_validator("items", "advantages", "disadvantages", mode="before")
    @classmethod
    def _default_collection(cls, value):
        # Older snapshots stored empty lists before the id-keyed maps
        if not isinstance(value, dict):
            return {}
        entries = {}
        for entry_id, entry in value.items():
            if isinstance(entry, Entry):
                entries[entry_id] = entry
            elif isinstance(entry, dict):
                entries[entry_id] = degrade_entry(entry_id, entry)
        return entries

    def collection(self, collection: Collection | str) -> dict[str, Entry]:
        return getattr(self, Collection(collection).value)

    def resolve(self, ref: EntryRef) -> Entry | None:
        """Look up the entry a reference points at, or None."""
        return self.collection(ref.collection).get(ref.entry_id)

    def to_record(self) -> dict:
        """Serialize for the store, using wire names."""
        return self.model_dump(mode="json", by_alias=True)
