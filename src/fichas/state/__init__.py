"""State management: sheet models, write-sets and stores."""

from .schema import (
    ATTRIBUTE_KEYS,
    DERIVED_KEYS,
    Attributes,
    Character,
    Collection,
    Entry,
    EntryRef,
    EntryType,
    ModMode,
    StatKey,
    degrade_entry,
)
from .store import JsonStore, MemoryStore, SheetStore
from .writes import WriteConflict, WriteSet

__all__ = [
    "ATTRIBUTE_KEYS",
    "DERIVED_KEYS",
    "Attributes",
    "Character",
    "Collection",
    "Entry",
    "EntryRef",
    "EntryType",
    "ModMode",
    "StatKey",
    "degrade_entry",
    "JsonStore",
    "MemoryStore",
    "SheetStore",
    "WriteConflict",
    "WriteSet",
]
