"""
Sheet and entry lifecycle through SlugIdentity.

Records are never written under a free-form key: create and rename both go
through identity resolution, and every operation returns a WriteSet for the
caller to apply as one batch.

Store layout:
    sheets/{sheetId}                       -> sheet record
    sheets/{sheetId}/{collection}/{entryId} -> entry record
    assignments/{playerUid}                -> {"sheetId": ...}
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..errors import FichasError
from ..rules.identity import (
    DecideFn,
    RenameResult,
    resolve_for_create,
    resolve_for_rename,
)
from ..state.schema import Attributes, Character, Collection, Entry, degrade_entry
from ..state.store import MemoryStore
from ..state.writes import WriteSet, join_path

logger = logging.getLogger(__name__)

SHEETS = "sheets"
ASSIGNMENTS = "assignments"


class RecordNotFound(FichasError, LookupError):
    """No record at the requested path."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Nothing stored at {path!r}.")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sheet_path(sheet_id: str) -> str:
    return join_path(SHEETS, sheet_id)


def entry_path(sheet_id: str, collection: Collection | str, entry_id: str = "") -> str:
    return join_path(SHEETS, sheet_id, Collection(collection).value, entry_id)


def load_character(store: MemoryStore, sheet_id: str) -> Character:
    """Materialize a sheet snapshot from the store."""
    record = store.get(sheet_path(sheet_id))
    if not isinstance(record, dict):
        raise RecordNotFound(sheet_path(sheet_id))
    return Character.model_validate(record)


# -----------------------------------------------------------------------------
# Sheets
# -----------------------------------------------------------------------------

async def create_sheet(
    store: MemoryStore,
    name: str,
    decide: DecideFn,
    attributes: Attributes | dict | None = None,
    mental: int = 0,
    now: str | None = None,
) -> tuple[str, WriteSet]:
    """Pick an id for a new sheet and build the write that creates it."""
    sheet_id = await resolve_for_create(name, store.exists_in(SHEETS), decide)
    now = now or _now()

    character = Character(
        name=name.strip(),
        attributes=attributes or Attributes(),
        mental=mental,
        created_at=now,
        updated_at=now,
    )
    logger.info("Creating sheet %s", sheet_id)
    writes = WriteSet()
    writes.set(sheet_path(sheet_id), character.to_record())
    return sheet_id, writes


async def rename_sheet(
    store: MemoryStore,
    sheet_id: str,
    new_name: str,
    decide: DecideFn,
    now: str | None = None,
) -> RenameResult:
    """
    Rename a sheet, moving it to a new id when the slug changes.

    Player assignments that point at the old id move with it.
    """
    record = store.get(sheet_path(sheet_id))
    if not isinstance(record, dict):
        raise RecordNotFound(sheet_path(sheet_id))

    record["name"] = new_name.strip()
    record["updatedAt"] = now or _now()

    referrers = {
        join_path(ASSIGNMENTS, uid): value
        for uid, value in store.children(ASSIGNMENTS).items()
    }
    return await resolve_for_rename(
        sheet_id,
        new_name,
        store.exists_in(SHEETS),
        decide,
        record,
        referrers,
        base_path=SHEETS,
        ref_field="sheetId",
    )


def delete_sheet(store: MemoryStore, sheet_id: str) -> WriteSet:
    """Delete a sheet and clear every assignment pointing at it."""
    if store.get(sheet_path(sheet_id)) is None:
        raise RecordNotFound(sheet_path(sheet_id))

    writes = WriteSet()
    writes.delete(sheet_path(sheet_id))
    for uid, value in store.children(ASSIGNMENTS).items():
        if isinstance(value, dict) and value.get("sheetId") == sheet_id:
            writes.delete(join_path(ASSIGNMENTS, uid))
    logger.info("Deleting sheet %s (%d path(s))", sheet_id, len(writes))
    return writes


def assign_sheet(store: MemoryStore, player_uid: str, sheet_id: str) -> WriteSet:
    """Point a player at a sheet."""
    if store.get(sheet_path(sheet_id)) is None:
        raise RecordNotFound(sheet_path(sheet_id))
    writes = WriteSet()
    writes.set(join_path(ASSIGNMENTS, player_uid), {"sheetId": sheet_id})
    return writes


# -----------------------------------------------------------------------------
# Entries
# -----------------------------------------------------------------------------

async def add_entry(
    store: MemoryStore,
    sheet_id: str,
    collection: Collection | str,
    entry: Entry,
    decide: DecideFn,
) -> tuple[str, WriteSet]:
    """Add an entry to one collection of a sheet, keyed by its slug."""
    if store.get(sheet_path(sheet_id)) is None:
        raise RecordNotFound(sheet_path(sheet_id))

    entry_id = await resolve_for_create(
        entry.name, store.exists_in(entry_path(sheet_id, collection)), decide,
    )
    writes = WriteSet()
    writes.set(
        entry_path(sheet_id, collection, entry_id),
        entry.model_dump(mode="json", by_alias=True),
    )
    return entry_id, writes


async def rename_entry(
    store: MemoryStore,
    sheet_id: str,
    collection: Collection | str,
    entry_id: str,
    new_name: str,
    decide: DecideFn,
) -> RenameResult:
    """Rename an entry within its own collection."""
    path = entry_path(sheet_id, collection, entry_id)
    record = store.get(path)
    if not isinstance(record, dict):
        raise RecordNotFound(path)

    # Re-validate so the 80 character limit holds for the new name too
    entry = Entry.model_validate({**degrade_entry(entry_id, record), "name": new_name})
    return await resolve_for_rename(
        entry_id,
        new_name,
        store.exists_in(entry_path(sheet_id, collection)),
        decide,
        entry.model_dump(mode="json", by_alias=True),
        base_path=entry_path(sheet_id, collection),
    )


def delete_entry(
    store: MemoryStore,
    sheet_id: str,
    collection: Collection | str,
    entry_id: str,
) -> WriteSet:
    path = entry_path(sheet_id, collection, entry_id)
    if store.get(path) is None:
        raise RecordNotFound(path)
    writes = WriteSet()
    writes.delete(path)
    return writes
