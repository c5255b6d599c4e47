"""
Batch import of character sheets.

validate(payload) -> ValidationReport
merge(records, mode, existing) -> WriteSet
run_import(payload, mode, store) -> ImportOutcome

validate() never stops at the first problem: every record is checked and
every error is reported, so the GM can fix a file in one pass. merge() is
only reached through run_import() when the report is clean, and the whole
batch lands as a single write-set.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Any, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)

from ..errors import FichasError
from ..rules.identity import (
    ImportMode,
    InvalidIdentifier,
    is_slug,
    normalize,
    resolve_for_import,
)
from ..state.schema import Collection, Entry, FiniteNumber, WholeNumber
from ..state.store import SheetStore
from ..state.writes import WriteSet, join_path
from .sheets import SHEETS

logger = logging.getLogger(__name__)


class ImportAttributes(BaseModel):
    """Attributes as supplied in an import file; absent keys default to 0."""
    QI: FiniteNumber = 0
    FOR: FiniteNumber = 0
    DEX: FiniteNumber = 0
    VIG: FiniteNumber = 0


class ImportSheet(BaseModel):
    """
    One record of the import payload, after validation.

    Entries arrive as arrays; merge() turns them into id-keyed maps.
    Unknown fields are ignored.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    sheet_id: Annotated[str, StringConstraints(strip_whitespace=True)] | None = Field(
        default=None, alias="sheetId",
    )
    attributes: ImportAttributes = Field(default_factory=ImportAttributes)
    mental: WholeNumber = 0
    notes: str = ""
    items: list[Entry] = Field(default_factory=list)
    advantages: list[Entry] = Field(default_factory=list)
    disadvantages: list[Entry] = Field(default_factory=list)

    @field_validator("sheet_id", mode="before")
    @classmethod
    def _blank_sheet_id(cls, value):
        # An empty sheetId means "derive it from the name"
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ValidationReport(BaseModel):
    """
    Result of validating an import payload.

    ok is True only when errors is empty; normalized_records then holds
    every record, ready for merge().
    """
    ok: bool
    errors: list[str] = Field(default_factory=list)
    normalized_records: list[ImportSheet] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.normalized_records)


class ImportRejected(FichasError):
    """The payload failed validation; nothing was written."""
    def __init__(self, report: ValidationReport):
        self.report = report
        self.errors = report.errors
        super().__init__(f"Import rejected with {len(report.errors)} error(s).")


@dataclass
class ImportOutcome:
    report: ValidationReport
    writes: WriteSet
    applied: bool

    @property
    def sheet_ids(self) -> list[str]:
        return [path.split("/", 1)[1] for path in self.writes.paths]


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def _format_loc(prefix: str, loc: tuple) -> str:
    out = prefix
    for part in loc:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}"
    return out


def _format_error(prefix: str, error: dict) -> str:
    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{_format_loc(prefix, error['loc'])}: {message}"


def _slug_error(path: str, name: Any) -> list[str]:
    # Non-strings and blank names are already reported by the model
    if not isinstance(name, str) or not name.strip():
        return []
    try:
        normalize(name)
    except InvalidIdentifier:
        return [f"{path}: cannot be turned into an identifier"]
    return []


def _identifier_errors(prefix: str, raw: Mapping[str, Any]) -> list[str]:
    """
    Checks that need SlugIdentity: every name must yield a usable slug.

    Runs on the raw record so these errors are reported even when the
    record also fails model validation.
    """
    errors = _slug_error(f"{prefix}.name", raw.get("name"))

    sheet_id = raw.get("sheetId")
    if isinstance(sheet_id, str) and sheet_id.strip() and not is_slug(sheet_id.strip()):
        errors.append(
            f"{prefix}.sheetId: must be lowercase letters, digits and hyphens"
        )

    for collection in Collection:
        entries = raw.get(collection.value)
        if not isinstance(entries, list):
            continue
        for i, entry in enumerate(entries):
            if isinstance(entry, Mapping):
                errors.extend(
                    _slug_error(f"{prefix}.{collection.value}[{i}].name", entry.get("name"))
                )
    return errors


def validate(payload: str | bytes | Mapping[str, Any]) -> ValidationReport:
    """
    Validate an import payload ({"sheets": [...]}, as JSON text or parsed).

    Returns:
        ValidationReport listing every error found
    """
    if isinstance(payload, (str, bytes)):
        text = payload
        if isinstance(payload, bytes):
            try:
                text = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                return ValidationReport(ok=False, errors=[f"Invalid UTF-8: {e}"])
        if not text.strip():
            return ValidationReport(ok=False, errors=["Empty JSON."])
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            return ValidationReport(ok=False, errors=[f"Invalid JSON: {e}"])

    if not isinstance(payload, Mapping):
        return ValidationReport(ok=False, errors=["Root must be an object."])
    sheets = payload.get("sheets")
    if not isinstance(sheets, list):
        return ValidationReport(ok=False, errors=["Field 'sheets' must be an array."])

    errors: list[str] = []
    records: list[ImportSheet] = []

    for idx, raw in enumerate(sheets):
        prefix = f"sheets[{idx}]"
        if not isinstance(raw, Mapping):
            errors.append(f"{prefix}: must be an object")
            continue

        record = None
        try:
            record = ImportSheet.model_validate(raw)
        except ValidationError as exc:
            errors.extend(_format_error(prefix, err) for err in exc.errors())

        record_errors = _identifier_errors(prefix, raw)
        errors.extend(record_errors)
        if record is not None and not record_errors:
            records.append(record)

    if errors:
        logger.info("Import validation found %d error(s)", len(errors))

    return ValidationReport(
        ok=not errors,
        errors=errors,
        normalized_records=records if not errors else [],
    )


# -----------------------------------------------------------------------------
# Merge
# -----------------------------------------------------------------------------

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def entries_to_map(entries: list[Entry]) -> dict[str, dict]:
    """
    Key a record's entry array by slug.

    Collisions are resolved against this array only, never against other
    sheets, so two "Espada" entries become espada and espada-2.
    """
    taken: set[str] = set()
    keyed = {}
    for entry in entries:
        entry_id = resolve_for_import(entry.name, ImportMode.CREATE_ONLY, taken)
        keyed[entry_id] = entry.model_dump(mode="json", by_alias=True)
    return keyed


def merge(
    records: list[ImportSheet],
    mode: ImportMode | str,
    existing: Mapping[str, Any],
    now: str | None = None,
) -> WriteSet:
    """
    Build the write-set for a validated batch.

    Args:
        records: ValidationReport.normalized_records
        mode: MERGE overwrites existing ids, CREATE_ONLY never does
        existing: Current sheets collection, id -> record
        now: Timestamp for createdAt/updatedAt (defaults to current UTC time)

    Returns:
        One write per sheet, to be applied atomically
    """
    mode = ImportMode(mode)
    now = now or _now()
    taken = set(existing)
    writes = WriteSet()

    for record in records:
        desired = record.sheet_id or record.name
        sheet_id = resolve_for_import(desired, mode, taken)
        path = join_path(SHEETS, sheet_id)
        if path in writes:
            logger.warning("Import batch writes %s more than once; last record wins", sheet_id)

        previous = existing.get(sheet_id)
        created_at = previous.get("createdAt") if isinstance(previous, Mapping) else None

        writes.set(path, {
            "name": record.name,
            "attributes": record.attributes.model_dump(),
            "mental": record.mental,
            "notes": record.notes,
            "items": entries_to_map(record.items),
            "advantages": entries_to_map(record.advantages),
            "disadvantages": entries_to_map(record.disadvantages),
            "createdAt": created_at or now,
            "updatedAt": now,
        })

    return writes


def run_import(
    payload: str | bytes | Mapping[str, Any],
    mode: ImportMode | str,
    store: SheetStore,
    dry_run: bool = False,
    now: str | None = None,
) -> ImportOutcome:
    """
    Validate, merge and apply an import in one go.

    Raises:
        ImportRejected: the payload has errors; merge() was not called
    """
    report = validate(payload)
    if not report.ok:
        raise ImportRejected(report)

    existing = store.get(SHEETS) or {}
    writes = merge(report.normalized_records, mode, existing, now=now)

    if dry_run or not len(writes):
        return ImportOutcome(report=report, writes=writes, applied=False)

    store.apply(writes)
    logger.info("Imported %d sheet(s) in %s mode", len(writes), ImportMode(mode).value)
    return ImportOutcome(report=report, writes=writes, applied=True)
