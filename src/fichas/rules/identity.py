"""
Slug identifiers for sheets and entries.

Every record key comes from a display name through normalize(). When the
key is taken, the caller decides: overwrite the existing record or take
the first free "-N" suffix. The engine never picks on its own, because
the existence check and the eventual write are not a transaction.
"""

from __future__ import annotations

import inspect
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterator, Mapping

from ..errors import FichasError
from ..state.writes import WriteSet, join_path

logger = logging.getLogger(__name__)


# Suffixes tried after the bare slug: -2 through -200
MAX_SUFFIX_ATTEMPTS = 199

ExistsFn = Callable[[str], "Awaitable[bool] | bool"]
DecideFn = Callable[[str], "Awaitable[Decision] | Decision"]


class Decision(str, Enum):
    """What to do when a desired identifier is already in use."""
    OVERWRITE = "overwrite"  # Reuse the id, replacing the existing record
    SUFFIX = "suffix"        # Take the first unused -N variant


class ImportMode(str, Enum):
    MERGE = "MERGE"              # Existing ids are overwritten on purpose
    CREATE_ONLY = "CREATE_ONLY"  # Never touch an existing id


class IdentityError(FichasError):
    """Error while assigning an identifier."""
    pass


class InvalidIdentifier(IdentityError, ValueError):
    """A name normalizes to an empty slug."""
    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Cannot build an identifier from {text!r}.")


class ResolutionExhausted(IdentityError):
    """Every suffix candidate is taken."""
    def __init__(self, desired: str, attempts: int = MAX_SUFFIX_ATTEMPTS):
        self.desired = desired
        self.attempts = attempts
        super().__init__(
            f"No free identifier for {desired!r} after {attempts} suffix attempts."
        )


@dataclass
class RenameResult:
    """Outcome of a rename: the chosen id and the batch that applies it."""
    old_id: str
    new_id: str
    writes: WriteSet = field(default_factory=WriteSet)
    references_updated: list[str] = field(default_factory=list)

    @property
    def moved(self) -> bool:
        return self.old_id != self.new_id


_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-z0-9-]")
_HYPHENS = re.compile(r"-{2,}")


def normalize(text: str) -> str:
    """
    Turn a display name into a slug.

    "Espada Élfica!" -> "espada-elfica"

    Raises:
        InvalidIdentifier: nothing usable is left
    """
    decomposed = unicodedata.normalize("NFKD", str(text))
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    slug = _WHITESPACE.sub("-", stripped.lower().strip())
    slug = _DISALLOWED.sub("", slug)
    slug = _HYPHENS.sub("-", slug).strip("-")
    if not slug:
        raise InvalidIdentifier(text)
    return slug


def is_slug(text: str) -> bool:
    """True if text is already in normalized form."""
    try:
        return normalize(text) == text
    except InvalidIdentifier:
        return False


def suffix_candidates(slug: str) -> Iterator[str]:
    """desired-2, desired-3, ... up to the attempt bound."""
    for n in range(2, MAX_SUFFIX_ATTEMPTS + 2):
        yield f"{slug}-{n}"


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


async def first_unused(slug: str, exists: ExistsFn) -> str:
    """First suffixed variant of slug that exists() reports as free."""
    for candidate in suffix_candidates(slug):
        if not await _maybe_await(exists(candidate)):
            return candidate
    raise ResolutionExhausted(slug)


async def resolve_for_create(desired: str, exists: ExistsFn, decide: DecideFn) -> str:
    """
    Pick the identifier for a new record.

    Args:
        desired: Display name or slug
        exists: Existence oracle for the target collection
        decide: Called with the taken slug when there is a conflict

    Returns:
        The slug itself when free or when the caller chose to overwrite,
        otherwise the first free suffixed variant
    """
    slug = normalize(desired)
    if not await _maybe_await(exists(slug)):
        return slug

    decision = Decision(await _maybe_await(decide(slug)))
    if decision is Decision.OVERWRITE:
        logger.info("Identifier %s in use; overwriting by request", slug)
        return slug

    chosen = await first_unused(slug, exists)
    logger.info("Identifier %s in use; using %s", slug, chosen)
    return chosen


async def resolve_for_rename(
    old_id: str,
    new_desired: str,
    exists: ExistsFn,
    decide: DecideFn,
    record: dict,
    referrers: Mapping[str, dict] | None = None,
    *,
    base_path: str = "sheets",
    ref_field: str = "sheetId",
) -> RenameResult:
    """
    Move a record to the identifier for its new name.

    The old id counts as free, so renaming "goblin-2" to "Goblin" while
    "goblin" is taken can land back on "goblin-2". When the id changes,
    every referrer whose ref_field points at old_id is rewritten in the
    same batch as the move, so the store never holds a dangling reference.

    Args:
        old_id: Current identifier
        new_desired: New display name
        exists: Existence oracle for the collection under base_path
        decide: Conflict callback, as in resolve_for_create
        record: Current record data to write under the new id
        referrers: path -> record for everything that may point at old_id
        base_path: Collection path the record lives under
        ref_field: Field holding the back-reference in referrer records

    Returns:
        RenameResult carrying the batch to apply
    """
    async def exists_except_self(candidate: str) -> bool:
        if candidate == old_id:
            return False
        return bool(await _maybe_await(exists(candidate)))

    slug = normalize(new_desired)
    if slug == old_id:
        new_id = old_id
    else:
        new_id = await resolve_for_create(slug, exists_except_self, decide)

    result = RenameResult(old_id=old_id, new_id=new_id)
    result.writes.set(join_path(base_path, new_id), record)
    if not result.moved:
        return result

    result.writes.delete(join_path(base_path, old_id))
    for path, value in (referrers or {}).items():
        if isinstance(value, dict) and value.get(ref_field) == old_id:
            result.writes.set(path, {**value, ref_field: new_id})
            result.references_updated.append(path)

    logger.info(
        "Renaming %s -> %s (%d references updated)",
        old_id, new_id, len(result.references_updated),
    )
    return result


def resolve_for_import(desired: str, mode: ImportMode | str, existing: set[str]) -> str:
    """
    Pick an identifier during a batch import.

    existing holds every id already in the collection and is updated with
    the chosen id, so two records of one batch never collide in
    CREATE_ONLY mode.
    """
    slug = normalize(desired)
    if ImportMode(mode) is ImportMode.MERGE or slug not in existing:
        existing.add(slug)
        return slug

    for candidate in suffix_candidates(slug):
        if candidate not in existing:
            existing.add(candidate)
            return candidate
    raise ResolutionExhausted(slug)
