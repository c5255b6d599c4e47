"""
Tests for slug identifiers and conflict resolution.

Async resolvers are driven with asyncio.run.
"""

import asyncio

import pytest

from fichas.rules.identity import (
    MAX_SUFFIX_ATTEMPTS,
    Decision,
    ImportMode,
    InvalidIdentifier,
    ResolutionExhausted,
    is_slug,
    normalize,
    resolve_for_create,
    resolve_for_import,
    resolve_for_rename,
)


def oracle(*taken):
    """Async existence check over a fixed set of ids."""
    taken = set(taken)

    async def exists(identifier):
        return identifier in taken
    return exists


def fail_if_called(slug):
    raise AssertionError(f"decide() should not be called for {slug}")


class TestNormalize:
    """Test normalize."""

    def test_accents_and_punctuation(self):
        """Diacritics are folded and punctuation dropped."""
        assert normalize("Espada Élfica!") == "espada-elfica"

    def test_whitespace_collapses(self):
        """Runs of whitespace and hyphens become one hyphen."""
        assert normalize("  Lâmina   de -- Gelo ") == "lamina-de-gelo"

    def test_idempotent(self):
        """normalize(normalize(s)) == normalize(s)."""
        for text in ("Ação Rápida", "goblin-2", "Ñandú  Veloz", "X"):
            once = normalize(text)
            assert normalize(once) == once

    def test_only_allowed_characters(self):
        """Output is lowercase letters, digits and single inner hyphens."""
        slug = normalize("Coração_de Dragão #3 ~~ (raro)")
        assert slug == "coracaode-dragao-3-raro"
        assert is_slug(slug)

    def test_blank_raises(self):
        """Whitespace only cannot become an identifier."""
        with pytest.raises(InvalidIdentifier):
            normalize("   ")

    def test_symbols_only_raises(self):
        """A name with nothing usable raises, carrying the input text."""
        with pytest.raises(InvalidIdentifier) as exc:
            normalize("!!!")
        assert exc.value.text == "!!!"

    def test_invalid_identifier_is_value_error(self):
        """Callers can catch it as ValueError."""
        with pytest.raises(ValueError):
            normalize("")


class TestResolveForCreate:
    """Test resolve_for_create."""

    def test_free_slug_used(self):
        """A free slug is returned without asking."""
        result = asyncio.run(resolve_for_create("Goblin", oracle(), fail_if_called))
        assert result == "goblin"

    def test_suffix_on_conflict(self):
        """SUFFIX picks the first free -N."""
        result = asyncio.run(
            resolve_for_create("Goblin", oracle("goblin"), lambda slug: Decision.SUFFIX)
        )
        assert result == "goblin-2"

    def test_suffix_skips_taken(self):
        """Taken suffixes are skipped."""
        exists = oracle("goblin", "goblin-2", "goblin-3")
        result = asyncio.run(resolve_for_create("goblin", exists, lambda slug: "suffix"))
        assert result == "goblin-4"

    def test_overwrite_keeps_slug(self):
        """OVERWRITE returns the taken slug itself."""
        result = asyncio.run(
            resolve_for_create("Goblin", oracle("goblin"), lambda slug: Decision.OVERWRITE)
        )
        assert result == "goblin"

    def test_async_decide(self):
        """decide() may be a coroutine function."""
        async def decide(slug):
            return Decision.SUFFIX

        assert asyncio.run(resolve_for_create("Goblin", oracle("goblin"), decide)) == "goblin-2"

    def test_sync_exists(self):
        """exists() may be a plain function."""
        result = asyncio.run(
            resolve_for_create("Goblin", lambda s: s == "goblin", lambda slug: Decision.SUFFIX)
        )
        assert result == "goblin-2"

    def test_decide_receives_slug(self):
        """decide() is called once, with the conflicting slug."""
        seen = []

        def decide(slug):
            seen.append(slug)
            return Decision.SUFFIX

        asyncio.run(resolve_for_create("Espada Élfica", oracle("espada-elfica"), decide))
        assert seen == ["espada-elfica"]

    def test_exhaustion(self):
        """Every candidate taken raises after the attempt bound."""
        calls = []

        async def exists(identifier):
            calls.append(identifier)
            return True

        with pytest.raises(ResolutionExhausted) as exc:
            asyncio.run(resolve_for_create("x", exists, lambda slug: Decision.SUFFIX))

        assert exc.value.attempts == MAX_SUFFIX_ATTEMPTS
        assert calls[-1] == "x-200"
        assert len(calls) == 1 + MAX_SUFFIX_ATTEMPTS

    def test_invalid_name_raises_before_lookup(self):
        """Blank names fail before the oracle is consulted."""
        with pytest.raises(InvalidIdentifier):
            asyncio.run(resolve_for_create("  ", fail_if_called, fail_if_called))


class TestResolveForRename:
    """Test resolve_for_rename."""

    def test_same_slug_stays(self):
        """Renaming to a name with the same slug does not move."""
        result = asyncio.run(resolve_for_rename(
            "goblin", "GOBLIN", oracle("goblin"), fail_if_called, {"name": "GOBLIN"},
        ))
        assert not result.moved
        assert result.writes.to_dict() == {"sheets/goblin": {"name": "GOBLIN"}}

    def test_move_rewrites_back_references(self):
        """Moving writes the new path, deletes the old and fixes referrers."""
        referrers = {
            "assignments/u1": {"sheetId": "goblin"},
            "assignments/u2": {"sheetId": "orc"},
        }
        result = asyncio.run(resolve_for_rename(
            "goblin", "Hobgoblin", oracle("goblin", "orc"), fail_if_called,
            {"name": "Hobgoblin"}, referrers,
        ))

        assert result.new_id == "hobgoblin"
        assert result.writes.to_dict() == {
            "sheets/hobgoblin": {"name": "Hobgoblin"},
            "sheets/goblin": None,
            "assignments/u1": {"sheetId": "hobgoblin"},
        }
        assert result.references_updated == ["assignments/u1"]

    def test_own_id_counts_as_free(self):
        """Renaming goblin-2 to Goblin may land back on goblin-2."""
        result = asyncio.run(resolve_for_rename(
            "goblin-2", "Goblin", oracle("goblin", "goblin-2"),
            lambda slug: Decision.SUFFIX, {"name": "Goblin"},
        ))
        assert result.new_id == "goblin-2"
        assert not result.moved

    def test_overwrite_target(self):
        """OVERWRITE replaces the record at the target id."""
        result = asyncio.run(resolve_for_rename(
            "orc", "Goblin", oracle("goblin", "orc"),
            lambda slug: Decision.OVERWRITE, {"name": "Goblin"},
        ))
        assert result.new_id == "goblin"
        assert result.writes.get("sheets/orc", "missing") is None

    def test_custom_base_path(self):
        """Entries rename inside their own collection."""
        result = asyncio.run(resolve_for_rename(
            "espada", "Espada Longa", oracle("espada"), fail_if_called,
            {"name": "Espada Longa"}, base_path="sheets/aria/items",
        ))
        assert result.writes.paths == ["sheets/aria/items/espada-longa", "sheets/aria/items/espada"]


class TestResolveForImport:
    """Test resolve_for_import."""

    def test_create_only_suffixes_within_batch(self):
        """Two Goblins in one batch become goblin and goblin-2."""
        taken = set()
        first = resolve_for_import("Goblin", ImportMode.CREATE_ONLY, taken)
        second = resolve_for_import("Goblin", ImportMode.CREATE_ONLY, taken)
        assert (first, second) == ("goblin", "goblin-2")
        assert taken == {"goblin", "goblin-2"}

    def test_create_only_avoids_existing(self):
        """Existing ids are never reused in CREATE_ONLY."""
        assert resolve_for_import("Goblin", "CREATE_ONLY", {"goblin"}) == "goblin-2"

    def test_merge_reuses_existing(self):
        """MERGE overwrites existing ids."""
        assert resolve_for_import("Goblin", ImportMode.MERGE, {"goblin"}) == "goblin"

    def test_create_only_exhaustion(self):
        """Bounded like interactive resolution."""
        taken = {"x"} | {f"x-{n}" for n in range(2, 201)}
        with pytest.raises(ResolutionExhausted):
            resolve_for_import("x", ImportMode.CREATE_ONLY, taken)
