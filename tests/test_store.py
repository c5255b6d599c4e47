"""
Tests for write-sets and the key/value stores.
"""

import asyncio
import json
from copy import deepcopy

import pytest

from fichas.state.store import JsonStore, SheetStore
from fichas.state.writes import WriteConflict, WriteSet, join_path, split_path


class TestWriteSet:
    """Test WriteSet batching rules."""

    def test_paths_are_normalized(self):
        """Leading, trailing and doubled slashes are ignored."""
        writes = WriteSet()
        writes.set("/sheets//goblin/", {"name": "Goblin"})
        assert writes.paths == ["sheets/goblin"]
        assert "sheets/goblin" in writes

    def test_same_path_replaces(self):
        """Writing a path twice keeps the last value."""
        writes = WriteSet()
        writes.set("sheets/goblin", {"name": "A"})
        writes.set("sheets/goblin", {"name": "B"})
        assert len(writes) == 1
        assert writes.get("sheets/goblin") == {"name": "B"}

    def test_ancestor_overlap_rejected(self):
        """A path and its ancestor cannot share a batch."""
        writes = WriteSet()
        writes.set("sheets/goblin", {"name": "Goblin"})
        with pytest.raises(WriteConflict):
            writes.set("sheets/goblin/items/espada", {"name": "Espada"})
        with pytest.raises(WriteConflict):
            writes.delete("sheets")

    def test_siblings_allowed(self):
        """Prefix-sharing siblings do not overlap."""
        writes = WriteSet()
        writes.set("sheets/goblin", {})
        writes.set("sheets/goblin-2", {})
        assert len(writes) == 2

    def test_values_are_copied(self):
        """Later mutation of the caller's dict does not leak in."""
        record = {"name": "Goblin"}
        writes = WriteSet()
        writes.set("sheets/goblin", record)
        record["name"] = "Orc"
        assert writes.get("sheets/goblin") == {"name": "Goblin"}

    def test_empty_path_rejected(self):
        """The root cannot be written."""
        with pytest.raises(ValueError):
            WriteSet().set("/", {})

    def test_path_helpers(self):
        """join_path and split_path are inverses for clean paths."""
        assert join_path("sheets", "goblin", "") == "sheets/goblin"
        assert split_path("sheets/goblin") == ["sheets", "goblin"]


class TestMemoryStore:
    """Test MemoryStore."""

    def test_satisfies_protocol(self, memory_store):
        """MemoryStore is a SheetStore."""
        assert isinstance(memory_store, SheetStore)

    def test_apply_and_get(self, memory_store):
        """Applied writes are readable at their paths."""
        writes = WriteSet()
        writes.set("sheets/goblin", {"name": "Goblin"})
        writes.set("assignments/u1", {"sheetId": "goblin"})
        memory_store.apply(writes)

        assert memory_store.get("sheets/goblin/name") == "Goblin"
        assert memory_store.children("assignments") == {"u1": {"sheetId": "goblin"}}

    def test_get_returns_copy(self, populated_store):
        """Mutating a read value leaves the store untouched."""
        record = populated_store.get("sheets/aria")
        record["name"] = "Outra"
        assert populated_store.get("sheets/aria/name") == "Aria"

    def test_delete_prunes_empty_parents(self, memory_store):
        """Deleting the last child removes the empty parent."""
        writes = WriteSet()
        writes.set("sheets/goblin", {"name": "Goblin"})
        memory_store.apply(writes)

        writes = WriteSet()
        writes.delete("sheets/goblin")
        memory_store.apply(writes)
        assert memory_store.data == {}

    def test_exists(self, populated_store):
        """exists() and exists_in() are async oracles."""
        assert asyncio.run(populated_store.exists("sheets/aria")) is True
        assert asyncio.run(populated_store.exists("sheets/nope")) is False
        check = populated_store.exists_in("sheets")
        assert asyncio.run(check("aria")) is True

    def test_apply_is_all_or_nothing(self, populated_store, monkeypatch):
        """A failure mid-batch leaves the previous tree in place."""
        from fichas.state import store as store_module

        calls = []
        original = store_module._write

        def flaky(tree, path, value):
            calls.append(path)
            if len(calls) == 2:
                raise RuntimeError("boom")
            original(tree, path, value)

        monkeypatch.setattr(store_module, "_write", flaky)
        writes = WriteSet()
        writes.delete("sheets/aria")
        writes.set("sheets/novo", {"name": "Novo"})

        before = deepcopy(populated_store.data)
        with pytest.raises(RuntimeError):
            populated_store.apply(writes)
        assert populated_store.data == before
        assert populated_store.get("sheets/aria") is not None

    def test_clear(self, populated_store):
        """clear() drops everything."""
        populated_store.clear()
        assert populated_store.data == {}


class TestJsonStore:
    """Test JsonStore persistence."""

    def test_missing_file_starts_empty(self, tmp_path):
        """No file yet means an empty store."""
        store = JsonStore(tmp_path / "fichas.json")
        assert store.data == {}

    def test_apply_persists(self, tmp_path):
        """Applied writes survive a reload."""
        path = tmp_path / "fichas.json"
        writes = WriteSet()
        writes.set("sheets/goblin", {"name": "Goblin"})
        JsonStore(path).apply(writes)

        assert JsonStore(path).get("sheets/goblin") == {"name": "Goblin"}

    def test_backup_written(self, tmp_path):
        """The previous file is kept as .bak."""
        path = tmp_path / "fichas.json"
        store = JsonStore(path)

        first = WriteSet()
        first.set("sheets/a", {"name": "A"})
        store.apply(first)
        second = WriteSet()
        second.set("sheets/b", {"name": "B"})
        store.apply(second)

        backup = json.loads((tmp_path / "fichas.json.bak").read_text(encoding="utf-8"))
        assert backup == {"sheets": {"a": {"name": "A"}}}

    def test_non_object_file_rejected(self, tmp_path):
        """A file holding a list is not a store."""
        path = tmp_path / "fichas.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError):
            JsonStore(path)
