"""
Key/value store abstraction.

The engine only needs three things from the surrounding system: read a
path, ask whether a path exists, and apply a write-set atomically.

Implementations:
- MemoryStore: in-memory tree (testing, dry runs)
- JsonStore: the same tree persisted to a JSON file (CLI)
"""

import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .writes import WriteSet, join_path, split_path

logger = logging.getLogger(__name__)


@runtime_checkable
class SheetStore(Protocol):
    """Abstract storage interface."""

    def get(self, path: str) -> Any:
        """Value at path, or None."""
        ...

    async def exists(self, path: str) -> bool:
        """Whether anything is stored at path."""
        ...

    def apply(self, writes: WriteSet) -> None:
        """Apply every write or none of them."""
        ...


def _write(tree: dict, path: str, value: Any) -> None:
    parts = split_path(path)
    if value is None:
        trail = []
        node = tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                return
            trail.append((node, part))
            node = child
        node.pop(parts[-1], None)
        # Empty parents disappear, like any tree-shaped realtime store
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]
        return

    node = tree
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[parts[-1]] = deepcopy(value)


class MemoryStore:
    """
    In-memory tree store.

    No file I/O - all data lives in memory.
    """

    def __init__(self, data: dict | None = None):
        self.data: dict = deepcopy(data) if data else {}

    def get(self, path: str) -> Any:
        node: Any = self.data
        for part in split_path(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return deepcopy(node)

    def children(self, path: str) -> dict:
        """Mapping of child key -> value under path (empty if none)."""
        value = self.get(path)
        return value if isinstance(value, dict) else {}

    async def exists(self, path: str) -> bool:
        return self.get(path) is not None

    def exists_in(self, collection: str):
        """Existence oracle scoped to one collection, for identity resolution."""
        async def check(identifier: str) -> bool:
            return await self.exists(join_path(collection, identifier))
        return check

    def apply(self, writes: WriteSet) -> None:
        staged = deepcopy(self.data)
        for path, value in writes:
            _write(staged, path, value)
        self.data = staged
        logger.debug("Applied %d writes", len(writes))

    def clear(self) -> None:
        """Drop everything (test utility)."""
        self.data = {}


class JsonStore(MemoryStore):
    """
    MemoryStore persisted to a JSON file.

    Features:
    - Backup of the previous file on every save
    - Whole-file rewrite, so a batch lands completely or not at all
    """

    def __init__(self, path: Path | str = "fichas.json"):
        self.path = Path(path)
        data = {}
        if self.path.exists():
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"{self.path} does not hold a JSON object")
        super().__init__(data)

    def apply(self, writes: WriteSet) -> None:
        super().apply(writes)
        self.save()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Backup previous save
        if self.path.exists():
            backup = self.path.with_suffix(self.path.suffix + ".bak")
            backup.write_text(self.path.read_text(encoding="utf-8"), encoding="utf-8")

        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)
        logger.info("Saved store to %s", self.path)
