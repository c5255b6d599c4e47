"""
Write-sets: a batch of path -> value writes applied as one unit.

Paths are slash-separated keys into the store tree ("sheets/goblin").
A value of None deletes the path. A batch may not contain a path together
with one of its ancestors, since the result would depend on write order.
"""

from copy import deepcopy
from typing import Any, Iterator

from ..errors import FichasError


class WriteConflict(FichasError, ValueError):
    """Two writes in one batch touch overlapping paths."""
    def __init__(self, path: str, other: str):
        self.path = path
        self.other = other
        super().__init__(f"Write to {path!r} overlaps write to {other!r} in the same batch.")


def split_path(path: str) -> list[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValueError("Empty store path")
    return parts


def join_path(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p)


def _overlaps(a: list[str], b: list[str]) -> bool:
    shorter = min(len(a), len(b))
    return a[:shorter] == b[:shorter]


class WriteSet:
    """Ordered path -> value mapping to be applied atomically."""

    def __init__(self) -> None:
        self._writes: dict[str, Any] = {}

    def set(self, path: str, value: Any) -> None:
        """Queue a write. Re-writing the same path replaces the earlier value."""
        key = join_path(*split_path(path))
        parts = split_path(key)
        for other in self._writes:
            if other != key and _overlaps(parts, split_path(other)):
                raise WriteConflict(key, other)
        self._writes[key] = deepcopy(value)

    def delete(self, path: str) -> None:
        self.set(path, None)

    def update(self, other: "WriteSet") -> None:
        for path, value in other:
            self.set(path, value)

    def get(self, path: str, default: Any = None) -> Any:
        return self._writes.get(join_path(*split_path(path)), default)

    @property
    def paths(self) -> list[str]:
        return list(self._writes)

    def to_dict(self) -> dict[str, Any]:
        return deepcopy(self._writes)

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return iter(list(self._writes.items()))

    def __len__(self) -> int:
        return len(self._writes)

    def __contains__(self, path: str) -> bool:
        return join_path(*split_path(path)) in self._writes

    def __repr__(self) -> str:
        return f"WriteSet({self.paths!r})"
