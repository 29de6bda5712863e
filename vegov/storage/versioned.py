"""
Height-Versioned Table

Append-only per-key version log stored inside a KVStore, so versions roll
back together with the rest of an operation's writes.

Height semantics: a value saved while processing block H becomes visible to
`may_load_at_height(key, H + 1)` and later, never to H itself.
`may_load_at_height(key, H)` therefore answers "what was the value at the
start of block H".
"""

from __future__ import annotations

from typing import Any, Iterator, List, Optional, Tuple

from .kv import KVStore, Table

_TOMBSTONE = None


class VersionedTable:
    """A Table whose values keep their full write history."""

    def __init__(self, store: KVStore, namespace: str) -> None:
        self._table = Table(store, namespace)

    def _versions(self, key: Any) -> List[Tuple[int, Any]]:
        return self._table.get(key, [])

    def save(self, key: Any, value: Any, height: int) -> None:
        """Record *value* as of *height*; heights never go backwards per key."""
        versions = self._versions(key)
        if versions and versions[-1][0] > height:
            raise ValueError(
                f"Version height {height} precedes last write at {versions[-1][0]}"
            )
        if versions and versions[-1][0] == height:
            versions[-1] = (height, value)
        else:
            versions.append((height, value))
        self._table.set(key, versions)

    def remove(self, key: Any, height: int) -> None:
        if self.load(key) is not None:
            self.save(key, _TOMBSTONE, height)

    def load(self, key: Any, default: Any = None) -> Any:
        versions = self._versions(key)
        if not versions or versions[-1][1] is _TOMBSTONE:
            return default
        return versions[-1][1]

    def may_load_at_height(self, key: Any, height: int, default: Any = None) -> Any:
        """Newest value written strictly before *height*."""
        found: Optional[Any] = default
        for h, value in self._versions(key):
            if h >= height:
                break
            found = default if value is _TOMBSTONE else value
        return found

    def items(self, prefix: Any = ()) -> Iterator[Tuple[Any, Any]]:
        """Latest live value of every key under *prefix*."""
        for key, versions in self._table.items(prefix):
            if versions and versions[-1][1] is not _TOMBSTONE:
                yield key, versions[-1][1]

    def items_at_height(self, prefix: Any, height: int) -> Iterator[Tuple[Any, Any]]:
        for key, _ in self._table.items(prefix):
            value = self.may_load_at_height(key, height)
            if value is not None:
                yield key, value
