"""
Transactional Key-Value Store

Single logical store for all engine state.

Features:
  - Tuple keys whose first element is a namespace
  - Values are deep-copied on read and write, so callers never alias state
  - transaction(): journals every write and restores all touched keys when
    the block raises; nested transactions act as savepoints
  - state_root(): deterministic blake2b commitment over every entry
"""

from __future__ import annotations

import copy
import hashlib
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..logger import get_logger

logger = get_logger(__name__)

Key = Tuple[Any, ...]

_MISSING = object()


class KVStore:
    """
    In-memory transactional store.

    Usage:

        store = KVStore()
        with store.transaction():
            store.set(("supply", "ugov"), totals)
            ...            # any exception here undoes every write above
    """

    def __init__(self) -> None:
        self._data: Dict[Key, Any] = {}
        self._journal: Optional[List[Tuple[Key, Any]]] = None

    # --- basic access -----------------------------------------------------

    def get(self, key: Key, default: Any = None) -> Any:
        value = self._data.get(key, _MISSING)
        if value is _MISSING:
            return default
        return copy.deepcopy(value)

    def has(self, key: Key) -> bool:
        return key in self._data

    def set(self, key: Key, value: Any) -> None:
        self._record(key)
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: Key) -> None:
        if key not in self._data:
            return
        self._record(key)
        del self._data[key]

    def items(self, prefix: Key) -> Iterator[Tuple[Key, Any]]:
        """Entries whose key starts with *prefix*, in key order."""
        n = len(prefix)
        matched = [k for k in self._data if k[:n] == prefix]
        for k in sorted(matched, key=_sort_key):
            yield k, copy.deepcopy(self._data[k])

    # --- transactions -----------------------------------------------------

    def _record(self, key: Key) -> None:
        if self._journal is not None:
            previous = copy.deepcopy(self._data[key]) if key in self._data else _MISSING
            self._journal.append((key, previous))

    @contextmanager
    def transaction(self) -> Iterator["KVStore"]:
        """All-or-nothing scope for the writes made inside the block."""
        outer = self._journal is None
        if outer:
            self._journal = []
        savepoint = len(self._journal)
        try:
            yield self
        except BaseException:
            self._rollback(savepoint)
            raise
        finally:
            if outer:
                self._journal = None

    def _rollback(self, savepoint: int) -> None:
        undone = 0
        while len(self._journal) > savepoint:
            key, previous = self._journal.pop()
            if previous is _MISSING:
                self._data.pop(key, None)
            else:
                self._data[key] = previous
            undone += 1
        logger.debug("Rolled back %d write(s)", undone)

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    # --- commitment -------------------------------------------------------

    def state_root(self) -> str:
        """64-char hex blake2b digest of every (key, value) in key order."""
        hasher = hashlib.blake2b(digest_size=32)
        for key in sorted(self._data, key=_sort_key):
            hasher.update(repr(key).encode())
            hasher.update(b"=")
            hasher.update(repr(self._data[key]).encode())
            hasher.update(b";")
        return hasher.hexdigest()


def _sort_key(key: Key) -> Tuple:
    # Mixed element types within a namespace sort by type name first
    return tuple((type(part).__name__, part) for part in key)


class Table:
    """A namespace inside a KVStore with single- or multi-part keys."""

    def __init__(self, store: KVStore, namespace: str) -> None:
        self.store = store
        self.namespace = namespace

    def _key(self, key: Any) -> Key:
        if isinstance(key, tuple):
            return (self.namespace,) + key
        return (self.namespace, key)

    def get(self, key: Any, default: Any = None) -> Any:
        return self.store.get(self._key(key), default)

    def has(self, key: Any) -> bool:
        return self.store.has(self._key(key))

    def set(self, key: Any, value: Any) -> None:
        self.store.set(self._key(key), value)

    def delete(self, key: Any) -> None:
        self.store.delete(self._key(key))

    def items(self, prefix: Any = ()) -> Iterator[Tuple[Any, Any]]:
        """Yield (key-without-namespace, value); single-part keys are unwrapped."""
        if not isinstance(prefix, tuple):
            prefix = (prefix,)
        for full, value in self.store.items((self.namespace,) + prefix):
            rest = full[1:]
            yield (rest[0] if len(rest) == 1 else rest), value


class Counter:
    """Monotonic sequence stored under a single key."""

    def __init__(self, store: KVStore, name: str) -> None:
        self.store = store
        self.key = ("counter", name)

    def current(self) -> int:
        return self.store.get(self.key, 0)

    def next(self) -> int:
        value = self.current() + 1
        self.store.set(self.key, value)
        return value
