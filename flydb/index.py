"""In-memory indexes mapping keys to record positions."""

from __future__ import annotations

import bisect
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator

from .options import IndexType
from .record import LogRecordPos


def _normalize(key) -> bytes:
    return bytes(key) if key is not None else b""


class IndexIterator:
    """A snapshot of index entries, walked in key order or its reverse."""

    def __init__(self, items: list[tuple[bytes, LogRecordPos]], reverse: bool) -> None:
        # items arrive in ascending key order
        self._ascending_keys = [key for key, _ in items]
        self._items = list(reversed(items)) if reverse else list(items)
        self._reverse = reverse
        self._index = 0

    def rewind(self) -> None:
        self._index = 0

    def seek(self, key: bytes) -> None:
        """Move to the first key >= key, or <= key when reversed."""
        key = _normalize(key)
        if self._reverse:
            count = len(self._ascending_keys)
            self._index = count - bisect.bisect_right(self._ascending_keys, key)
        else:
            self._index = bisect.bisect_left(self._ascending_keys, key)

    def next(self) -> None:
        self._index += 1

    def valid(self) -> bool:
        return self._index < len(self._items)

    def key(self) -> bytes:
        return self._items[self._index][0]

    def value(self) -> LogRecordPos:
        return self._items[self._index][1]

    def close(self) -> None:
        self._items = []
        self._ascending_keys = []

    def __iter__(self) -> Iterator[tuple[bytes, LogRecordPos]]:
        self.rewind()
        while self.valid():
            yield self.key(), self.value()
            self.next()


class Indexer(ABC):
    """Maps keys to the position of their latest record."""

    @abstractmethod
    def put(self, key: bytes, pos: LogRecordPos) -> bool:
        """Store the position of key."""

    @abstractmethod
    def get(self, key: bytes) -> LogRecordPos | None:
        """Position of key, or None when absent."""

    @abstractmethod
    def delete(self, key: bytes) -> bool:
        """Remove key, returning whether it was present."""

    @abstractmethod
    def size(self) -> int:
        """Number of keys held."""

    @abstractmethod
    def iterator(self, reverse: bool = False) -> IndexIterator:
        """Snapshot iterator over the keys in order."""

    def __len__(self) -> int:
        return self.size()


class _OrderedIndex(Indexer):
    def __init__(self) -> None:
        self._entries: dict[bytes, LogRecordPos] = {}
        self._lock = threading.RLock()

    def put(self, key: bytes, pos: LogRecordPos) -> bool:
        with self._lock:
            self._entries[_normalize(key)] = pos
        return True

    def get(self, key: bytes) -> LogRecordPos | None:
        with self._lock:
            return self._entries.get(_normalize(key))

    def delete(self, key: bytes) -> bool:
        with self._lock:
            return self._entries.pop(_normalize(key), None) is not None

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def iterator(self, reverse: bool = False) -> IndexIterator:
        with self._lock:
            items = sorted(self._entries.items())
        return IndexIterator(items, reverse)


class BTreeIndex(_OrderedIndex):
    """Ordered index in the role of a B-tree."""


class ARTIndex(_OrderedIndex):
    """Ordered index in the role of an adaptive radix tree."""


def new_indexer(index_type, dir_path=None) -> Indexer:
    """Create the index named by index_type."""
    try:
        kind = IndexType(index_type)
    except ValueError:
        raise ValueError("unsupported index type") from None
    if kind is IndexType.BTREE:
        return BTreeIndex()
    return ARTIndex()