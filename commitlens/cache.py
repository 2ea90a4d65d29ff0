"""Bounded in-memory LRU caches for file contents and reconstructed diffs."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import ClassVar, Generic, TypeVar

from commitlens.models import DiffContent

DEFAULT_CONTENT_CACHE_CAPACITY = 100
DEFAULT_DIFF_CACHE_CAPACITY = 50

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class FileCacheKey:
    """Identity of one file's content at one git ref."""

    owner: str
    repo: str
    path: str
    ref: str


@dataclass(frozen=True, slots=True)
class DiffCacheKey:
    """Identity of one file's diff between two commits."""

    owner: str
    repo: str
    path: str
    base_sha: str
    head_sha: str


class LRUCache(Generic[K, V]):
    """Thread-safe least-recently-used map with a fixed capacity.

    Every access takes the lock: reads promote entries, so they mutate
    ordering just like writes do. Stored values are expected to be immutable,
    which lets ``get`` hand back the stored object directly. Passing the same
    instance to several components shares one store between them.
    """

    default_capacity: ClassVar[int] = DEFAULT_CONTENT_CACHE_CAPACITY

    def __init__(self, capacity: int | None = None) -> None:
        if capacity is None or capacity <= 0:
            if capacity is not None:
                logger.debug(
                    "Invalid cache capacity %s; using default %s.",
                    capacity,
                    self.default_capacity,
                )
            capacity = self.default_capacity
        self._capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        """Maximum number of entries kept."""
        return self._capacity

    def get(self, key: K) -> V | None:
        """Return the cached value and mark it most recently used."""
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: K, value: V) -> None:
        """Insert or overwrite an entry, evicting the least recently used one."""
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s.", evicted_key)

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ContentCache(LRUCache[FileCacheKey, str]):
    """File text keyed by (owner, repo, path, ref)."""

    default_capacity = DEFAULT_CONTENT_CACHE_CAPACITY


class DiffCache(LRUCache[DiffCacheKey, DiffContent]):
    """Reconstructed diffs keyed by (owner, repo, path, base sha, head sha)."""

    default_capacity = DEFAULT_DIFF_CACHE_CAPACITY
