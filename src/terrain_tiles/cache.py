from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    stored_at: float


class MemoCache(Generic[K, V]):
    """Thread-safe memoizing cache, bounded by capacity (LRU) and optional TTL.

    `ttl_seconds=None` keeps entries until they are evicted by capacity.
    Concurrent `get_or_compute` calls for the same key run `compute` once;
    failures are not cached.
    """

    def __init__(
        self,
        *,
        capacity: int = 16,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0 when set")

        self._capacity = int(capacity)
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[K, _Entry[V]] = OrderedDict()
        self._lock = threading.Lock()
        self._key_locks: dict[K, threading.Lock] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_seconds(self) -> Optional[float]:
        return self._ttl_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return self._live_entry(key) is not None  # type: ignore[arg-type]

    def _is_expired(self, entry: _Entry[V]) -> bool:
        if self._ttl_seconds is None:
            return False
        return self._clock() - entry.stored_at >= self._ttl_seconds

    def _live_entry(self, key: K) -> Optional[_Entry[V]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._live_entry(key)
            return None if entry is None else entry.value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, stored_at=self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                return entry.value
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                entry = self._live_entry(key)
                if entry is not None:
                    return entry.value
            try:
                value = compute()
                self.put(key, value)
            finally:
                with self._lock:
                    self._key_locks.pop(key, None)
            return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
