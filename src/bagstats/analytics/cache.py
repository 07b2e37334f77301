"""Short-lived result cache and per-key single-flight locking."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Generic, Hashable, Iterator, Optional, Tuple, TypeVar

from cachetools import LRUCache

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """Thread-safe TTL map.

    Expiry is only checked on ``get``: an expired entry stays stored until the
    next read of its key. ``maxsize`` bounds memory by evicting the least
    recently used key once the map is full.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        maxsize: int = 1_024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = max(float(ttl_seconds), 0.0)
        self._timer = timer
        self._data: LRUCache[K, Tuple[float, V]] = LRUCache(maxsize=maxsize)
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> Optional[V]:
        if self._ttl <= 0:
            return None
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._timer() >= expires_at:
                del self._data[key]
                return None
            return value

    def put(self, key: K, value: V) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._data[key] = (self._timer() + self._ttl, value)

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class KeyedLocks:
    """Hands out one lock per key so concurrent callers for the same key serialise."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]


__all__ = ["ExpiringCache", "KeyedLocks"]
