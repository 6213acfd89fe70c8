"""
Lock-striped map for per-call state.

Calls are hashed onto a fixed number of stripes, each with its own lock
and dict. Work on one call only ever holds that call's stripe, so
unrelated calls proceed in parallel and a sweep over all calls never
holds more than one stripe at a time.

Usage:
    calls: CallStateMap[ConversationContext] = CallStateMap(stripes=16)
    with calls.locked("CA123") as entries:
        entries["CA123"] = context
"""

import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, Optional, TypeVar

V = TypeVar("V")


class CallStateMap(Generic[V]):
    """Concurrent call_id -> state mapping with per-stripe locking."""

    def __init__(self, stripes: int = 16) -> None:
        if stripes < 1:
            raise ValueError(f"stripes must be >= 1, got {stripes}")
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._shards: list[dict[str, V]] = [{} for _ in range(stripes)]

    def _index(self, key: str) -> int:
        return hash(key) % len(self._locks)

    @contextmanager
    def locked(self, key: str) -> Iterator[dict[str, V]]:
        """Hold the stripe owning ``key`` and yield its backing dict.

        Callers must only touch ``key`` in the yielded dict.
        """
        index = self._index(key)
        with self._locks[index]:
            yield self._shards[index]

    def get(self, key: str) -> Optional[V]:
        with self.locked(key) as shard:
            return shard.get(key)

    def set(self, key: str, value: V) -> None:
        with self.locked(key) as shard:
            shard[key] = value

    def pop(self, key: str) -> Optional[V]:
        with self.locked(key) as shard:
            return shard.pop(key, None)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with self.locked(key) as shard:
            return key in shard

    def __len__(self) -> int:
        total = 0
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                total += len(shard)
        return total

    def keys(self) -> list[str]:
        result: list[str] = []
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                result.extend(shard)
        return result

    def evict(self, predicate: Callable[[str, V], bool]) -> list[str]:
        """Remove every entry for which ``predicate(key, value)`` is true.

        Stripes are visited one at a time; returns the removed keys.
        """
        removed: list[str] = []
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                stale = [key for key, value in shard.items() if predicate(key, value)]
                for key in stale:
                    del shard[key]
            removed.extend(stale)
        return removed

    def clear(self) -> None:
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                shard.clear()
