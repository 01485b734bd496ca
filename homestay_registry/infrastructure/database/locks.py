"""Per-application mutation locks and reference-series locks"""

import threading
import weakref
from contextlib import contextmanager
from typing import Hashable, Iterator

from homestay_registry.domain.exceptions import ConflictError


class _KeyLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.Lock()


class KeyedLockRegistry:
    """
    One lock per key, created on demand.

    Locks are weakly referenced so ids that are no longer being mutated do
    not accumulate. A waiter that gives up after the timeout gets a
    ConflictError; the holder is never interrupted.
    """

    def __init__(self, label: str = "Application"):
        self.label = label
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[Hashable, _KeyLock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: Hashable) -> _KeyLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._locks[key] = entry
            return entry

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        # Keep a strong reference for the whole critical section
        entry = self._lock_for(key)
        if not entry.lock.acquire(timeout=timeout):
            raise ConflictError(f"{self.label} {key} is being updated by another request; refresh and retry")
        try:
            yield
        finally:
            entry.lock.release()

    def is_held(self, key: Hashable) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry.lock.locked()


application_locks = KeyedLockRegistry()

# Held from reservation until the enclosing transaction commits
sequence_locks = KeyedLockRegistry(label="Reference series")
