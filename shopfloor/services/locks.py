import threading
from contextlib import contextmanager
from typing import Hashable


class KeyedLocks:
    """Per-key mutexes, created on demand and dropped once nobody holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, holders+waiters]

    @contextmanager
    def hold(self, key: Hashable, blocking: bool = True):
        """Yields whether the lock was taken (always True when blocking)."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        acquired = False
        try:
            acquired = entry[0].acquire(blocking)
            yield acquired
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self):
        with self._guard:
            return len(self._locks)


# Serializes every mutating operation on one job inside this process
job_locks = KeyedLocks()
