"""
Per-key locking for DocAuth stores.

Both in-memory stores serialize work per key (identity for challenges,
content digest for documents) while letting unrelated keys proceed in
parallel. Idle locks are dropped so the lock table does not grow with
every key ever seen.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """Reference-counted table of one mutex per key."""

    def __init__(self):
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._refs: Dict[Hashable, int] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the with-block."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
                self._refs[key] = 0
            self._refs[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._locks[key]
                    del self._refs[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
