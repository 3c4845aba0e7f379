"""Keyed in-process locks.

Bookings for one bus on one travel date, and refunds for one booking, must not
interleave. Each key maps to its own ``threading.Lock`` so unrelated keys never
contend; entries are dropped once no thread holds or waits on them.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, List


class LockRegistry:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


lock_registry = LockRegistry()
