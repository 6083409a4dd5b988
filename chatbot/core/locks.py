from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyedLock:
    """Mutual exclusion per key; different keys never wait on each other.

    Entries are dropped once no caller holds or waits on them, so the map
    only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        lock: threading.Lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
