from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLocks:
    """One re-entrant lock per key, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._lock_lock = threading.Lock()  # guards the locks dict
        self._held = threading.local()

    def _get_lock(self, key: str) -> threading.RLock:
        with self._lock_lock:
            if key not in self._locks:
                self._locks[key] = threading.RLock()
            return self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._get_lock(key)
        with lock:
            self._held.depth = getattr(self._held, "depth", 0) + 1
            try:
                yield
            finally:
                self._held.depth -= 1

    def held(self) -> bool:
        """True while the calling thread holds any of these locks."""
        return getattr(self._held, "depth", 0) > 0
