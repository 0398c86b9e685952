"""In-process per-member locks serialising balance writers."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _KeyedLocks:
    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


_member_locks = _KeyedLocks()


@contextmanager
def member_lock(member_id: str) -> Iterator[None]:
    lock = _member_locks.get(member_id)
    with lock:
        yield
