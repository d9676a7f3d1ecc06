"""
Per-repository mutual exclusion.

One registry is shared by every executor built from the same SyncContext,
so a repo is never driven by two state machines at once, even when two
planned runs overlap.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class RepoLockRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}
        self._held: set[int] = set()

    def _lock_for(self, repo_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(repo_id)
            if lock is None:
                lock = self._locks[repo_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, repo_id: int) -> Iterator[None]:
        """Block until ``repo_id`` is free, then hold it for the block."""
        lock = self._lock_for(repo_id)
        with lock:
            with self._guard:
                self._held.add(repo_id)
            try:
                yield
            finally:
                with self._guard:
                    self._held.discard(repo_id)

    def is_held(self, repo_id: int) -> bool:
        with self._guard:
            return repo_id in self._held
