"""Per-identity locks: serialize executions that touch the same document."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class IdentityLocks:
    """A lock table keyed by document identity.

    Entries are created on first use and dropped when no execution holds or
    waits on them, so the table does not grow with the number of identities.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, identity: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(identity, threading.Lock())
            self._users[identity] = self._users.get(identity, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[identity] -= 1
                if self._users[identity] == 0:
                    del self._users[identity]
                    del self._locks[identity]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
