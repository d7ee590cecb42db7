from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class AccountLocks:
    """
    One mutex per account ID.

    Settlements for the same account run one after another; different
    accounts never wait on each other. Accounts are never deleted, so
    locks are kept for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        lock = self._lock_for(account_id)
        with lock:
            yield
