"""Per-account exclusive sections around cycle repair"""

import threading
import zlib
from contextlib import contextmanager
from typing import Dict, Iterator
from sqlalchemy import text
from sqlalchemy.orm import Session


def advisory_lock_key(account_id: str) -> int:
    """Stable signed 32-bit key for pg_advisory_xact_lock"""
    return zlib.crc32(account_id.encode("utf-8")) - 2**31


class AccountLockManager:
    """
    Serializes repair per account id.

    Always takes an in-process lock; on PostgreSQL it also takes a
    transaction-scoped advisory lock so separate worker processes serialize
    too. The advisory lock is released when the session's transaction ends.
    Different accounts never contend.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_id: str, db: Session) -> Iterator[None]:
        lock = self._lock_for(account_id)
        with lock:
            if db.get_bind().dialect.name == "postgresql":
                db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_lock_key(account_id)})
            yield
