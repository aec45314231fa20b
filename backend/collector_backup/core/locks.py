"""Process-local mutual exclusion for destructive database operations.

Backup creation and restore against the same database must not overlap. The
lock is keyed by database identity (`host:port/db`) and is never waited on: a
second caller fails fast with OperationInProgressError. Independent processes
are not coordinated.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from collector_backup.core.errors import OperationInProgressError


logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_locks: dict[str, threading.Lock] = {}
_holders: dict[str, str] = {}


def _lock_for(key: str) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


def is_locked(key: str) -> bool:
    return _lock_for(key).locked()


@contextmanager
def database_lock(key: str, operation: str) -> Iterator[None]:
    """Hold the lock for `key` while `operation` runs, or raise immediately."""
    lock = _lock_for(key)
    if not lock.acquire(blocking=False):
        holder = _holders.get(key, "unknown")
        logger.warning("database_lock_busy | key=%s requested=%s held_by=%s", key, operation, holder)
        raise OperationInProgressError(
            f"Another operation ({holder}) is already running against this database"
        )
    _holders[key] = operation
    try:
        yield
    finally:
        _holders.pop(key, None)
        lock.release()
