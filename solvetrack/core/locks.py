"""Process-local keyed locks for per-user single-writer sections.

Lock order when both are needed: refresh lock (ip, username) -> user lock.
These locks do not synchronize across processes; the SQL unique constraints
on daily_progress and refresh_bans cover that case.

A key's lock lives only while someone holds or waits on it, so the registry
stays bounded by the number of in-flight callers.
"""

from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator, List

_registry_lock = Lock()
# key -> [lock, number of callers holding or waiting]
_locks: Dict[str, List] = {}


def _checkout(key: str) -> RLock:
    with _registry_lock:
        entry = _locks.get(key)
        if entry is None:
            entry = [RLock(), 0]
            _locks[key] = entry
        entry[1] += 1
        return entry[0]


def _checkin(key: str) -> None:
    with _registry_lock:
        entry = _locks[key]
        entry[1] -= 1
        if entry[1] == 0:
            del _locks[key]


@contextmanager
def keyed_lock(key: str) -> Iterator[None]:
    lock = _checkout(key)
    try:
        with lock:
            yield
    finally:
        _checkin(key)


def registered_lock_count() -> int:
    with _registry_lock:
        return len(_locks)


def user_lock(user_id: int):
    """Serialize snapshot append and day-bucket recompute for one user."""
    return keyed_lock(f"user:{user_id}")


def refresh_lock(ip: str, username: str):
    """Serialize ban check-then-act for one (ip, username) pair."""
    return keyed_lock(f"refresh:{ip}:{username}")
