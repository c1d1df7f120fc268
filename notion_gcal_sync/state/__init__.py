"""Persistent sync state: snapshot cache, run lock and sync cursor."""
from .cache import SnapshotCache
from .cursor import SyncCursor
from .lock import RunLock, SyncLockedError
from .store import StateStore, StateStoreError

__all__ = [
    "RunLock",
    "SnapshotCache",
    "StateStore",
    "StateStoreError",
    "SyncCursor",
    "SyncLockedError",
]
