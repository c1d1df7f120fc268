"""Wire settings, gateways and state into a ready SyncService."""
from __future__ import annotations

from typing import Optional

from .calendar import GoogleCalendarGateway
from .config import Settings
from .logs import log_sync_event
from .notion import NotionGateway
from .state import RunLock, SnapshotCache, StateStore, SyncCursor
from .sync import SyncResult, SyncService


def build_service(settings: Settings, *, store: Optional[StateStore] = None) -> SyncService:
    """Build the production service.

    All three state slots share one ``StateStore`` so the lock, snapshot
    and cursor always live in the same backend.
    """
    store = store or StateStore()

    def record(result: SyncResult, source: str) -> None:
        log_sync_event(result, source, environment=settings.environment)

    return SyncService(
        settings,
        calendar=GoogleCalendarGateway.from_settings(settings),
        document=NotionGateway.from_settings(settings),
        cache=SnapshotCache(store),
        lock=RunLock(store, ttl_seconds=settings.lock_ttl_seconds),
        cursor=SyncCursor(store),
        activity_log=record,
    )
