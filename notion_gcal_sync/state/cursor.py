"""Persisted Google Calendar sync token."""
from __future__ import annotations

from typing import Optional

from .store import StateStore

CURSOR_SLOT = "calendar_sync_token"


class SyncCursor:
    """Opaque resume token for incremental calendar fetches."""

    def __init__(self, store: StateStore, slot: str = CURSOR_SLOT) -> None:
        self.store = store
        self.slot = slot

    def get(self) -> Optional[str]:
        return self.store.get(self.slot) or None

    def put(self, token: str) -> None:
        self.store.put(self.slot, token)

    def clear(self) -> bool:
        return self.store.delete(self.slot)
