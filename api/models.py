"""Response models for the sync API."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from notion_gcal_sync.sync import SyncResult


class SyncResultResponse(BaseModel):
    """Serialized outcome of one sync pass."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    direction: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    healed: int = 0
    purged: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    bootstrapped: bool = False
    cursor_primed: bool = Field(False, alias="cursorPrimed")
    total_processed: int = Field(0, alias="totalProcessed")
    synced_at: str = Field(..., alias="syncedAt")

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            success=result.success,
            direction=result.direction.value,
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
            unchanged=result.unchanged,
            healed=result.healed,
            purged=result.purged,
            failed=result.failed,
            errors=result.errors,
            bootstrapped=result.bootstrapped,
            cursor_primed=result.cursor_primed,
            total_processed=result.total_processed,
            synced_at=result.synced_at.isoformat(),
        )


class SyncStatusResponse(BaseModel):
    """Current lock, cursor and snapshot state."""
    model_config = ConfigDict(populate_by_name=True)

    state_backend: str = Field(..., alias="stateBackend")
    lock_held: bool = Field(..., alias="lockHeld")
    lock_acquired_at: str | None = Field(None, alias="lockAcquiredAt")
    cursor_present: bool = Field(..., alias="cursorPresent")
    snapshot_events: int | None = Field(None, alias="snapshotEvents")
    direction: str
    conflict_resolution: str = Field(..., alias="conflictResolution")
    window_days: int = Field(..., alias="windowDays")
