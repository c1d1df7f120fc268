"""Sync Router - scheduled passes, status and activity.

Handles:
- Full sync passes triggered by a scheduler or an operator
- Lock / cursor / snapshot status
- Recent pass history from the activity log
"""
from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_sync_service, verify_trigger_secret
from api.models import SyncResultResponse, SyncStatusResponse
from notion_gcal_sync.logs import fetch_activity_entries
from notion_gcal_sync.sync import SyncDirection, SyncResult, SyncService

logger = logging.getLogger(__name__)

router = APIRouter()


def _respond(result: SyncResult) -> dict:
    """Map a pass outcome to the HTTP contract (409 locked, 502 aborted)."""
    if result.locked:
        raise HTTPException(status_code=409, detail="Sync already in progress, try again later.")
    if result.aborted:
        raise HTTPException(status_code=502, detail="; ".join(result.errors) or "Sync aborted.")
    return SyncResultResponse.from_result(result).model_dump(by_alias=True)


@router.post("", dependencies=[Depends(verify_trigger_secret)])
def run_sync(
    direction: SyncDirection = Query(SyncDirection.BIDIRECTIONAL),
    service: SyncService = Depends(get_sync_service),
) -> dict:
    """Run one full pass between Google Calendar and Notion."""
    start_time = time.time()
    logger.info(f"[SYNC] Pass triggered, direction: {direction.value}")
    result = service.run(direction, source="http")
    logger.info(f"[SYNC] Finished in {time.time() - start_time:.2f}s, success={result.success}")
    return _respond(result)


@router.get("/status", dependencies=[Depends(verify_trigger_secret)])
def get_sync_status(service: SyncService = Depends(get_sync_service)) -> dict:
    """Get current sync state summary."""
    try:
        status = service.status()
    except Exception as exc:
        logger.error(f"[SYNC] Status read failed: {exc}")
        raise HTTPException(status_code=502, detail=f"Failed to read sync state: {exc}")
    return SyncStatusResponse(**status).model_dump(by_alias=True)


@router.get("/activity", dependencies=[Depends(verify_trigger_secret)])
def get_sync_activity(limit: int = Query(50, ge=1, le=500)) -> dict:
    """Recent pass summaries, newest first."""
    entries = fetch_activity_entries(limit)
    return {"entries": entries, "count": len(entries)}
