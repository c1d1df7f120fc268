"""Webhooks Router - Google Calendar push notifications."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from api.dependencies import get_sync_service, verify_trigger_secret
from api.routers.sync import _respond
from notion_gcal_sync.sync import SyncService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/calendar", dependencies=[Depends(verify_trigger_secret)])
def calendar_notification(
    resource_state: Optional[str] = Header(default=None, alias="X-Goog-Resource-State"),
    channel_id: Optional[str] = Header(default=None, alias="X-Goog-Channel-Id"),
    service: SyncService = Depends(get_sync_service),
) -> dict:
    """Apply calendar changes announced by a push notification.

    The ``sync`` message Google sends when a channel is opened carries no
    changes and is acknowledged without doing any work.
    """
    if resource_state == "sync":
        logger.info(f"[WEBHOOK] Channel {channel_id or '-'} handshake acknowledged")
        return {"status": "ok", "handshake": True}

    logger.info(f"[WEBHOOK] Calendar change on channel {channel_id or '-'} ({resource_state})")
    return _respond(service.sync_calendar_changes(source="webhook"))
