"""Shared dependencies for the API routers.

Usage in routers:
    from api.dependencies import get_sync_service, verify_trigger_secret
"""
from __future__ import annotations

import hmac
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from notion_gcal_sync.config import ConfigError, Settings, load_settings
from notion_gcal_sync.factory import build_service
from notion_gcal_sync.sync import SyncService

logger = logging.getLogger(__name__)


@lru_cache
def _load_settings() -> Settings:
    return load_settings()


def get_settings() -> Settings:
    """Get application settings, failing the request if they are incomplete."""
    try:
        return _load_settings()
    except ConfigError as exc:
        logger.error(f"Configuration error: {exc}")
        raise HTTPException(status_code=500, detail=str(exc))


@lru_cache
def _build_service() -> SyncService:
    return build_service(_load_settings())


def get_sync_service(settings: Settings = Depends(get_settings)) -> SyncService:
    """Get the process-wide sync service."""
    return _build_service()


def verify_trigger_secret(
    x_sync_secret: Optional[str] = Header(default=None, alias="X-Sync-Secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject triggers without the shared secret, when one is configured."""
    expected = settings.trigger_secret
    if not expected:
        return
    if not x_sync_secret or not hmac.compare_digest(x_sync_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing X-Sync-Secret header.")
