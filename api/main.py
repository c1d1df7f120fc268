"""FastAPI service for the Notion / Google Calendar sync."""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI

from api.routers import sync_router, webhooks_router
from notion_gcal_sync import __version__

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Notion Calendar Sync API",
    version=__version__,
    description="HTTP triggers for the Notion / Google Calendar sync.",
)

app.include_router(sync_router, prefix="/sync", tags=["sync"])
app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint with configuration status."""
    required = (
        "NOTION_TOKEN",
        "NOTION_DATABASE_ID",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GOOGLE_REFRESH_TOKEN",
    )
    services = {
        "notion": "configured" if all(os.getenv(name) for name in required[:2]) else "not_configured",
        "google_calendar": "configured" if all(os.getenv(name) for name in required[2:]) else "not_configured",
    }
    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(),
        "environment": os.getenv("NGS_ENV", "local"),
        "services": services,
    }
