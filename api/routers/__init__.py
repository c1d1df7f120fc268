"""API Routers Package.

Routers:
- sync.py: full passes, status and activity (mounted at /sync)
- webhooks.py: Google Calendar push notifications (mounted at /webhooks)
"""

from .sync import router as sync_router
from .webhooks import router as webhooks_router

__all__ = [
    "sync_router",
    "webhooks_router",
]
