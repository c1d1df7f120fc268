"""Notion side of the sync."""
from .client import NotionError, NotionGateway

__all__ = ["NotionError", "NotionGateway"]
