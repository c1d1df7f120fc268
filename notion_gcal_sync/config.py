"""Configuration helpers for the Notion / Google Calendar sync."""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Optional

from dotenv import load_dotenv


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


CONFLICT_RESOLUTION_VALUES = ("newer_wins", "document_wins", "calendar_wins")


@dataclass(slots=True)
class NotionProperties:
    """Column names of the Notion database that mirrors the calendar."""

    title: str = "Name"
    date: str = "Date"
    event_id: str = "Event Id"
    tag: str = "Tag"
    parent: Optional[str] = "Parent Item"  # None disables parent linking


@dataclass(slots=True)
class Settings:
    """Runtime configuration for a sync deployment."""

    notion_token: str
    notion_database_id: str
    google_client_id: str
    google_client_secret: str
    google_refresh_token: str
    google_calendar_id: str = "primary"

    window_days: int = 7
    page_size: int = 100
    conflict_resolution: str = "newer_wins"
    max_workers: int = 8
    lock_ttl_seconds: int = 900
    trigger_secret: Optional[str] = None
    environment: str = "local"
    notion_properties: NotionProperties = field(default_factory=NotionProperties)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}.")
    return value


def load_settings(*, use_dotenv: bool = True) -> Settings:
    """Load settings from environment variables.

    Args:
        use_dotenv: Read a local ``.env`` file first. Variables already set
            in the environment always win.

    Returns:
        Settings with every required credential resolved.

    Raises:
        ConfigError: if any required variable is missing or a numeric
            variable does not parse.
    """

    if use_dotenv:
        load_dotenv()

    required = {
        "NOTION_TOKEN": os.getenv("NOTION_TOKEN", "").strip(),
        "NOTION_DATABASE_ID": os.getenv("NOTION_DATABASE_ID", "").strip(),
        "GOOGLE_CLIENT_ID": os.getenv("GOOGLE_CLIENT_ID", "").strip(),
        "GOOGLE_CLIENT_SECRET": os.getenv("GOOGLE_CLIENT_SECRET", "").strip(),
        "GOOGLE_REFRESH_TOKEN": os.getenv("GOOGLE_REFRESH_TOKEN", "").strip(),
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}."
        )

    resolution = os.getenv("NGS_CONFLICT_RESOLUTION", "newer_wins").strip().lower()
    if resolution not in CONFLICT_RESOLUTION_VALUES:
        raise ConfigError(
            f"NGS_CONFLICT_RESOLUTION must be one of "
            f"{', '.join(CONFLICT_RESOLUTION_VALUES)}; got {resolution!r}."
        )

    parent_prop = os.getenv("NOTION_PARENT_PROPERTY", "Parent Item").strip()
    properties = NotionProperties(
        title=os.getenv("NOTION_TITLE_PROPERTY", "Name").strip() or "Name",
        date=os.getenv("NOTION_DATE_PROPERTY", "Date").strip() or "Date",
        event_id=os.getenv("NOTION_EVENT_ID_PROPERTY", "Event Id").strip() or "Event Id",
        tag=os.getenv("NOTION_TAG_PROPERTY", "Tag").strip() or "Tag",
        parent=parent_prop or None,
    )

    return Settings(
        notion_token=required["NOTION_TOKEN"],
        notion_database_id=required["NOTION_DATABASE_ID"],
        google_client_id=required["GOOGLE_CLIENT_ID"],
        google_client_secret=required["GOOGLE_CLIENT_SECRET"],
        google_refresh_token=required["GOOGLE_REFRESH_TOKEN"],
        google_calendar_id=os.getenv("GOOGLE_CALENDAR_ID", "primary").strip() or "primary",
        window_days=_int_env("NGS_WINDOW_DAYS", 7),
        page_size=_int_env("NGS_PAGE_SIZE", 100),
        conflict_resolution=resolution,
        max_workers=_int_env("NGS_MAX_WORKERS", 8),
        lock_ttl_seconds=_int_env("NGS_LOCK_TTL_SECONDS", 900),
        trigger_secret=os.getenv("NGS_TRIGGER_SECRET", "").strip() or None,
        environment=os.getenv("NGS_ENV", "local"),
        notion_properties=properties,
    )
