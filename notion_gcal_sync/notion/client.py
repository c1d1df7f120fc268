"""Notion database client for the document side of the sync.

Each page of the database is one event:
- title property: ``"[tag] title"``
- date property: start/end (all-day ranges are end-inclusive in Notion)
- rich text property: the linked Google Calendar event id
- optional relation: parent page whose tag property equals the event tag

Deletion archives the page; nothing is ever hard-deleted.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

import requests

from ..config import NotionProperties, Settings
from ..events import Event, build_event, is_date_only, shift_date
from ..sync.gateway import EventGateway, ProviderError

logger = logging.getLogger(__name__)

NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
MAX_PAGE_SIZE = 100


class NotionError(ProviderError):
    """Raised when Notion API operations fail."""


def _plain_text(fragments: Optional[List[Dict[str, Any]]]) -> str:
    return "".join(fragment.get("plain_text", "") for fragment in fragments or [])


def _rich_text(content: str) -> List[Dict[str, Any]]:
    if not content:
        return []
    return [{"type": "text", "text": {"content": content}}]


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _ends_after(event: Event, instant: datetime) -> bool:
    """Google's ``timeMin`` rule: keep events whose end is after ``instant``.

    A timed event with no end counts as ending at its start.
    """
    boundary = event.end or event.start
    if not boundary:
        return False
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    if is_date_only(boundary):
        ends_at = datetime.combine(date.fromisoformat(boundary), time.min, tzinfo=timezone.utc)
    else:
        ends_at = datetime.fromisoformat(boundary.replace("Z", "+00:00"))
    return ends_at > instant


class NotionGateway(EventGateway):
    """Document side of the sync, one Notion database per gateway."""

    side = "document"

    def __init__(
        self,
        token: str,
        database_id: str,
        *,
        properties: Optional[NotionProperties] = None,
        max_workers: int = 8,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.database_id = database_id
        self.properties = properties or NotionProperties()
        self.max_workers = max_workers
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotionGateway":
        return cls(
            settings.notion_token,
            settings.notion_database_id,
            properties=settings.notion_properties,
            max_workers=settings.max_workers,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{NOTION_API_BASE}{path}"
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NotionError(f"Notion network error: {exc}") from exc

        if response.status_code >= 400:
            raise NotionError(
                f"Notion request failed ({response.status_code}): {response.text}",
                status=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    def _query(
        self,
        *,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        page_size: int = MAX_PAGE_SIZE,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Query the database, following ``next_cursor`` until exhausted."""
        body: Dict[str, Any] = {"page_size": max(1, min(page_size, MAX_PAGE_SIZE))}
        if filter:
            body["filter"] = filter
        if sorts:
            body["sorts"] = sorts

        pages: List[Dict[str, Any]] = []
        while True:
            response = self._request("POST", f"/databases/{self.database_id}/query", body)
            pages.extend(response.get("results", []))
            if limit is not None and len(pages) >= limit:
                return pages[:limit]
            if not response.get("has_more") or not response.get("next_cursor"):
                return pages
            body["start_cursor"] = response["next_cursor"]

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _page_to_event(self, page: Dict[str, Any]) -> Optional[Event]:
        """Map a page to an Event; pages without properties are skipped."""
        props = page.get("properties")
        if not isinstance(props, dict):
            return None

        title_prop = props.get(self.properties.title) or {}
        date_prop = (props.get(self.properties.date) or {}).get("date") or {}
        id_prop = props.get(self.properties.event_id) or {}

        start = date_prop.get("start") or ""
        end = date_prop.get("end") or ""
        if is_date_only(start) and is_date_only(end):
            end = shift_date(end, 1)  # Notion ranges include their last day

        return build_event(
            raw_title=_plain_text(title_prop.get("title")),
            start=start,
            end=end,
            id=_plain_text(id_prop.get("rich_text")),
            page_id=page.get("id"),
            updated=page.get("last_edited_time"),
        )

    def _date_value(self, event: Event) -> Optional[Dict[str, Any]]:
        if not event.start:
            return None
        if event.is_milestone:
            return {"start": event.start, "end": None}
        end = event.end or None
        if end and is_date_only(event.start):
            end = shift_date(end, -1)
        return {"start": event.start, "end": end}

    def _page_properties(self, event: Event) -> Dict[str, Any]:
        props = self.properties
        return {
            props.title: {"title": _rich_text(event.display_title)},
            props.date: {"date": self._date_value(event)},
            props.event_id: {"rich_text": _rich_text(event.id)},
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(
        self,
        *,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> List[Event]:
        """List the database pages that overlap the window.

        Notion's date filters only test the start of a range, so the lower
        bound is applied here to each page's end, matching the calendar's
        ``timeMin``. Events already in progress stay in the result.
        """
        date_filters: List[Dict[str, Any]] = [
            {"property": self.properties.date, "date": {"is_not_empty": True}}
        ]
        if time_max is not None:
            date_filters.append(
                {"property": self.properties.date, "date": {"before": _to_iso(time_max)}}
            )

        pages = self._query(
            filter={"and": date_filters},
            sorts=[{"timestamp": "last_edited_time", "direction": "descending"}],
            page_size=page_size,
        )

        events = []
        for page in pages:
            if page.get("archived"):
                continue
            event = self._page_to_event(page)
            if event is None:
                continue
            if time_min is not None and not _ends_after(event, time_min):
                continue
            events.append(event)

        logger.info(f"Fetched {len(events)} Notion pages")
        return events

    def find_by_event_id(self, event_id: str) -> Optional[Event]:
        """Return the page linked to a calendar event id, if any."""
        if not event_id:
            return None
        pages = self._query(
            filter={"property": self.properties.event_id, "rich_text": {"equals": event_id}},
            page_size=1,
            limit=1,
        )
        for page in pages:
            event = self._page_to_event(page)
            if event is not None:
                return event
        return None

    def find_parent_page_id(self, tag: str) -> Optional[str]:
        """First page whose tag property equals ``tag``."""
        if not tag or not self.properties.parent:
            return None
        pages = self._query(
            filter={"property": self.properties.tag, "rich_text": {"equals": tag}},
            page_size=1,
            limit=1,
        )
        return pages[0].get("id") if pages else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_event(self, event: Event) -> Event:
        properties = self._page_properties(event)

        if event.tag and self.properties.parent:
            try:
                parent_id = self.find_parent_page_id(event.tag)
            except NotionError as exc:
                if exc.fatal:
                    raise
                logger.warning(f"Parent lookup for tag '{event.tag}' failed: {exc}")
                parent_id = None
            if parent_id:
                properties[self.properties.parent] = {"relation": [{"id": parent_id}]}

        response = self._request(
            "POST",
            "/pages",
            {"parent": {"database_id": self.database_id}, "properties": properties},
        )
        page_id = str(response.get("id") or "")
        if not page_id:
            raise NotionError("Notion create response missing page id.")
        return event.with_ids(page_id=page_id)

    def update_event(self, event: Event) -> Event:
        """Replace title, date and event id of the page in one request."""
        if not event.page_id:
            raise NotionError("Cannot update a Notion page without a page id.")
        self._request("PATCH", f"/pages/{event.page_id}", {"properties": self._page_properties(event)})
        return event

    def delete_event(self, event: Event) -> None:
        """Archive the page."""
        if not event.page_id:
            raise NotionError("Cannot archive a Notion page without a page id.")
        self._request("PATCH", f"/pages/{event.page_id}", {"archived": True})
