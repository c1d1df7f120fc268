"""Google Calendar API client."""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib import error as urlerror
from urllib import parse as urlparse
from urllib import request as urlrequest

from ..config import Settings
from ..events import Event, build_event, shift_date
from ..sync.gateway import EventGateway, FetchResult, ProviderError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"

# Private extended property holding the linked Notion page id.
PAGE_ID_PROPERTY = "notionPageId"


class CalendarError(ProviderError):
    """Raised when Calendar API operations fail."""

    @property
    def is_sync_token_expired(self) -> bool:
        return self.status == 410


@dataclass(slots=True)
class CalendarAccountConfig:
    """Google Calendar OAuth configuration."""

    client_id: str
    client_secret: str
    refresh_token: str
    calendar_id: str = "primary"

    @classmethod
    def from_settings(cls, settings: Settings) -> "CalendarAccountConfig":
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
            calendar_id=settings.google_calendar_id,
        )


def _to_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _parse_event(item: Dict[str, Any]) -> Event:
    """Parse a Google Calendar API event response into an Event."""
    start_data = item.get("start") or {}
    end_data = item.get("end") or {}
    private = (item.get("extendedProperties") or {}).get("private") or {}

    return build_event(
        raw_title=item.get("summary"),
        start=start_data.get("dateTime") or start_data.get("date"),
        end=end_data.get("dateTime") or end_data.get("date"),
        id=item.get("id"),
        page_id=private.get(PAGE_ID_PROPERTY),
        deleted=item.get("status") == "cancelled",
        updated=item.get("updated"),
    )


def _event_body(event: Event) -> Dict[str, Any]:
    """Build the synced fields of a Calendar event resource."""
    body: Dict[str, Any] = {"summary": event.display_title}

    if event.is_all_day:
        body["start"] = {"date": event.start}
        body["end"] = {"date": event.end or shift_date(event.start, 1)}
    else:
        body["start"] = {"dateTime": event.start}
        body["end"] = {"dateTime": event.end or event.start}

    if event.page_id:
        body["extendedProperties"] = {"private": {PAGE_ID_PROPERTY: event.page_id}}

    return body


class GoogleCalendarGateway(EventGateway):
    """Calendar side of the sync, one calendar per gateway."""

    side = "calendar"

    def __init__(
        self,
        account: CalendarAccountConfig,
        *,
        max_workers: int = 8,
        timeout: int = 30,
    ) -> None:
        self.account = account
        self.max_workers = max_workers
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleCalendarGateway":
        return cls(
            CalendarAccountConfig.from_settings(settings),
            max_workers=settings.max_workers,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _fetch_access_token(self) -> str:
        """Get a fresh access token using the refresh token."""
        payload = urlparse.urlencode(
            {
                "client_id": self.account.client_id,
                "client_secret": self.account.client_secret,
                "refresh_token": self.account.refresh_token,
                "grant_type": "refresh_token",
            }
        ).encode("utf-8")

        req = urlrequest.Request(
            TOKEN_URL,
            data=payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )

        try:
            with urlrequest.urlopen(req, timeout=15) as resp:
                data = json.loads(resp.read().decode("utf-8"))
        except urlerror.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            # Any rejected refresh is an authentication failure for the pass.
            raise CalendarError(
                f"Calendar token request failed ({exc.code}): {detail}",
                status=401,
            ) from exc
        except urlerror.URLError as exc:
            raise CalendarError(f"Calendar token network error: {exc}") from exc

        token = data.get("access_token")
        if not token:
            raise CalendarError("Calendar token response missing access_token.", status=401)
        self._token_expires_at = time.monotonic() + float(data.get("expires_in", 3600)) - 60
        return str(token)

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token is None or time.monotonic() >= self._token_expires_at:
                self._token = self._fetch_access_token()
            return self._token

    def _request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated request to the Calendar API."""
        url = f"{CALENDAR_API_BASE}{endpoint}"
        if params:
            url = f"{url}?{urlparse.urlencode(params)}"

        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }

        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urlrequest.Request(url, data=data, headers=headers, method=method)

        try:
            with urlrequest.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
                if resp.status == 204 or not raw:
                    return {}
                return json.loads(raw.decode("utf-8"))
        except urlerror.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            raise CalendarError(
                f"Calendar API request failed ({exc.code}): {detail}",
                status=exc.code,
            ) from exc
        except urlerror.URLError as exc:
            raise CalendarError(f"Calendar API network error: {exc}") from exc

    def _events_path(self, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{urlparse.quote(self.account.calendar_id, safe='')}/events"
        if event_id:
            path = f"{path}/{urlparse.quote(event_id, safe='')}"
        return path

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(
        self,
        *,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        page_size: int = 100,
        sync_token: Optional[str] = None,
    ) -> FetchResult:
        """List events in a window, or only the changes since ``sync_token``.

        Google forbids a time window together with a sync token, so the
        window is dropped when resuming. Incremental results include
        cancelled events, returned with ``deleted=True``.
        """
        params: Dict[str, str] = {
            "singleEvents": "true",
            "maxResults": str(max(1, min(page_size, 2500))),
        }
        if sync_token:
            params["syncToken"] = sync_token
            params["showDeleted"] = "true"
        else:
            params["timeMin"] = _to_rfc3339(time_min or datetime.now(timezone.utc))
            if time_max is not None:
                params["timeMax"] = _to_rfc3339(time_max)

        events: List[Event] = []
        next_sync_token: Optional[str] = None
        page_token: Optional[str] = None

        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            response = self._request(self._events_path(), params=page_params)

            for item in response.get("items", []):
                events.append(_parse_event(item))

            page_token = response.get("nextPageToken")
            if not page_token:
                next_sync_token = response.get("nextSyncToken")
                break

        logger.info(
            f"Fetched {len(events)} calendar events "
            f"({'incremental' if sync_token else 'window'})"
        )
        return FetchResult(events=events, next_cursor=next_sync_token)

    def get_event(self, event_id: str) -> Optional[Event]:
        try:
            return _parse_event(self._request(self._events_path(event_id)))
        except CalendarError as exc:
            if exc.status in (404, 410):
                return None
            raise

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_event(self, event: Event) -> Event:
        response = self._request(self._events_path(), method="POST", body=_event_body(event))
        created_id = str(response.get("id") or "")
        if not created_id:
            raise CalendarError("Calendar create response missing event id.")
        return event.with_ids(id=created_id)

    def update_event(self, event: Event) -> Event:
        """Overwrite every synced field of the event (title, dates, link)."""
        if not event.id:
            raise CalendarError("Cannot update a calendar event without an id.")
        self._request(self._events_path(event.id), method="PATCH", body=_event_body(event))
        return event

    def delete_event(self, event: Event) -> None:
        if not event.id:
            raise CalendarError("Cannot delete a calendar event without an id.")
        try:
            self._request(self._events_path(event.id), method="DELETE")
        except CalendarError as exc:
            if exc.status in (404, 410):
                logger.info(f"Calendar event {event.id} already deleted")
                return
            raise
