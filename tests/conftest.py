"""Shared fixtures: settings, file-backed state and in-memory gateways."""
from __future__ import annotations

import itertools
import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest

from notion_gcal_sync.config import Settings
from notion_gcal_sync.events import Event
from notion_gcal_sync.state import RunLock, SnapshotCache, StateStore, SyncCursor
from notion_gcal_sync.sync import EventGateway, FetchResult, ProviderError, SyncService


class FakeGateway(EventGateway):
    """In-memory provider keyed by the side's own identifier."""

    key_attr = "id"
    id_prefix = "x"

    def __init__(self, events: Iterable[Event] = (), *, journal: Optional[List] = None) -> None:
        self.max_workers = 1
        self.records: Dict[str, Event] = {}
        for event in events:
            self.records[getattr(event, self.key_attr)] = event
        self.journal = journal if journal is not None else []
        self.fail_on: Set[Tuple[str, str]] = set()
        self.fail_status = 500
        self.fetch_error: Optional[Exception] = None
        self.fetch_count = 0
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def _check(self, action: str, event: Event) -> None:
        with self._lock:
            self.journal.append((action, self.side, event.title))
        if (action, event.title) in self.fail_on:
            raise ProviderError(f"{action} rejected", status=self.fail_status)

    def create_event(self, event: Event) -> Event:
        self._check("create", event)
        with self._lock:
            new_key = f"{self.id_prefix}{next(self._counter)}"
        created = event.with_ids(**{self.key_attr: new_key})
        self.records[new_key] = created
        return created

    def update_event(self, event: Event) -> Event:
        self._check("update", event)
        key = getattr(event, self.key_attr)
        if key not in self.records:
            raise ProviderError("not found", status=404)
        self.records[key] = event
        return event

    def delete_event(self, event: Event) -> None:
        self._check("delete", event)
        self.records.pop(getattr(event, self.key_attr), None)

    def writes(self) -> List[Tuple[str, str, str]]:
        return [entry for entry in self.journal if entry[1] == self.side]


class FakeCalendar(FakeGateway):
    side = "calendar"
    key_attr = "id"
    id_prefix = "gcal-"

    def __init__(self, events: Iterable[Event] = (), **kwargs) -> None:
        super().__init__(events, **kwargs)
        self.changes: List[Event] = []
        self.next_token: Optional[str] = "token-1"
        self.sync_error: Optional[Exception] = None
        self.sync_tokens_seen: List[str] = []

    def fetch(self, *, time_min=None, time_max=None, page_size=100, sync_token=None) -> FetchResult:
        self.fetch_count += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        if sync_token:
            self.sync_tokens_seen.append(sync_token)
            if self.sync_error is not None:
                raise self.sync_error
            return FetchResult(events=list(self.changes), next_cursor=self.next_token)
        return FetchResult(events=list(self.records.values()), next_cursor=self.next_token)


class FakeNotion(FakeGateway):
    side = "document"
    key_attr = "page_id"
    id_prefix = "page-"

    def fetch(self, *, time_min=None, time_max=None, page_size=100) -> List[Event]:
        self.fetch_count += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.records.values())

    def find_by_event_id(self, event_id: str) -> Optional[Event]:
        for event in self.records.values():
            if event.id == event_id:
                return event
        return None


@pytest.fixture
def settings() -> Settings:
    return Settings(
        notion_token="secret-notion",
        notion_database_id="db-1",
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_refresh_token="refresh-token",
    )


@pytest.fixture
def store(tmp_path) -> StateStore:
    return StateStore(directory=tmp_path / "state")


@pytest.fixture
def journal() -> List:
    return []


@pytest.fixture
def calendar(journal) -> FakeCalendar:
    return FakeCalendar(journal=journal)


@pytest.fixture
def notion(journal) -> FakeNotion:
    return FakeNotion(journal=journal)


@pytest.fixture
def activity() -> List:
    return []


@pytest.fixture
def service(settings, store, calendar, notion, activity) -> SyncService:
    return SyncService(
        settings,
        calendar=calendar,
        document=notion,
        cache=SnapshotCache(store),
        lock=RunLock(store),
        cursor=SyncCursor(store),
        activity_log=lambda result, source: activity.append((source, result)),
    )
