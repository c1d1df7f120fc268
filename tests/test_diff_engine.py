"""Tests for the DiffEngine - three-way reconciliation without I/O."""
from __future__ import annotations

from dataclasses import replace

import pytest

from notion_gcal_sync.events import Event
from notion_gcal_sync.sync import (
    ConflictResolution,
    DiffEngine,
    DiffStrategy,
    SyncDirection,
    classify_single,
    match_events,
)


STANDUP = Event(
    id="g1",
    title="Standup",
    start="2024-01-01T10:00:00Z",
    end="2024-01-01T10:30:00Z",
)


def _linked(event: Event, page_id: str = "p1") -> Event:
    return replace(event, page_id=page_id)


def _ops(plan, side):
    ops = plan.operations(side)
    return {
        "create": [(e.id, e.page_id, e.title) for e in ops.create],
        "update": [(e.id, e.page_id, e.title) for e in ops.update],
        "delete": [(e.id, e.page_id, e.title) for e in ops.delete],
    }


class TestScenarios:
    """The reference scenarios for the three-way diff."""

    def test_new_calendar_event_is_created_in_notion(self):
        plan = DiffEngine().diff([STANDUP], [], [])

        assert [entry.kind for entry in plan.entries] == ["create"]
        assert plan.document.create == [STANDUP]
        assert plan.calendar.is_empty()

    def test_event_missing_from_notion_is_deleted_from_calendar(self):
        plan = DiffEngine().diff([STANDUP], [], [STANDUP])

        assert [entry.kind for entry in plan.entries] == ["delete"]
        assert plan.calendar.delete == [STANDUP]
        assert plan.document.is_empty()

    def test_calendar_title_change_updates_notion(self):
        cached = _linked(STANDUP)
        calendar = replace(cached, title="Standup (room 2)")

        plan = DiffEngine().diff([calendar], [cached], [cached])

        entry = plan.entries[0]
        assert entry.kind == "update"
        assert _ops(plan, "document")["update"] == [("g1", "p1", "Standup (room 2)")]
        assert plan.calendar.is_empty()
        assert entry.target.title == "Standup (room 2)"


class TestConvergence:
    """Converged inputs produce no writes."""

    def test_identical_sides_are_unchanged(self):
        event = _linked(STANDUP)

        plan = DiffEngine().diff([event], [event], [event])

        assert not plan.has_writes
        assert plan.of_kind("unchanged")[0].target == event

    def test_equal_pair_without_cache_entry_heals(self):
        event = _linked(STANDUP)

        plan = DiffEngine().diff([event], [event], [])

        assert [entry.kind for entry in plan.entries] == ["heal"]
        assert not plan.has_writes

    def test_applying_a_plan_converges(self):
        notion_only = Event(page_id="p9", title="Review", start="2024-01-02", end="2024-01-03")

        plan = DiffEngine().diff([STANDUP], [notion_only], [])

        created_calendar = replace(plan.calendar.create[0], id="g9")
        created_notion = replace(plan.document.create[0], page_id="p1")
        calendar = [_linked(STANDUP), created_calendar]
        document = [created_notion, replace(notion_only, id="g9")]
        snapshot = [_linked(STANDUP), replace(notion_only, id="g9")]

        again = DiffEngine().diff(calendar, document, snapshot)

        assert not again.has_writes

    def test_same_input_gives_same_plan(self):
        lunch = Event(id="g2", title="Lunch", start="2024-01-01T12:00:00Z", end="2024-01-01T13:00:00Z")
        review = _linked(replace(STANDUP, id="g3", title="Review"), "p3")
        retro = _linked(replace(STANDUP, id="g4", title="Retro"), "p4")
        planning = _linked(replace(STANDUP, id="g5", title="Planning"), "p5")
        gone = _linked(replace(STANDUP, id="g6", title="Gone"), "p6")
        calendar = [lunch, review, replace(retro, title="Retro (moved)"), planning]
        document = [retro, planning]
        cache = [review, retro, gone]
        inputs = (list(calendar), list(document), list(cache))

        first = DiffEngine().diff(calendar, document, cache)
        second = DiffEngine().diff(calendar, document, cache)

        assert sorted(entry.kind for entry in first.entries) == ["create", "delete", "heal", "purge", "update"]
        assert [entry.kind for entry in second.entries] == [entry.kind for entry in first.entries]
        assert [entry.operations for entry in second.entries] == [entry.operations for entry in first.entries]
        for side in ("calendar", "document"):
            assert _ops(second, side) == _ops(first, side)
        assert (calendar, document, cache) == inputs

    def test_stale_cache_entry_is_purged(self):
        plan = DiffEngine().diff([], [], [_linked(STANDUP)])

        assert [entry.kind for entry in plan.entries] == ["purge"]
        assert not plan.has_writes

    def test_cancelled_event_never_seen_is_skipped(self):
        plan = DiffEngine().diff([replace(STANDUP, deleted=True)], [], [])

        assert [entry.kind for entry in plan.entries] == ["skip"]


class TestLoneRecords:
    """Records present on one side only."""

    def test_unlinked_notion_record_is_created_in_calendar(self):
        page = Event(page_id="p2", title="Draft", start="2024-01-03", end="2024-01-04")

        plan = DiffEngine().diff([], [page], [])

        assert plan.calendar.create == [page]

    def test_linked_notion_record_without_calendar_event_is_archived(self):
        page = _linked(STANDUP)

        plan = DiffEngine().diff([], [page], None)

        assert plan.document.delete == [page]
        assert plan.calendar.is_empty()

    def test_linked_calendar_event_without_notion_page_is_deleted(self):
        plan = DiffEngine().diff([_linked(STANDUP)], [], None)

        assert plan.calendar.delete == [_linked(STANDUP)]

    def test_cancelled_calendar_event_archives_linked_page(self):
        page = _linked(STANDUP)
        cancelled = replace(page, deleted=True)

        plan = DiffEngine().diff([cancelled], [page], [page])

        assert plan.document.delete == [page]


class TestConflicts:
    """Both sides differ; the changed side or the authority rule decides."""

    def test_side_that_moved_away_from_cache_wins(self):
        cached = _linked(STANDUP)
        notion = replace(cached, tag="team")

        plan = DiffEngine().diff([cached], [notion], [cached])

        assert _ops(plan, "calendar")["update"] == [("g1", "p1", "Standup")]
        assert plan.calendar.update[0].tag == "team"

    @pytest.mark.parametrize(
        "authority, expected_title",
        [
            (ConflictResolution.DOCUMENT_WINS, "Notion title"),
            (ConflictResolution.CALENDAR_WINS, "Calendar title"),
        ],
    )
    def test_fixed_authority_when_both_changed(self, authority, expected_title):
        cached = _linked(STANDUP)
        calendar = replace(cached, title="Calendar title")
        notion = replace(cached, title="Notion title")

        plan = DiffEngine(DiffStrategy(authority=authority)).diff([calendar], [notion], [cached])

        assert plan.entries[0].target.title == expected_title

    def test_newer_wins_uses_last_edit_time(self):
        cached = _linked(STANDUP)
        calendar = replace(cached, title="Calendar title", updated="2024-01-05T09:00:00Z")
        notion = replace(cached, title="Notion title", updated="2024-01-04T09:00:00Z")

        plan = DiffEngine().diff([calendar], [notion], [cached])

        assert plan.entries[0].target.title == "Calendar title"
        assert plan.document.update

    def test_newer_wins_falls_back_to_notion(self):
        cached = _linked(STANDUP)
        calendar = replace(cached, title="Calendar title")
        notion = replace(cached, title="Notion title")

        plan = DiffEngine().diff([calendar], [notion], [cached])

        assert plan.entries[0].target.title == "Notion title"


class TestCrossReferences:
    """Missing links are repaired on the side that lacks them."""

    def test_calendar_missing_page_link_is_updated(self):
        notion = _linked(STANDUP)

        plan = DiffEngine().diff([STANDUP], [notion], [])

        assert _ops(plan, "calendar")["update"] == [("g1", "p1", "Standup")]
        assert plan.document.is_empty()

    def test_pairs_by_page_id_when_notion_lacks_event_id(self):
        calendar = _linked(STANDUP)
        notion = replace(calendar, id="")

        matches = match_events([calendar], [notion])

        assert len(matches) == 1
        assert matches[0].document is notion


class TestOneWay:
    """Target mirrors source; the source is never written."""

    def test_calendar_to_notion_skips_unlinked_notion_records(self):
        page = Event(page_id="p2", title="Draft", start="2024-01-03", end="2024-01-04")
        strategy = DiffStrategy(direction=SyncDirection.CALENDAR_TO_DOCUMENT)

        plan = DiffEngine(strategy).diff([STANDUP], [page], [])

        assert plan.document.create == [STANDUP]
        assert plan.calendar.is_empty()
        assert [entry.kind for entry in plan.entries] == ["create", "skip"]

    def test_notion_to_calendar_overwrites_calendar_edits(self):
        cached = _linked(STANDUP)
        calendar = replace(cached, title="Edited in calendar")
        strategy = DiffStrategy(direction=SyncDirection.DOCUMENT_TO_CALENDAR)

        plan = DiffEngine(strategy).diff([calendar], [cached], [cached])

        assert _ops(plan, "calendar")["update"] == [("g1", "p1", "Standup")]
        assert plan.document.is_empty()

    def test_linked_target_without_source_is_deleted(self):
        strategy = DiffStrategy(direction=SyncDirection.DOCUMENT_TO_CALENDAR)

        plan = DiffEngine(strategy).diff([_linked(STANDUP)], [], None)

        assert plan.calendar.delete == [_linked(STANDUP)]


class TestClassifySingle:
    """Webhook-path decisions for one calendar change."""

    def test_new(self):
        decision = classify_single(STANDUP, None)
        assert decision.is_new and not decision.is_deleted and not decision.is_updated

    def test_deleted(self):
        decision = classify_single(replace(STANDUP, deleted=True), _linked(STANDUP))
        assert decision.is_deleted and not decision.is_new

    def test_updated(self):
        decision = classify_single(STANDUP, _linked(STANDUP))
        assert decision.is_updated and not decision.is_new

    def test_cancelled_without_record_is_ignored(self):
        decision = classify_single(replace(STANDUP, deleted=True), None)
        assert not (decision.is_new or decision.is_deleted or decision.is_updated)
