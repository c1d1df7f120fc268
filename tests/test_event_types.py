"""Tests for the event model and normalizers."""
from __future__ import annotations

from notion_gcal_sync.events import (
    Event,
    build_event,
    join_tag,
    normalize_date,
    parse_tag,
    same_content,
    shift_date,
)


class TestTags:
    def test_parse_tag_splits_bracketed_prefix(self):
        assert parse_tag("[Work] Quarterly review") == ("Work", "Quarterly review")

    def test_parse_tag_without_tag(self):
        assert parse_tag("  Lunch  ") == ("", "Lunch")

    def test_only_first_group_is_the_tag(self):
        assert parse_tag("[a] Plan [b] later") == ("a", "Plan [b] later")

    def test_tag_inside_title_leaves_single_space(self):
        assert parse_tag("Sync [ops] notes") == ("ops", "Sync notes")

    def test_trailing_tag(self):
        assert parse_tag("Sync notes [ops]") == ("ops", "Sync notes")

    def test_join_tag_round_trip(self):
        for tag, title in (("Work", "Quarterly review"), ("", "Lunch")):
            assert parse_tag(join_tag(title, tag)) == (tag, title)

    def test_empty_input(self):
        assert parse_tag(None) == ("", "")


class TestDates:
    def test_date_only_is_kept(self):
        assert normalize_date("2024-03-01") == "2024-03-01"

    def test_offsets_are_converted_to_utc(self):
        assert normalize_date("2024-03-01T10:00:00.000-05:00") == "2024-03-01T15:00:00Z"

    def test_zulu_suffix(self):
        assert normalize_date("2024-03-01T10:00:00Z") == "2024-03-01T10:00:00Z"

    def test_naive_values_are_utc(self):
        assert normalize_date("2024-03-01T10:00:00") == "2024-03-01T10:00:00Z"

    def test_malformed_values_become_empty(self):
        assert normalize_date("next tuesday") == ""
        assert normalize_date("2024-13-45") == ""
        assert normalize_date(None) == ""

    def test_shift_date(self):
        assert shift_date("2024-02-28", 2) == "2024-03-01"
        assert shift_date("2024-03-01T10:00:00Z", 1) == "2024-03-01T10:00:00Z"


class TestBuildEvent:
    def test_all_day_without_end_is_a_milestone(self):
        event = build_event(raw_title="[Launch] Go live", start="2024-05-01")

        assert event.is_milestone
        assert event.end == "2024-05-02"
        assert event.tag == "Launch"
        assert event.title == "Go live"

    def test_single_day_range_is_a_milestone(self):
        event = build_event(raw_title="Offsite", start="2024-05-01", end="2024-05-02")
        assert event.is_milestone

    def test_multi_day_range_is_not_a_milestone(self):
        event = build_event(raw_title="Offsite", start="2024-05-01", end="2024-05-04")
        assert not event.is_milestone
        assert event.end == "2024-05-04"

    def test_timed_end_equal_to_start_means_no_end(self):
        event = build_event(raw_title="Call", start="2024-05-01T09:00:00Z", end="2024-05-01T09:00:00.000Z")

        assert event.start == "2024-05-01T09:00:00Z"
        assert event.end == ""

    def test_timed_event(self):
        event = build_event(
            raw_title="Standup",
            start="2024-05-01T09:00:00+02:00",
            end="2024-05-01T09:15:00+02:00",
            id=" g1 ",
            updated="2024-04-30T12:00:00.000Z",
        )

        assert event.start == "2024-05-01T07:00:00Z"
        assert event.end == "2024-05-01T07:15:00Z"
        assert event.id == "g1"
        assert event.updated == "2024-04-30T12:00:00Z"
        assert not event.is_all_day

    def test_missing_fields_default_to_empty(self):
        event = build_event(raw_title=None, start=None)
        assert event == Event()


class TestEvent:
    def test_same_content_ignores_identifiers(self):
        left = Event(id="g1", title="Standup", start="2024-01-01")
        right = Event(page_id="p1", title="Standup", start="2024-01-01", updated="2024-01-02T00:00:00Z")
        assert same_content(left, right)

    def test_same_content_compares_tag(self):
        assert not same_content(Event(title="A"), Event(title="A", tag="x"))

    def test_display_title_includes_tag(self):
        assert Event(title="Review", tag="Work").display_title == "[Work] Review"

    def test_with_ids_keeps_other_fields(self):
        event = Event(page_id="p1", title="Review").with_ids(id="g1")
        assert (event.id, event.page_id, event.title) == ("g1", "p1", "Review")

    def test_from_dict_tolerates_missing_keys(self):
        event = Event.from_dict({"id": "g1", "title": "Review", "extra": 1})
        assert event == Event(id="g1", title="Review")

    def test_dict_round_trip(self):
        event = Event(id="g1", page_id="p1", title="Review", start="2024-01-01", end="2024-01-02", is_milestone=True)
        assert Event.from_dict(event.to_dict()) == event
