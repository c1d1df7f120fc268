"""Canonical event model shared by the calendar and Notion sides.

Both providers are mapped into :class:`Event` before anything is compared.
Dates are kept as strings in one canonical form so that equality is a plain
string comparison:

- all-day values are ``YYYY-MM-DD`` and the end date is exclusive (the
  Google Calendar convention);
- timed values are UTC instants formatted ``YYYY-MM-DDTHH:MM:SSZ``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"\[(.+?)\]")
_DATE_ONLY_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
_INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass(slots=True, frozen=True)
class Event:
    """A calendar entry as seen by the reconciler.

    ``id`` is assigned by Google Calendar and ``page_id`` by Notion; an empty
    string means the record does not exist on that side yet.
    """

    id: str = ""
    page_id: str = ""
    title: str = ""
    tag: str = ""
    start: str = ""
    end: str = ""
    is_milestone: bool = False
    deleted: bool = False  # Google reported status "cancelled"
    updated: str = ""  # last edit on the side it was read from

    @property
    def is_all_day(self) -> bool:
        return is_date_only(self.start)

    @property
    def display_title(self) -> str:
        """Title as written to a provider, tag included."""
        return join_tag(self.title, self.tag)

    def content_key(self) -> Tuple[str, str, str, str]:
        return (self.title, self.tag, self.start, self.end)

    def with_ids(self, *, id: Optional[str] = None, page_id: Optional[str] = None) -> "Event":
        """Return a copy carrying the given identifiers."""
        changes: Dict[str, str] = {}
        if id is not None:
            changes["id"] = id
        if page_id is not None:
            changes["page_id"] = page_id
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for snapshot storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Create from a stored dictionary, tolerating missing keys."""
        return cls(
            id=str(data.get("id") or ""),
            page_id=str(data.get("page_id") or ""),
            title=str(data.get("title") or ""),
            tag=str(data.get("tag") or ""),
            start=str(data.get("start") or ""),
            end=str(data.get("end") or ""),
            is_milestone=bool(data.get("is_milestone", False)),
            deleted=bool(data.get("deleted", False)),
            updated=str(data.get("updated") or ""),
        )


def same_content(left: Optional[Event], right: Optional[Event]) -> bool:
    """Sync equality: title, tag, start and end; identifiers are ignored."""
    if left is None or right is None:
        return left is right
    return left.content_key() == right.content_key()


# ----------------------------------------------------------------------
# Normalizers
# ----------------------------------------------------------------------


def normalize_text(raw: Optional[str]) -> str:
    if not raw:
        return ""
    return str(raw).strip()


def parse_tag(raw: Optional[str]) -> Tuple[str, str]:
    """Split ``"[tag] rest of title"`` into ``(tag, title)``.

    Only the first bracketed group is treated as the tag; any later groups
    stay inside the title.
    """
    text = raw or ""
    match = _TAG_PATTERN.search(text)
    if not match:
        return "", text.strip()
    before, after = text[: match.start()].strip(), text[match.end():].strip()
    title = f"{before} {after}" if before and after else before or after
    return match.group(1), title


def join_tag(title: str, tag: str) -> str:
    """Inverse of :func:`parse_tag`."""
    if not tag:
        return title
    return f"[{tag}] {title}"


def is_date_only(value: str) -> bool:
    return bool(value) and _DATE_ONLY_PATTERN.fullmatch(value) is not None


def normalize_date(raw: Optional[str]) -> str:
    """Parse a provider date or date-time into the canonical form.

    Returns an empty string for empty or unparseable input; a bad value from
    one record must never abort a whole batch.
    """
    text = normalize_text(raw)
    if not text:
        return ""

    if is_date_only(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            logger.warning(f"Ignoring malformed date {text!r}")
            return ""

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring malformed date-time {text!r}")
        return ""

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime(_INSTANT_FORMAT)


def shift_date(value: str, days: int) -> str:
    """Move a date-only value by ``days``; other values pass through."""
    if not is_date_only(value):
        return value
    return (date.fromisoformat(value) + timedelta(days=days)).isoformat()


def build_event(
    *,
    raw_title: Optional[str],
    start: Optional[str],
    end: Optional[str] = None,
    id: Optional[str] = None,
    page_id: Optional[str] = None,
    deleted: bool = False,
    updated: Optional[str] = None,
) -> Event:
    """Build a canonical event from raw provider fields.

    A date-only start with no end, or with an end exactly one day later, is a
    milestone: its end is synthesised as ``start + 1 day``. A timed end equal
    to its start is read as no end, which is how Google returns an open-ended
    event.
    """
    tag, title = parse_tag(normalize_text(raw_title))
    start_value = normalize_date(start)
    end_value = normalize_date(end)

    is_milestone = False
    if is_date_only(start_value):
        next_day = shift_date(start_value, 1)
        if not end_value or end_value == next_day:
            is_milestone = True
            end_value = next_day
    elif end_value == start_value:
        end_value = ""

    return Event(
        id=normalize_text(id),
        page_id=normalize_text(page_id),
        title=title,
        tag=tag,
        start=start_value,
        end=end_value,
        is_milestone=is_milestone,
        deleted=deleted,
        updated=normalize_date(updated),
    )
