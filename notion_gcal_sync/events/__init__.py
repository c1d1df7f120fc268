"""Canonical event model and normalizers."""
from .types import (
    Event,
    build_event,
    is_date_only,
    join_tag,
    normalize_date,
    normalize_text,
    parse_tag,
    same_content,
    shift_date,
)

__all__ = [
    "Event",
    "build_event",
    "is_date_only",
    "join_tag",
    "normalize_date",
    "normalize_text",
    "parse_tag",
    "same_content",
    "shift_date",
]
