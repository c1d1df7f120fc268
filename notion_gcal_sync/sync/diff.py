"""Reconciliation of the calendar list, the Notion list and the cached snapshot.

Design Principles:
- Pure: nothing here performs I/O; the engine only classifies.
- Every record lands in exactly one :class:`PlanEntry`, which lists the
  provider writes needed for it and the snapshot entry to keep once those
  writes succeed.
- One engine covers every variant; direction, authority rule and cache use
  come from a :class:`DiffStrategy`.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Literal, Optional, Sequence

from ..events import Event, same_content
from .batch import Action, Side


class SyncDirection(Enum):
    """Direction of sync operation."""
    CALENDAR_TO_DOCUMENT = "calendar_to_document"
    DOCUMENT_TO_CALENDAR = "document_to_calendar"
    BIDIRECTIONAL = "bidirectional"


class ConflictResolution(Enum):
    """Which side wins when both changed the same event."""
    DOCUMENT_WINS = "document_wins"  # Notion is the authority
    CALENDAR_WINS = "calendar_wins"  # Google Calendar is the authority
    NEWER_WINS = "newer_wins"        # Most recent edit wins, Notion on ties


EntryKind = Literal["unchanged", "heal", "create", "update", "delete", "purge", "skip"]


@dataclass(slots=True, frozen=True)
class DiffStrategy:
    """Knobs for one reconciliation variant."""

    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    authority: ConflictResolution = ConflictResolution.NEWER_WINS
    use_cache: bool = True


@dataclass(slots=True)
class Match:
    """The same logical event as seen by each source (None where absent)."""

    calendar: Optional[Event] = None
    document: Optional[Event] = None
    cached: Optional[Event] = None

    @property
    def live_calendar(self) -> Optional[Event]:
        """The calendar event unless Google reported it cancelled."""
        if self.calendar is None or self.calendar.deleted:
            return None
        return self.calendar


@dataclass(slots=True)
class PlannedOperation:
    action: Action
    side: Side
    event: Event


@dataclass(slots=True)
class PlanEntry:
    """Decision for one matched event.

    ``target`` is what the snapshot should hold once every operation in the
    entry has succeeded (None means drop it). Creates get their target from
    the provider response, since the new identifier is not known yet.
    """

    kind: EntryKind
    match: Match
    operations: List[PlannedOperation] = field(default_factory=list)
    target: Optional[Event] = None

    @property
    def previous(self) -> Optional[Event]:
        return self.match.cached


@dataclass(slots=True)
class SideOperations:
    create: List[Event] = field(default_factory=list)
    update: List[Event] = field(default_factory=list)
    delete: List[Event] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.create or self.update or self.delete)


@dataclass(slots=True)
class SyncPlan:
    """Classified result of one diff."""

    entries: List[PlanEntry] = field(default_factory=list)

    def operations(self, side: Side) -> SideOperations:
        ops = SideOperations()
        for entry in self.entries:
            for op in entry.operations:
                if op.side == side:
                    getattr(ops, op.action).append(op.event)
        return ops

    @property
    def calendar(self) -> SideOperations:
        return self.operations("calendar")

    @property
    def document(self) -> SideOperations:
        return self.operations("document")

    def of_kind(self, kind: EntryKind) -> List[PlanEntry]:
        return [entry for entry in self.entries if entry.kind == kind]

    @property
    def has_writes(self) -> bool:
        return any(entry.operations for entry in self.entries)

    def summary(self) -> Dict[str, int]:
        calendar, document = self.calendar, self.document
        counts = {
            "calendar_create": len(calendar.create),
            "calendar_update": len(calendar.update),
            "calendar_delete": len(calendar.delete),
            "document_create": len(document.create),
            "document_update": len(document.update),
            "document_delete": len(document.delete),
        }
        for kind in ("unchanged", "heal", "purge", "skip"):
            counts[kind] = len(self.of_kind(kind))
        return counts


@dataclass(slots=True, frozen=True)
class SingleEventDecision:
    """Webhook-path decision for one changed calendar event."""

    is_new: bool = False
    is_deleted: bool = False
    is_updated: bool = False


# ----------------------------------------------------------------------
# Matching
# ----------------------------------------------------------------------


def _index(events: Sequence[Event], attr: str) -> Dict[str, int]:
    """Map non-empty identifiers to the position of their first event."""
    index: Dict[str, int] = {}
    for position, event in enumerate(events):
        key = getattr(event, attr)
        if key and key not in index:
            index[key] = position
    return index


def _claim(candidates: List[Optional[int]], used: set) -> Optional[int]:
    for position in candidates:
        if position is not None and position not in used:
            used.add(position)
            return position
    return None


def match_events(
    calendar: Sequence[Event],
    document: Sequence[Event],
    cache: Optional[Sequence[Event]] = None,
) -> List[Match]:
    """Join the three lists into matches.

    Cache entries are linked first (calendar by ``id`` then ``page_id``,
    Notion by ``page_id`` then ``id``); leftover calendar events are then
    joined to leftover Notion records; anything still unclaimed stands alone.
    """
    cal_by_id = _index(calendar, "id")
    cal_by_page = _index(calendar, "page_id")
    doc_by_page = _index(document, "page_id")
    doc_by_id = _index(document, "id")
    used_cal: set = set()
    used_doc: set = set()
    matches: List[Match] = []

    for cached in cache or ():
        cal_pos = _claim(
            [cal_by_id.get(cached.id) if cached.id else None,
             cal_by_page.get(cached.page_id) if cached.page_id else None],
            used_cal,
        )
        doc_pos = _claim(
            [doc_by_page.get(cached.page_id) if cached.page_id else None,
             doc_by_id.get(cached.id) if cached.id else None],
            used_doc,
        )
        matches.append(
            Match(
                calendar=calendar[cal_pos] if cal_pos is not None else None,
                document=document[doc_pos] if doc_pos is not None else None,
                cached=cached,
            )
        )

    for cal_pos, event in enumerate(calendar):
        if cal_pos in used_cal:
            continue
        used_cal.add(cal_pos)
        doc_pos = _claim(
            [doc_by_id.get(event.id) if event.id else None,
             doc_by_page.get(event.page_id) if event.page_id else None],
            used_doc,
        )
        matches.append(
            Match(calendar=event, document=document[doc_pos] if doc_pos is not None else None)
        )

    for doc_pos, event in enumerate(document):
        if doc_pos not in used_doc:
            matches.append(Match(document=event))

    return matches


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------


class DiffEngine:
    """Classify every event into the writes that converge both sides."""

    def __init__(self, strategy: Optional[DiffStrategy] = None) -> None:
        self.strategy = strategy or DiffStrategy()

    def diff(
        self,
        calendar: Sequence[Event],
        document: Sequence[Event],
        cache: Optional[Sequence[Event]] = None,
    ) -> SyncPlan:
        """Compute the plan for one pass.

        With ``use_cache`` off (or no cache given) history is inferred from
        the cross-referenced identifiers alone.
        """
        snapshot = cache if self.strategy.use_cache else None
        plan = SyncPlan()
        for match in match_events(calendar, document, snapshot):
            plan.entries.append(self._classify(match))
        return plan

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _classify(self, match: Match) -> PlanEntry:
        cal = match.live_calendar
        doc = match.document

        if cal is None and doc is None:
            # Purge a stale cache entry, or ignore a cancellation we never tracked.
            return PlanEntry(kind="purge" if match.cached else "skip", match=match)

        direction = self.strategy.direction
        if direction is SyncDirection.BIDIRECTIONAL:
            if cal is not None and doc is not None:
                return self._resolve_pair(match, cal, doc)
            if cal is not None:
                return self._resolve_lone(match, cal, "calendar")
            return self._resolve_lone(match, doc, "document")

        source: Side = "calendar" if direction is SyncDirection.CALENDAR_TO_DOCUMENT else "document"
        return self._resolve_one_way(match, cal, doc, source)

    def _resolve_lone(self, match: Match, event: Event, side: Side) -> PlanEntry:
        """Record present on one side only (two-way)."""
        other: Side = "document" if side == "calendar" else "calendar"
        # A record holding the other side's id was linked once, so its
        # counterpart was deleted rather than never created.
        linked = bool(event.page_id) if side == "calendar" else bool(event.id)
        if match.cached is not None or linked:
            return PlanEntry(
                kind="delete",
                match=match,
                operations=[PlannedOperation("delete", side, event)],
            )
        return PlanEntry(
            kind="create",
            match=match,
            operations=[PlannedOperation("create", other, event)],
        )

    def _resolve_pair(self, match: Match, cal: Event, doc: Event) -> PlanEntry:
        """Record present on both sides (two-way)."""
        if same_content(cal, doc):
            winner: Side = "document"
        else:
            winner = self._changed_side(cal, doc, match.cached)

        content = doc if winner == "document" else cal
        target = replace(content, id=cal.id, page_id=doc.page_id, deleted=False)

        operations: List[PlannedOperation] = []
        if not same_content(cal, doc):
            loser: Side = "calendar" if winner == "document" else "document"
            operations.append(PlannedOperation("update", loser, target))

        # Cross-reference repair for links a failed back-propagation left open.
        updating = {op.side for op in operations}
        if doc.id != cal.id and "document" not in updating:
            operations.append(PlannedOperation("update", "document", target))
        if cal.page_id != doc.page_id and "calendar" not in updating:
            operations.append(PlannedOperation("update", "calendar", target))

        if match.cached is None:
            kind: EntryKind = "heal"
        else:
            kind = "update" if operations else "unchanged"
        return PlanEntry(kind=kind, match=match, operations=operations, target=target)

    def _resolve_one_way(
        self,
        match: Match,
        cal: Optional[Event],
        doc: Optional[Event],
        source: Side,
    ) -> PlanEntry:
        """Target mirrors source; the source side is never written."""
        target_side: Side = "document" if source == "calendar" else "calendar"
        src = cal if source == "calendar" else doc
        dst = doc if source == "calendar" else cal

        if src is None:
            linked = bool(dst.id) if target_side == "document" else bool(dst.page_id)
            if match.cached is not None or linked:
                return PlanEntry(
                    kind="delete",
                    match=match,
                    operations=[PlannedOperation("delete", target_side, dst)],
                )
            return PlanEntry(kind="skip", match=match)

        if dst is None:
            return PlanEntry(
                kind="create",
                match=match,
                operations=[PlannedOperation("create", target_side, src)],
            )

        ids = {"id": cal.id, "page_id": doc.page_id}
        target = replace(src, deleted=False, **ids)
        needs_link = doc.id != cal.id if target_side == "document" else cal.page_id != doc.page_id
        operations: List[PlannedOperation] = []
        if not same_content(src, dst) or needs_link:
            operations.append(PlannedOperation("update", target_side, target))

        if match.cached is None:
            kind: EntryKind = "heal"
        else:
            kind = "update" if operations else "unchanged"
        return PlanEntry(kind=kind, match=match, operations=operations, target=target)

    # ------------------------------------------------------------------
    # Authority
    # ------------------------------------------------------------------

    def _changed_side(self, cal: Event, doc: Event, cached: Optional[Event]) -> Side:
        """Pick the side whose content should win for an unequal pair.

        With a cached copy, a side still equal to it is stale and the side
        that moved away wins. When both moved (or there is no cached copy)
        the authority rule decides.
        """
        if cached is not None:
            cal_changed = not same_content(cal, cached)
            doc_changed = not same_content(doc, cached)
            if cal_changed and not doc_changed:
                return "calendar"
            if doc_changed and not cal_changed:
                return "document"
        return self.authority_winner(cal, doc)

    def authority_winner(self, cal: Event, doc: Event) -> Side:
        authority = self.strategy.authority
        if authority is ConflictResolution.CALENDAR_WINS:
            return "calendar"
        if authority is ConflictResolution.DOCUMENT_WINS:
            return "document"
        # NEWER_WINS: canonical UTC strings order chronologically.
        if cal.updated and doc.updated and cal.updated > doc.updated:
            return "calendar"
        return "document"


def classify_single(
    calendar_event: Optional[Event],
    document_record: Optional[Event],
) -> SingleEventDecision:
    """Pairwise decision for one calendar change (webhook path).

    Updates are always pushed as a full replacement of the Notion record.
    """
    calendar_live = calendar_event is not None and not calendar_event.deleted
    return SingleEventDecision(
        is_new=calendar_live and document_record is None,
        is_deleted=(
            document_record is not None
            and calendar_event is not None
            and calendar_event.deleted
        ),
        is_updated=calendar_live and document_record is not None,
    )
