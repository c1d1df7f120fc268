"""Sync orchestrator between Google Calendar and a Notion database.

This service handles:
- Full passes: fetch both sides, diff against the cached snapshot, apply
  the plan (deletes, then updates, then creates), back-propagate new ids,
  and commit the next snapshot
- Webhook passes: apply only the calendar changes since the stored cursor
- Bootstrap of the snapshot on first run
- Sync status, reset and unlock for operators
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import Settings
from ..events import Event, same_content
from ..state import RunLock, SnapshotCache, SyncCursor, SyncLockedError
from .batch import OperationResult, Side
from .diff import (
    ConflictResolution,
    DiffEngine,
    DiffStrategy,
    PlannedOperation,
    SyncDirection,
    SyncPlan,
    classify_single,
)
from .gateway import EventGateway, ProviderError

logger = logging.getLogger(__name__)

PHASES = ("delete", "update", "create")


@dataclass(slots=True)
class SyncResult:
    """Result of a sync pass."""
    direction: SyncDirection
    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    healed: int = 0
    purged: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    bootstrapped: bool = False
    cursor_primed: bool = False
    locked: bool = False
    aborted: bool = False
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        """Return True if the pass completed without errors."""
        return not self.errors and not self.locked and not self.aborted

    @property
    def total_processed(self) -> int:
        return (
            self.created + self.updated + self.deleted
            + self.unchanged + self.healed + self.purged + self.failed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "success": self.success,
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "healed": self.healed,
            "purged": self.purged,
            "failed": self.failed,
            "errors": list(self.errors),
            "bootstrapped": self.bootstrapped,
            "cursor_primed": self.cursor_primed,
            "locked": self.locked,
            "aborted": self.aborted,
            "synced_at": self.synced_at.isoformat(),
        }


ActivityLogger = Callable[[SyncResult, str], None]


class SyncService:
    """Runs sync passes between the calendar and document gateways.

    Design Principles:
    - One pass at a time, enforced by the run lock
    - The snapshot only ever records writes that were confirmed
    - A failed fetch or an authentication failure aborts the pass
      before anything is committed
    - Per-event write failures are counted and retried by the next pass
    """

    def __init__(
        self,
        settings: Settings,
        *,
        calendar: EventGateway,
        document: EventGateway,
        cache: SnapshotCache,
        lock: RunLock,
        cursor: SyncCursor,
        strategy: Optional[DiffStrategy] = None,
        activity_log: Optional[ActivityLogger] = None,
    ) -> None:
        self.settings = settings
        self.calendar = calendar
        self.document = document
        self.cache = cache
        self.lock = lock
        self.cursor = cursor
        self.strategy = strategy or DiffStrategy(
            authority=ConflictResolution(settings.conflict_resolution)
        )
        self.activity_log = activity_log

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        direction: Optional[SyncDirection] = None,
        *,
        source: str = "manual",
    ) -> SyncResult:
        """Run one full pass.

        Args:
            direction: Overrides the configured direction for this pass.
            source: Label recorded in the activity log (cli, schedule, ...).

        Returns:
            SyncResult with per-operation counts. ``locked`` is set when
            another pass holds the lock; ``aborted`` when the pass stopped
            before committing.
        """
        direction = direction or self.strategy.direction
        result = SyncResult(direction=direction)

        try:
            with self.lock.hold():
                self._run_locked(direction, result)
        except SyncLockedError as exc:
            logger.info(f"Sync skipped: {exc}")
            result.locked = True
            result.errors.append(str(exc))
        except Exception as exc:
            logger.error(f"Sync pass aborted: {exc}")
            result.aborted = True
            result.errors.append(f"Sync aborted: {exc}")

        self._record(result, source)
        return result

    def sync_calendar_changes(self, *, source: str = "webhook") -> SyncResult:
        """Apply calendar changes since the stored cursor to Notion.

        The new cursor is saved right after the fetch, so events that fail
        to apply here are left for the next full pass.
        """
        result = SyncResult(direction=SyncDirection.CALENDAR_TO_DOCUMENT)

        try:
            with self.lock.hold():
                self._sync_changes_locked(result)
        except SyncLockedError as exc:
            logger.info(f"Calendar change sync skipped: {exc}")
            result.locked = True
            result.errors.append(str(exc))
        except Exception as exc:
            logger.error(f"Calendar change sync aborted: {exc}")
            result.aborted = True
            result.errors.append(f"Sync aborted: {exc}")

        self._record(result, source)
        return result

    def status(self) -> Dict[str, Any]:
        """Get current sync state summary."""
        snapshot = self.cache.get()
        acquired_at = self.lock.acquired_at()
        return {
            "state_backend": self.cache.store.backend,
            "lock_held": self.lock.is_held(),
            "lock_acquired_at": acquired_at.isoformat() if acquired_at else None,
            "cursor_present": self.cursor.get() is not None,
            "snapshot_events": len(snapshot) if snapshot is not None else None,
            "direction": self.strategy.direction.value,
            "conflict_resolution": self.strategy.authority.value,
            "window_days": self.settings.window_days,
        }

    def reset(self) -> Dict[str, bool]:
        """Drop the snapshot and cursor so the next pass bootstraps."""
        cleared = {
            "snapshot": self.cache.clear(),
            "cursor": self.cursor.clear(),
        }
        logger.info(f"Sync state reset: {cleared}")
        return cleared

    def unlock(self) -> None:
        """Force-release the run lock left behind by a crashed pass."""
        self.lock.release()
        logger.warning("Run lock released manually")

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    def _window(self) -> Tuple[datetime, datetime]:
        now = datetime.now(timezone.utc)
        return now, now + timedelta(days=self.settings.window_days)

    def _run_locked(self, direction: SyncDirection, result: SyncResult) -> None:
        time_min, time_max = self._window()
        fetched = self.calendar.fetch(
            time_min=time_min, time_max=time_max, page_size=self.settings.page_size
        )
        if fetched.next_cursor:
            # Webhook passes resume from here instead of replaying this window.
            self.cursor.put(fetched.next_cursor)
        calendar_events = fetched.events
        document_events = self.document.fetch(
            time_min=time_min, time_max=time_max, page_size=self.settings.page_size
        )

        cached = self.cache.get()
        if cached is None:
            self._bootstrap(document_events, result)
            return

        engine = DiffEngine(replace(self.strategy, direction=direction))
        plan = engine.diff(calendar_events, document_events, cached)
        logger.info(f"Sync plan ({direction.value}): {plan.summary()}")

        outcomes = self._apply(plan, bidirectional=direction is SyncDirection.BIDIRECTIONAL)
        snapshot = self._fold(plan, outcomes, result)
        self.cache.put(snapshot)

        logger.info(
            f"Sync pass done: created={result.created} updated={result.updated} "
            f"deleted={result.deleted} healed={result.healed} failed={result.failed}"
        )

    def _bootstrap(self, document_events: List[Event], result: SyncResult) -> None:
        """Seed the snapshot from the already-linked Notion records.

        No provider writes happen on this pass; the next pass diffs against
        the seed.
        """
        seed = [event for event in document_events if event.id]
        self.cache.put(seed)
        result.bootstrapped = True
        logger.info(f"Bootstrapped snapshot with {len(seed)} linked Notion records")

    def _gateway(self, side: Side) -> EventGateway:
        return self.calendar if side == "calendar" else self.document

    def _apply(
        self,
        plan: SyncPlan,
        *,
        bidirectional: bool,
    ) -> Dict[int, List[OperationResult]]:
        """Run the plan phase by phase and return outcomes per entry index."""
        outcomes: Dict[int, List[OperationResult]] = {}

        for action in PHASES:
            for side in ("calendar", "document"):
                batch: List[Tuple[int, PlannedOperation]] = [
                    (index, op)
                    for index, entry in enumerate(plan.entries)
                    for op in entry.operations
                    if op.action == action and op.side == side
                ]
                if not batch:
                    continue
                gateway = self._gateway(side)
                run = getattr(gateway, action)
                results = run([op.event for _, op in batch])
                for (index, _), op_result in zip(batch, results):
                    outcomes.setdefault(index, []).append(op_result)

        if bidirectional:
            self._back_propagate(outcomes)
        return outcomes

    def _back_propagate(self, outcomes: Dict[int, List[OperationResult]]) -> None:
        """Write each created record's new id back to the record it came from."""
        for side in ("calendar", "document"):
            batch: List[Tuple[int, Event]] = []
            for index, results in outcomes.items():
                for op_result in results:
                    if op_result.action == "create" and op_result.ok and op_result.side == side:
                        batch.append((index, op_result.written))
            if not batch:
                continue
            other: Side = "document" if side == "calendar" else "calendar"
            results = self._gateway(other).update([event for _, event in batch])
            for (index, _), op_result in zip(batch, results):
                outcomes[index].append(op_result)

    def _fold(
        self,
        plan: SyncPlan,
        outcomes: Dict[int, List[OperationResult]],
        result: SyncResult,
    ) -> List[Event]:
        """Build the next snapshot from confirmed outcomes only."""
        snapshot: List[Event] = []

        for index, entry in enumerate(plan.entries):
            entry_results = outcomes.get(index, [])
            failures = [op_result for op_result in entry_results if not op_result.ok]
            if failures:
                result.failed += len(failures)
                for failure in failures:
                    result.errors.append(self._describe_failure(failure))
                if entry.previous is not None:
                    snapshot.append(entry.previous)
                continue

            if entry.kind == "purge":
                result.purged += 1
            elif entry.kind == "skip":
                continue
            elif entry.kind == "delete":
                result.deleted += 1
            elif entry.kind == "create":
                snapshot.append(self._created_target(entry_results))
                result.created += 1
            else:
                if entry.target is not None:
                    snapshot.append(entry.target)
                if entry.kind == "heal":
                    result.healed += 1
                elif entry.kind == "update":
                    result.updated += 1
                else:
                    result.unchanged += 1

        return snapshot

    @staticmethod
    def _created_target(entry_results: List[OperationResult]) -> Event:
        # The last write (the back-propagation when there is one) carries both ids.
        written = entry_results[-1].written
        return replace(written, deleted=False)

    @staticmethod
    def _describe_failure(op_result: OperationResult) -> str:
        event = op_result.event
        return (
            f"{op_result.action} on {op_result.side} failed for "
            f"'{event.display_title}' (id={event.id or '-'}, "
            f"page_id={event.page_id or '-'}): {op_result.error}"
        )

    # ------------------------------------------------------------------
    # Webhook pass
    # ------------------------------------------------------------------

    def _sync_changes_locked(self, result: SyncResult) -> None:
        token = self.cursor.get()
        if not token:
            logger.info("No calendar sync cursor stored; priming from a window fetch")
            self._prime_cursor(result)
            return

        try:
            fetched = self.calendar.fetch(sync_token=token, page_size=self.settings.page_size)
        except ProviderError as exc:
            if exc.status != 410:
                raise
            logger.warning("Calendar sync cursor expired; priming a new one")
            self._prime_cursor(result)
            return

        if fetched.next_cursor:
            self.cursor.put(fetched.next_cursor)

        logger.info(f"Applying {len(fetched.events)} calendar changes")
        for event in fetched.events:
            try:
                self._apply_calendar_change(event, result)
            except ProviderError as exc:
                if exc.fatal:
                    raise
                logger.warning(f"Failed to apply calendar change {event.id}: {exc}")
                result.failed += 1
                result.errors.append(f"Calendar change {event.id} failed: {exc}")

    def _prime_cursor(self, result: SyncResult) -> None:
        time_min, time_max = self._window()
        fetched = self.calendar.fetch(
            time_min=time_min, time_max=time_max, page_size=self.settings.page_size
        )
        if fetched.next_cursor:
            self.cursor.put(fetched.next_cursor)
            result.cursor_primed = True
        else:
            logger.warning("Calendar returned no sync token while priming")

    def _apply_calendar_change(self, event: Event, result: SyncResult) -> None:
        record = self.document.find_by_event_id(event.id)
        decision = classify_single(event, record)

        if decision.is_new:
            if event.page_id:
                # Linked from the calendar side only; relink the existing page.
                self.document.update_event(event)
                result.healed += 1
                return
            created = self.document.create_event(event)
            self.calendar.update_event(created)
            result.created += 1
        elif decision.is_deleted:
            self.document.delete_event(record)
            result.deleted += 1
        elif decision.is_updated:
            target = replace(event, page_id=record.page_id)
            if same_content(event, record) and record.id == event.id:
                result.unchanged += 1
                return
            self.document.update_event(target)
            result.updated += 1

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def _record(self, result: SyncResult, source: str) -> None:
        if self.activity_log is None:
            return
        try:
            self.activity_log(result, source)
        except Exception as exc:
            logger.warning(f"Failed to record sync activity: {exc}")
