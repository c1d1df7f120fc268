"""Concurrent per-event dispatch with explicit per-event outcomes."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, List, Literal, Optional, Sequence

from ..events import Event

logger = logging.getLogger(__name__)

Action = Literal["create", "update", "delete"]
Side = Literal["calendar", "document"]


@dataclass(slots=True)
class OperationResult:
    """Outcome of one provider write."""

    action: Action
    side: Side
    event: Event  # what we asked the provider to write
    result: Optional[Event] = None  # what the provider returned, ids included
    error: Optional[str] = None
    exception: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def written(self) -> Event:
        """The provider's version when it returned one, else the request."""
        return self.result if self.result is not None else self.event


def run_batch(
    action: Action,
    side: Side,
    operation: Callable[[Event], Optional[Event]],
    events: Sequence[Event],
    *,
    max_workers: int = 8,
) -> List[OperationResult]:
    """Run ``operation`` for every event concurrently and join.

    Results come back in input order. Per-event failures are captured, not
    raised, except failures marked ``fatal`` (authentication), which are
    re-raised once the whole batch has finished.
    """
    if not events:
        return []

    results: List[Optional[OperationResult]] = [None] * len(events)
    workers = max(1, min(max_workers, len(events)))

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(operation, event): index for index, event in enumerate(events)}
        for future in as_completed(futures):
            index = futures[future]
            event = events[index]
            try:
                returned = future.result()
            except Exception as exc:
                logger.warning(
                    f"{action} on {side} failed for event "
                    f"id={event.id or '-'} page_id={event.page_id or '-'}: {exc}"
                )
                results[index] = OperationResult(
                    action=action,
                    side=side,
                    event=event,
                    error=str(exc) or exc.__class__.__name__,
                    exception=exc,
                )
            else:
                results[index] = OperationResult(
                    action=action,
                    side=side,
                    event=event,
                    result=returned if isinstance(returned, Event) else None,
                )

    finished = [result for result in results if result is not None]
    for result in finished:
        if result.exception is not None and getattr(result.exception, "fatal", False):
            raise result.exception
    return finished
