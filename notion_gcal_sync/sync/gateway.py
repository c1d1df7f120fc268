"""Contract between the sync service and the two providers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..events import Event
from .batch import OperationResult, Side, run_batch


class ProviderError(RuntimeError):
    """Raised when a provider request fails."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def fatal(self) -> bool:
        """Authentication failures abort the whole pass."""
        return self.status in (401, 403)


@dataclass(slots=True)
class FetchResult:
    """Events returned by a fetch plus the provider's resume token, if any."""

    events: List[Event] = field(default_factory=list)
    next_cursor: Optional[str] = None


class EventGateway:
    """Per-event CRUD against one provider, with batch helpers on top.

    Subclasses implement ``create_event``, ``update_event`` and
    ``delete_event``; the batch methods fan those out and report a
    :class:`OperationResult` for every input event.
    """

    side: Side
    max_workers: int = 8

    def create_event(self, event: Event) -> Event:
        """Create ``event`` and return it with the provider-assigned id."""
        raise NotImplementedError

    def update_event(self, event: Event) -> Event:
        """Replace the provider record with ``event`` (full replacement)."""
        raise NotImplementedError

    def delete_event(self, event: Event) -> None:
        raise NotImplementedError

    def create(self, events: Sequence[Event]) -> List[OperationResult]:
        return run_batch("create", self.side, self.create_event, events, max_workers=self.max_workers)

    def update(self, events: Sequence[Event]) -> List[OperationResult]:
        return run_batch("update", self.side, self.update_event, events, max_workers=self.max_workers)

    def delete(self, events: Sequence[Event]) -> List[OperationResult]:
        return run_batch("delete", self.side, self.delete_event, events, max_workers=self.max_workers)
