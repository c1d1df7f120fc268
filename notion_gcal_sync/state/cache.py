"""Snapshot of the last converged event set."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..events import Event
from .store import StateStore

logger = logging.getLogger(__name__)

SNAPSHOT_SLOT = "snapshot"
SNAPSHOT_VERSION = 1


class SnapshotCache:
    """Whole-snapshot cache stored as one JSON blob in a single slot."""

    def __init__(self, store: StateStore, slot: str = SNAPSHOT_SLOT) -> None:
        self.store = store
        self.slot = slot

    def get(self) -> Optional[List[Event]]:
        """Return the cached snapshot, or None when there is no usable one.

        An unreadable or foreign-version blob is treated as absent so the
        next pass bootstraps instead of diffing against bad data.
        """
        blob = self.store.get(self.slot)
        if blob is None:
            return None

        try:
            data = json.loads(blob)
        except json.JSONDecodeError as exc:
            logger.warning(f"Discarding undecodable snapshot in slot '{self.slot}': {exc}")
            return None

        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            logger.warning(f"Discarding snapshot with unsupported version in slot '{self.slot}'")
            return None

        events = []
        for item in data.get("events") or []:
            if isinstance(item, dict):
                events.append(Event.from_dict(item))
        return events

    def put(self, events: Sequence[Event]) -> None:
        """Replace the snapshot with ``events`` (order preserved)."""
        blob = json.dumps(
            {
                "version": SNAPSHOT_VERSION,
                "saved_at": datetime.now(timezone.utc).isoformat(),
                "events": [event.to_dict() for event in events],
            }
        )
        self.store.put(self.slot, blob)
        logger.info(f"Committed snapshot of {len(events)} events")

    def clear(self) -> bool:
        return self.store.delete(self.slot)
