"""Run lock that keeps two sync passes from writing at the same time."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from .store import StateStore

logger = logging.getLogger(__name__)

LOCK_SLOT = "run_lock"


class SyncLockedError(RuntimeError):
    """Raised when another pass already holds the run lock."""


class RunLock:
    """``"true"``/``"false"`` flag in a state slot with an acquire/release contract.

    The time of acquisition is kept in a companion slot; a lock held for
    longer than ``ttl_seconds`` is considered abandoned and may be taken over.
    The check-then-set is not atomic. Scheduled triggers are minutes apart,
    which is what this lock is sized for.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        slot: str = LOCK_SLOT,
        ttl_seconds: int = 900,
    ) -> None:
        self.store = store
        self.slot = slot
        self.ttl_seconds = ttl_seconds

    @property
    def _stamp_slot(self) -> str:
        return f"{self.slot}.acquired_at"

    def is_held(self) -> bool:
        return self.store.get(self.slot) == "true" and not self._expired()

    def acquired_at(self) -> Optional[datetime]:
        raw = self.store.get(self._stamp_slot)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None

    def _expired(self) -> bool:
        stamp = self.acquired_at()
        if stamp is None:
            return False
        age = (datetime.now(timezone.utc) - stamp).total_seconds()
        return age >= self.ttl_seconds

    def acquire(self) -> None:
        if self.store.get(self.slot) == "true":
            if not self._expired():
                raise SyncLockedError("Sync already in progress, try again later.")
            logger.warning(f"Taking over run lock '{self.slot}' held past its TTL")
        self.store.put(self._stamp_slot, datetime.now(timezone.utc).isoformat())
        self.store.put(self.slot, "true")

    def release(self) -> None:
        self.store.put(self.slot, "false")

    @contextmanager
    def hold(self) -> Iterator["RunLock"]:
        """Acquire for the duration of the block; always released on exit."""
        self.acquire()
        try:
            yield self
        finally:
            try:
                self.release()
            except Exception:
                logger.exception(f"Failed to release run lock '{self.slot}'")
                raise
