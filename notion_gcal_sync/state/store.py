"""Single-slot key/value storage for sync state.

Architecture:
- Firestore path: sync_state/{slot} with a single ``value`` field
- File fallback: one ``{slot}.state`` file per slot under the state directory

The snapshot cache, the run lock and the sync cursor each own one slot.
Every write replaces the whole value; there are no partial updates.
"""
from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

STATE_COLLECTION = os.getenv("NGS_STATE_COLLECTION", "sync_state")
_SLOT_PATTERN = re.compile(r"[^A-Za-z0-9_.-]")


class StateStoreError(RuntimeError):
    """Raised when the state backend cannot be read or written."""


def _use_file_storage() -> bool:
    """Check if we should use file-based storage."""
    return os.getenv("NGS_STATE_FORCE_FILE", "").strip() == "1"


def _get_state_dir() -> Path:
    """Get the state storage directory."""
    env_dir = os.getenv("NGS_STATE_DIR", "").strip()
    if env_dir:
        return Path(env_dir)
    return Path(__file__).resolve().parents[2] / "sync_state"


def _get_firestore_client():
    """Get Firestore client, or None if not available."""
    if _use_file_storage():
        return None

    try:
        from ..firestore import get_firestore_client
        return get_firestore_client()
    except Exception as exc:
        logger.warning(f"Firestore unavailable, using local state files: {exc}")
        return None


class StateStore:
    """Firestore-backed slot storage with a local file fallback.

    The backend is chosen once, at construction. After that, failures are
    raised as :class:`StateStoreError` instead of switching backends, so the
    lock and the cache can never end up split across two stores.
    """

    def __init__(
        self,
        *,
        db=None,
        directory: Optional[Path] = None,
        collection: str = STATE_COLLECTION,
    ) -> None:
        self._directory = directory
        self._collection = collection
        if directory is not None:
            self._db = db
        else:
            self._db = db if db is not None else _get_firestore_client()

    @property
    def backend(self) -> str:
        return "firestore" if self._db is not None else "file"

    def get(self, slot: str) -> Optional[str]:
        """Return the stored value, or None when the slot was never written."""
        if self._db is not None:
            return self._get_from_firestore(slot)
        return self._get_from_file(slot)

    def put(self, slot: str, value: str) -> None:
        """Replace the value held in ``slot``."""
        if self._db is not None:
            self._save_to_firestore(slot, value)
        else:
            self._save_to_file(slot, value)

    def delete(self, slot: str) -> bool:
        """Remove a slot. Returns False if it did not exist."""
        if self._db is not None:
            return self._delete_from_firestore(slot)
        return self._delete_from_file(slot)

    # ------------------------------------------------------------------
    # Firestore storage
    # ------------------------------------------------------------------

    def _doc(self, slot: str):
        return self._db.collection(self._collection).document(slot)

    def _get_from_firestore(self, slot: str) -> Optional[str]:
        try:
            doc = self._doc(slot).get()
        except Exception as exc:
            raise StateStoreError(f"Failed to read state slot '{slot}': {exc}") from exc
        if not doc.exists:
            return None
        value = (doc.to_dict() or {}).get("value")
        return None if value is None else str(value)

    def _save_to_firestore(self, slot: str, value: str) -> None:
        try:
            self._doc(slot).set(
                {
                    "value": value,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
        except Exception as exc:
            raise StateStoreError(f"Failed to write state slot '{slot}': {exc}") from exc

    def _delete_from_firestore(self, slot: str) -> bool:
        try:
            doc_ref = self._doc(slot)
            if not doc_ref.get().exists:
                return False
            doc_ref.delete()
            return True
        except Exception as exc:
            raise StateStoreError(f"Failed to delete state slot '{slot}': {exc}") from exc

    # ------------------------------------------------------------------
    # File storage (fallback)
    # ------------------------------------------------------------------

    def _slot_file(self, slot: str) -> Path:
        directory = self._directory or _get_state_dir()
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{_SLOT_PATTERN.sub('_', slot)}.state"

    def _get_from_file(self, slot: str) -> Optional[str]:
        path = self._slot_file(slot)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StateStoreError(f"Failed to read {path}: {exc}") from exc

    def _save_to_file(self, slot: str, value: str) -> None:
        path = self._slot_file(slot)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StateStoreError(f"Failed to write {path}: {exc}") from exc

    def _delete_from_file(self, slot: str) -> bool:
        path = self._slot_file(slot)
        if not path.exists():
            return False
        path.unlink()
        return True
