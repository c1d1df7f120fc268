"""Sync activity log in Firestore with a local JSONL fallback."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional
from datetime import datetime, timezone

from ..firestore import get_firestore_client

if TYPE_CHECKING:
    from ..sync.service import SyncResult

logger = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path(__file__).resolve().parents[2] / "sync_activity.jsonl"
ACTIVITY_COLLECTION = os.getenv("NGS_ACTIVITY_COLLECTION", "sync_activity")


def _force_file() -> bool:
    return os.getenv("NGS_ACTIVITY_FORCE_FILE", "0") == "1"


def log_sync_event(
    result: "SyncResult",
    source: str,
    *,
    environment: Optional[str] = None,
) -> None:
    """Append one pass summary to the activity log."""
    entry: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "source": source,
        "environment": environment or os.getenv("NGS_ENV", "local"),
        **result.to_dict(),
    }

    if _force_file():
        _write_file(entry)
        return

    try:
        client = get_firestore_client()
        client.collection(ACTIVITY_COLLECTION).add(entry)
    except Exception as exc:  # pragma: no cover - network/auth path
        _write_file(entry)
        logger.warning(f"Firestore activity write failed, wrote to local log instead: {exc}")


def fetch_activity_entries(limit: int = 50) -> list[Dict[str, Any]]:
    """Return recent pass summaries, newest first."""

    if _force_file():
        return _read_file_entries(limit)

    try:
        client = get_firestore_client()
        from firebase_admin import firestore as fb_firestore

        query = (
            client.collection(ACTIVITY_COLLECTION)
            .order_by("ts", direction=fb_firestore.Query.DESCENDING)
            .limit(limit)
        )
        return [doc.to_dict() for doc in query.stream()]
    except Exception as exc:  # pragma: no cover - network/auth path
        logger.warning(f"Firestore activity read failed, falling back to local log: {exc}")
        return _read_file_entries(limit)


def _get_log_path() -> Path:
    override = os.getenv("NGS_ACTIVITY_LOG")
    if override:
        return Path(override)
    return DEFAULT_LOG_PATH


def _write_file(entry: Dict[str, Any]) -> None:
    path = _get_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(entry))
        handle.write("\n")


def _read_file_entries(limit: int) -> list[Dict[str, Any]]:
    path = _get_log_path()
    if not path.exists():
        return []
    entries: list[Dict[str, Any]] = []
    for line in path.read_text(encoding="utf-8").splitlines()[-limit:]:
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return list(reversed(entries))
