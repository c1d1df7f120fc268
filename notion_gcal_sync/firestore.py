"""Firestore client used by the sync state and activity log backends."""
from __future__ import annotations

import os
from typing import Optional

_client = None


def get_firestore_client(project_id: Optional[str] = None):
    """Return the process-wide Firestore client, creating it on first use.

    The Firebase app is initialised with application default credentials.
    ``project_id`` (or ``NGS_FIRESTORE_PROJECT``) pins the project when the
    credentials do not imply one.
    """

    global _client
    if _client is not None:
        return _client

    try:
        import firebase_admin
        from firebase_admin import firestore
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise RuntimeError(
            "firebase-admin is required for Firestore-backed sync state. "
            "Install dependencies or set NGS_STATE_FORCE_FILE=1."
        ) from exc

    project = project_id or os.getenv("NGS_FIRESTORE_PROJECT") or None
    if not firebase_admin._apps:
        options = {"projectId": project} if project else None
        firebase_admin.initialize_app(options=options)
    _client = firestore.client()
    return _client


def reset_firestore_client() -> None:
    """Forget the cached client (tests and credential rotation)."""

    global _client
    _client = None
