"""Sync module for Google Calendar <-> Notion reconciliation."""
from __future__ import annotations

from .batch import OperationResult, run_batch
from .diff import (
    ConflictResolution,
    DiffEngine,
    DiffStrategy,
    Match,
    PlanEntry,
    PlannedOperation,
    SingleEventDecision,
    SyncDirection,
    SyncPlan,
    classify_single,
    match_events,
)
from .gateway import EventGateway, FetchResult, ProviderError
from .service import SyncResult, SyncService

__all__ = [
    "ConflictResolution",
    "DiffEngine",
    "DiffStrategy",
    "EventGateway",
    "FetchResult",
    "Match",
    "OperationResult",
    "PlanEntry",
    "PlannedOperation",
    "ProviderError",
    "SingleEventDecision",
    "SyncDirection",
    "SyncPlan",
    "SyncResult",
    "SyncService",
    "classify_single",
    "match_events",
    "run_batch",
]
