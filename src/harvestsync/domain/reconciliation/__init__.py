"""Reconciliation core for harvest survey batches.

Layered flow per batch:
1) normalize raw records onto canonical fields (``normalize``)
2) deduplicate box sightings intra-batch, last one wins (``deduplicate``)
3) resolve Box/Parcel/Harvester identities against the store (``resolve``)
4) upsert each change and commit it on its own (``apply``)
5) fold errors and anomalies into a ``SyncSummary`` (``engine``)
"""

from __future__ import annotations

from .apply import ApplyResult, apply_box_change
from .contracts import (
    BoxChange,
    BoxFields,
    DeduplicationResult,
    HarvesterChange,
    NormalizedRecord,
    ParcelChange,
    ResolutionPlan,
)
from .deduplicate import deduplicate_records
from .engine import SyncOrchestrator, SyncRun, SyncState, SyncSummary, sync_records
from .errors import AnomalyWarning, HarvestSyncError, StoreFailure, ValidationError
from .normalize import RecordNormalizer, normalize_record
from .resolve import resolve_records

__all__ = [
    "AnomalyWarning",
    "ApplyResult",
    "BoxChange",
    "BoxFields",
    "DeduplicationResult",
    "HarvestSyncError",
    "HarvesterChange",
    "NormalizedRecord",
    "ParcelChange",
    "RecordNormalizer",
    "ResolutionPlan",
    "StoreFailure",
    "SyncOrchestrator",
    "SyncRun",
    "SyncState",
    "SyncSummary",
    "ValidationError",
    "apply_box_change",
    "deduplicate_records",
    "normalize_record",
    "resolve_records",
    "sync_records",
]
