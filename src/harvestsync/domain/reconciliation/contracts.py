"""Shared reconciliation contract components.

This module holds only the transient values passed between stages:
- ``NormalizedRecord`` produced by the normalizer
- ``*Change`` values and the ``ResolutionPlan`` produced by the resolver
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from harvestsync.domain.model import AnomalyKind

    from .errors import AnomalyWarning


@dataclass(frozen=True, slots=True, kw_only=True)
class NormalizedRecord:
    """One survey record mapped onto canonical fields."""

    box_code: str
    parcel_code: str | None = None
    parcel_name: str | None = None
    harvester_name: str | None = None
    submission_time: datetime | None = None
    quantity: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    submission_id: str | None = None
    photo_filename: str | None = None
    photo_url: str | None = None
    anomalies: tuple[AnomalyWarning, ...] = ()

    @property
    def timestamp_missing(self) -> bool:
        return self.submission_time is None

    @property
    def anomaly_kinds(self) -> frozenset[AnomalyKind]:
        return frozenset(anomaly.kind for anomaly in self.anomalies)


@dataclass(frozen=True, slots=True, kw_only=True)
class ParcelChange:
    """Resolved parcel reference; ``is_new`` when the store has no such parcel."""

    parcel_key: str
    code: str
    name: str
    is_new: bool


@dataclass(frozen=True, slots=True, kw_only=True)
class HarvesterChange:
    """Resolved harvester reference; ``is_new`` when the store has no such harvester."""

    harvester_key: str
    name: str
    is_new: bool


@dataclass(frozen=True, slots=True, kw_only=True)
class BoxFields:
    """Mutable box attributes written by an upsert (last write wins)."""

    parcel_key: str
    harvester_key: str
    submission_time: datetime | None = None
    quantity: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    submission_id: str | None = None
    photo_filename: str | None = None
    photo_url: str | None = None
    anomalies: frozenset[AnomalyKind] = field(default_factory=frozenset["AnomalyKind"])


@dataclass(frozen=True, slots=True, kw_only=True)
class BoxChange:
    """Upsert instruction for one box, classified against pre-batch store state."""

    box_code: str
    fields: BoxFields
    is_new: bool
    parcel: ParcelChange
    harvester: HarvesterChange
    position: int = 0


@dataclass(slots=True)
class DeduplicationResult:
    """Records surviving intra-batch deduplication, in commit order."""

    records: list[NormalizedRecord] = field(default_factory=list["NormalizedRecord"])
    positions: list[int] = field(default_factory=list[int])
    superseded: int = 0


@dataclass(slots=True)
class ResolutionPlan:
    """Aggregate plan for one reconciliation run."""

    changes: list[BoxChange] = field(default_factory=list["BoxChange"])
    parcels: dict[str, ParcelChange] = field(default_factory=dict[str, "ParcelChange"])
    harvesters: dict[str, HarvesterChange] = field(default_factory=dict[str, "HarvesterChange"])

    def add_change(self, change: BoxChange) -> None:
        self.changes.append(change)

    @property
    def new_boxes(self) -> int:
        return sum(1 for change in self.changes if change.is_new)
