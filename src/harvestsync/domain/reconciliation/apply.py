"""Upsert of resolved box changes into the reconciliation store.

Responsibilities of this stage:
- create or update the Box, its Parcel and its Harvester through repositories
- keep aggregate box counts consistent when a box moves between owners
- avoid direct commit/transaction control (the orchestrator commits)

Existence is re-checked against the store at write time, so the store stays
the authority on create-vs-update even when batches overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from harvestsync.domain.model import Box, Harvester, Parcel

if TYPE_CHECKING:
    from harvestsync.domain.ports import (
        HarvesterRepository,
        HarvestRepositories,
        ParcelRepository,
    )

    from .contracts import BoxChange, BoxFields, HarvesterChange, ParcelChange


@dataclass(slots=True, frozen=True)
class ApplyResult:
    """What one upsert created in the store."""

    box_created: bool
    parcel_created: bool = False
    harvester_created: bool = False


class ApplyBoxChange(Protocol):
    """Write one box change through the given repositories."""

    def __call__(self, repositories: HarvestRepositories, change: BoxChange) -> ApplyResult: ...


def apply_box_change(repositories: HarvestRepositories, change: BoxChange) -> ApplyResult:
    """Upsert ``change`` and its owners; re-applying the same change is a no-op update."""

    parcel, parcel_created = _upsert_parcel(repositories.parcels, change.parcel)
    harvester, harvester_created = _upsert_harvester(repositories.harvesters, change.harvester)

    box = repositories.boxes.get(change.box_code)
    box_created = box is None
    if box is None:
        box = Box(code=change.box_code, **_field_values(change.fields))
        parcel.box_count += 1
        harvester.box_count += 1
    else:
        if box.parcel_key != parcel.parcel_key:
            _release_parcel(repositories.parcels, box.parcel_key)
            parcel.box_count += 1
        if box.harvester_key != harvester.harvester_key:
            _release_harvester(repositories.harvesters, box.harvester_key)
            harvester.box_count += 1
        for name, value in _field_values(change.fields).items():
            setattr(box, name, value)

    repositories.parcels.put(parcel.parcel_key, parcel)
    repositories.harvesters.put(harvester.harvester_key, harvester)
    repositories.boxes.put(box.code, box)
    return ApplyResult(
        box_created=box_created,
        parcel_created=parcel_created,
        harvester_created=harvester_created,
    )


def _field_values(fields: BoxFields) -> dict[str, object]:
    return {
        "parcel_key": fields.parcel_key,
        "harvester_key": fields.harvester_key,
        "submission_time": fields.submission_time,
        "quantity": fields.quantity,
        "latitude": fields.latitude,
        "longitude": fields.longitude,
        "submission_id": fields.submission_id,
        "photo_filename": fields.photo_filename,
        "photo_url": fields.photo_url,
        "anomalies": fields.anomalies,
    }


def _upsert_parcel(parcels: ParcelRepository, change: ParcelChange) -> tuple[Parcel, bool]:
    parcel = parcels.get(change.parcel_key)
    if parcel is None:
        return Parcel(parcel_key=change.parcel_key, code=change.code, name=change.name), True
    parcel.code = change.code
    parcel.name = change.name
    return parcel, False


def _upsert_harvester(
    harvesters: HarvesterRepository,
    change: HarvesterChange,
) -> tuple[Harvester, bool]:
    harvester = harvesters.get(change.harvester_key)
    if harvester is None:
        return Harvester(harvester_key=change.harvester_key, name=change.name), True
    harvester.name = change.name
    return harvester, False


def _release_parcel(parcels: ParcelRepository, key: str) -> None:
    previous = parcels.get(key)
    if previous is None:
        return
    previous.box_count = max(0, previous.box_count - 1)
    parcels.put(key, previous)


def _release_harvester(harvesters: HarvesterRepository, key: str) -> None:
    previous = harvesters.get(key)
    if previous is None:
        return
    previous.box_count = max(0, previous.box_count - 1)
    harvesters.put(key, previous)
