"""Reusable record factories and fakes for reconciliation tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from harvestsync.adapters.memory import InMemoryHarvestStore, InMemoryUnitOfWork
from harvestsync.domain.reconciliation import NormalizedRecord, StoreFailure

if TYPE_CHECKING:
    from datetime import datetime

    from harvestsync.domain.model import AnomalyKind
    from harvestsync.domain.reconciliation import AnomalyWarning


def make_raw_record(
    box: str,
    *,
    parcel: str | None = "P1",
    harvester: str | None = "H1",
    time: object = "2024-01-01T00:00:00Z",
    **extra: object,
) -> dict[str, object]:
    """Create a raw survey record with the short canonical spellings."""

    record: dict[str, object] = {"box": box, "time": time}
    if parcel is not None:
        record["parcel"] = parcel
    if harvester is not None:
        record["harvester"] = harvester
    record.update(extra)
    return record


def make_normalized(
    box_code: str,
    *,
    parcel_code: str | None = "P1",
    harvester_name: str | None = "H1",
    submission_time: datetime | None = None,
    anomalies: tuple[AnomalyWarning, ...] = (),
) -> NormalizedRecord:
    return NormalizedRecord(
        box_code=box_code,
        parcel_code=parcel_code,
        parcel_name=parcel_code,
        harvester_name=harvester_name,
        submission_time=submission_time,
        anomalies=anomalies,
    )


def anomaly_kinds(*kinds: AnomalyKind) -> frozenset[AnomalyKind]:
    return frozenset(kinds)


class FailingUnitOfWork(InMemoryUnitOfWork):
    """In-memory unit of work whose commits start failing after ``fail_after`` commits."""

    def __init__(self, store: InMemoryHarvestStore, *, fail_after: int = 1) -> None:
        super().__init__(store)
        self.fail_after = fail_after
        self.commits = 0
        self.rollbacks = 0

    def commit(self) -> None:
        if self.commits >= self.fail_after:
            raise StoreFailure("database is locked")
        super().commit()
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1
        super().rollback()


class UnavailableUnitOfWork(InMemoryUnitOfWork):
    """Unit of work for a store that cannot be reached at all."""

    def __init__(self) -> None:
        super().__init__(InMemoryHarvestStore())

    def __enter__(self) -> UnavailableUnitOfWork:
        raise StoreFailure("store unavailable")
