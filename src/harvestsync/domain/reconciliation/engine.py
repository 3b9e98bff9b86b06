"""Orchestrator for the reconciliation subsystem.

A batch moves through ``START -> NORMALIZING -> RESOLVING -> COMMITTING`` and
ends in ``DONE`` or ``FAILED``. Record-level ``ValidationError``s are folded
into the summary; only a ``StoreFailure`` fails the batch. Each box change is
committed on its own, so a failed batch keeps everything committed before the
failure.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from .apply import apply_box_change
from .deduplicate import deduplicate_records
from .errors import StoreFailure, ValidationError
from .normalize import RecordNormalizer
from .resolve import resolve_records

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from harvestsync.domain.model import AnomalyKind
    from harvestsync.domain.ports import HarvestUnitOfWork

    from .apply import ApplyBoxChange, ApplyResult
    from .contracts import BoxChange, NormalizedRecord, ResolutionPlan
    from .deduplicate import DeduplicateRecords
    from .normalize import NormalizeRecord
    from .resolve import ResolveRecords

log = logging.getLogger(__name__)

type UnitOfWorkFactory = Callable[[], HarvestUnitOfWork]


class SyncState(StrEnum):
    START = "start"
    NORMALIZING = "normalizing"
    RESOLVING = "resolving"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Final[Mapping[SyncState, frozenset[SyncState]]] = {
    SyncState.START: frozenset({SyncState.NORMALIZING, SyncState.FAILED}),
    SyncState.NORMALIZING: frozenset({SyncState.RESOLVING, SyncState.FAILED}),
    SyncState.RESOLVING: frozenset({SyncState.COMMITTING, SyncState.FAILED}),
    SyncState.COMMITTING: frozenset({SyncState.DONE, SyncState.FAILED}),
    SyncState.DONE: frozenset(),
    SyncState.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a sync run is moved to a state it cannot reach."""


@dataclass(slots=True, frozen=True)
class SyncSummary:
    """Outcome of one batch; counts cover this batch only."""

    status: SyncState
    boxes_processed: int = 0
    new_boxes: int = 0
    updated_boxes: int = 0
    parcels_processed: int = 0
    harvesters_processed: int = 0
    errors: tuple[str, ...] = ()
    superseded: int = 0
    anomalies: int = 0
    anomaly_counts: Mapping[AnomalyKind, int] = field(default_factory=dict["AnomalyKind", int])
    new_parcels: int = 0
    new_harvesters: int = 0
    failure: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SyncState.DONE


@dataclass(slots=True)
class SyncRun:
    """Mutable state of one batch while it moves through the pipeline."""

    state: SyncState = SyncState.START
    history: list[SyncState] = field(default_factory=lambda: [SyncState.START])
    errors: list[str] = field(default_factory=list[str])
    anomaly_counts: Counter[AnomalyKind] = field(default_factory=Counter["AnomalyKind"])
    superseded: int = 0
    new_boxes: int = 0
    updated_boxes: int = 0
    new_parcels: int = 0
    new_harvesters: int = 0
    parcels: set[str] = field(default_factory=set[str])
    harvesters: set[str] = field(default_factory=set[str])
    failure: str | None = None

    def transition(self, target: SyncState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move sync run from {self.state} to {target}")
        log.debug("Sync run %s -> %s", self.state, target)
        self.state = target
        self.history.append(target)

    def record_commit(self, change: BoxChange, result: ApplyResult) -> None:
        if result.box_created:
            self.new_boxes += 1
        else:
            self.updated_boxes += 1
        self.new_parcels += int(result.parcel_created)
        self.new_harvesters += int(result.harvester_created)
        self.parcels.add(change.parcel.parcel_key)
        self.harvesters.add(change.harvester.harvester_key)

    def fail(self, exc: StoreFailure) -> None:
        self.failure = str(exc)
        self.errors.append(self.failure)
        self.transition(SyncState.FAILED)

    def summary(self) -> SyncSummary:
        return SyncSummary(
            status=self.state,
            boxes_processed=self.new_boxes + self.updated_boxes,
            new_boxes=self.new_boxes,
            updated_boxes=self.updated_boxes,
            parcels_processed=len(self.parcels),
            harvesters_processed=len(self.harvesters),
            errors=tuple(self.errors),
            superseded=self.superseded,
            anomalies=sum(self.anomaly_counts.values()),
            anomaly_counts=dict(self.anomaly_counts),
            new_parcels=self.new_parcels,
            new_harvesters=self.new_harvesters,
            failure=self.failure,
        )


@dataclass(slots=True, kw_only=True)
class SyncOrchestrator:
    """Run a batch of raw survey records through normalize/resolve/commit.

    The stages are injectable so tests and alternative workflows can swap
    them; the defaults are the module-level implementations.
    """

    unit_of_work_factory: UnitOfWorkFactory
    normalize: NormalizeRecord = field(default_factory=RecordNormalizer)
    deduplicate: DeduplicateRecords = deduplicate_records
    resolve: ResolveRecords = resolve_records
    apply: ApplyBoxChange = apply_box_change
    normalize_workers: int = 1

    def run(self, records: Iterable[Mapping[str, object]]) -> SyncSummary:
        """Reconcile ``records`` and return the batch summary."""

        raw_records = list(records)
        run = SyncRun()
        log.info("Starting harvest sync: records=%s", len(raw_records))

        run.transition(SyncState.NORMALIZING)
        normalized, positions = self._normalize_all(raw_records, run)

        run.transition(SyncState.RESOLVING)
        deduplicated = self.deduplicate(normalized, positions=positions)
        run.superseded = deduplicated.superseded

        try:
            with self.unit_of_work_factory() as uow:
                repositories = uow.repositories
                plan = self.resolve(
                    deduplicated.records,
                    find_box=repositories.boxes.get,
                    find_parcel=repositories.parcels.get,
                    find_harvester=repositories.harvesters.get,
                    positions=deduplicated.positions,
                )
                run.transition(SyncState.COMMITTING)
                self._commit_all(uow, plan, run)
        except StoreFailure as exc:
            log.error(  # noqa: TRY400
                "Harvest sync failed after %s committed boxes: %s",
                run.new_boxes + run.updated_boxes,
                exc,
            )
            run.fail(exc)
            return run.summary()

        run.transition(SyncState.DONE)
        summary = run.summary()
        log.info(
            "Finished harvest sync: processed=%s, new=%s, updated=%s, superseded=%s, "
            "errors=%s, anomalies=%s",
            summary.boxes_processed,
            summary.new_boxes,
            summary.updated_boxes,
            summary.superseded,
            len(summary.errors),
            summary.anomalies,
        )
        return summary

    def _normalize_all(
        self,
        raw_records: Sequence[Mapping[str, object]],
        run: SyncRun,
    ) -> tuple[list[NormalizedRecord], list[int]]:
        if self.normalize_workers > 1 and len(raw_records) > 1:
            with ThreadPoolExecutor(max_workers=self.normalize_workers) as executor:
                outcomes = list(executor.map(self._normalize_one, raw_records))
        else:
            outcomes = [self._normalize_one(raw) for raw in raw_records]

        normalized: list[NormalizedRecord] = []
        positions: list[int] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, ValidationError):
                message = f"Row {index + 1}: {outcome}"
                log.warning("Skipping record: %s", message)
                run.errors.append(message)
                continue
            normalized.append(outcome)
            positions.append(index)
            run.anomaly_counts.update(anomaly.kind for anomaly in outcome.anomalies)
        return normalized, positions

    def _normalize_one(self, raw: Mapping[str, object]) -> NormalizedRecord | ValidationError:
        try:
            return self.normalize(raw)
        except ValidationError as exc:
            return exc

    def _commit_all(self, uow: HarvestUnitOfWork, plan: ResolutionPlan, run: SyncRun) -> None:
        for change in plan.changes:
            try:
                result = self.apply(uow.repositories, change)
                uow.commit()
            except StoreFailure:
                _safe_rollback(uow)
                raise
            run.record_commit(change, result)


def _safe_rollback(uow: HarvestUnitOfWork) -> None:
    try:
        uow.rollback()
    except StoreFailure:
        log.exception("Rollback after store failure also failed")


def sync_records(
    records: Iterable[Mapping[str, object]],
    *,
    unit_of_work_factory: UnitOfWorkFactory,
    normalize_workers: int = 1,
    normalize: NormalizeRecord | None = None,
) -> SyncSummary:
    """Reconcile one batch of raw records into the store behind ``unit_of_work_factory``."""

    orchestrator = SyncOrchestrator(
        unit_of_work_factory=unit_of_work_factory,
        normalize=normalize or RecordNormalizer(),
        normalize_workers=normalize_workers,
    )
    return orchestrator.run(records)
