"""Application orchestration entry points."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from harvestsync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    is_started,
    startup,
)
from harvestsync.config import get_database_config, get_sync_config
from harvestsync.domain.reconciliation import RecordNormalizer, SyncSummary, sync_records

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from harvestsync.config import SyncConfig
    from harvestsync.domain.reconciliation.engine import UnitOfWorkFactory


log = getLogger(__name__)


def sync_harvest_records(
    records: Iterable[Mapping[str, object]],
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: SyncConfig | None = None,
) -> SyncSummary:
    """Reconcile one batch of raw survey records using the configured adapters."""

    effective_config = config or get_sync_config()
    if unit_of_work_factory is None:
        if not is_started():
            startup(database_uri=get_database_config().uri)
        unit_of_work_factory = SqlAlchemyUnitOfWork

    log.info(
        "Starting harvest record sync: normalize_workers=%s, utc_offset_hours=%s",
        effective_config.normalize_workers,
        effective_config.survey_utc_offset_hours,
    )

    summary = sync_records(
        records,
        unit_of_work_factory=unit_of_work_factory,
        normalize_workers=effective_config.normalize_workers,
        normalize=RecordNormalizer(utc_offset=effective_config.survey_utc_offset),
    )

    log.info(
        "Finished harvest record sync: status=%s, boxes=%s, parcels=%s, harvesters=%s",
        summary.status,
        summary.boxes_processed,
        summary.parcels_processed,
        summary.harvesters_processed,
    )
    return summary
