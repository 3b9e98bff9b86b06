from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from typing import TYPE_CHECKING

from sqlalchemy import select

from harvestsync.adapters.sqlalchemy.mappings import (
    AnomalySetType,
    UTCDateTime,
    box_table,
    mapper_registry,
)
from harvestsync.domain.model import AnomalyKind, Box, Harvester, Parcel

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session


def test_metadata_defines_store_tables() -> None:
    assert {"box", "parcel", "harvester"} <= set(mapper_registry.metadata.tables)


def test_utc_datetime_normalizes_to_utc(sqlite_engine: Engine) -> None:
    decorator = UTCDateTime()
    local = datetime(2024, 1, 1, 6, tzinfo=timezone(timedelta(hours=-6)))

    bound = decorator.process_bind_param(local, sqlite_engine.dialect)

    assert bound == datetime(2024, 1, 1, 12, tzinfo=UTC)
    assert bound is not None
    assert bound.tzinfo is UTC


def test_anomaly_set_type_serializes_sorted_json(sqlite_engine: Engine) -> None:
    decorator = AnomalySetType()
    kinds = frozenset({AnomalyKind.TIMESTAMP_MISSING, AnomalyKind.PARCEL_MISSING})

    bound = decorator.process_bind_param(kinds, sqlite_engine.dialect)

    assert bound == '["parcel_missing", "timestamp_missing"]'
    assert decorator.process_result_value(bound, sqlite_engine.dialect) == kinds
    assert decorator.process_result_value(None, sqlite_engine.dialect) == frozenset()


def test_box_round_trips_through_session(sqlite_session: Session) -> None:
    moment = datetime(2024, 1, 1, tzinfo=UTC)
    sqlite_session.add(Parcel(parcel_key="p1", code="P1", name="Uno", box_count=1))
    sqlite_session.add(Harvester(harvester_key="h1", name="H1", box_count=1))
    sqlite_session.flush()
    sqlite_session.add(
        Box(
            code="A1",
            parcel_key="p1",
            harvester_key="h1",
            submission_time=moment,
            quantity=18.5,
            anomalies=frozenset({AnomalyKind.QUANTITY_INVALID}),
        )
    )
    sqlite_session.commit()
    sqlite_session.expunge_all()

    row = sqlite_session.execute(select(box_table.c.anomalies)).scalar_one()
    stored = sqlite_session.get(Box, "A1")

    assert row == frozenset({AnomalyKind.QUANTITY_INVALID})
    assert stored is not None
    assert stored.submission_time == moment
    assert stored.quantity == 18.5
    assert not stored.timestamp_missing
