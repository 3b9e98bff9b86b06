from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine

from harvestsync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from harvestsync.domain.model import AnomalyKind, Parcel
from harvestsync.domain.reconciliation import SyncState, sync_records
from tests.helpers.records import make_raw_record

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_startup_accepts_database_uri() -> None:
    startup(database_uri="sqlite+pysqlite:///:memory:")

    engine = configured_engine()
    assert engine is not None
    assert engine.url.database == ":memory:"


def test_repositories_unavailable_outside_context(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_sync_persists_boxes_through_sqlalchemy(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    records = [
        make_raw_record("07-A1", parcel="LE01 -LOS ELOTES", harvester=None, weight="18.5"),
        make_raw_record("07-A2", parcel="LE01 -LOS ELOTES", harvester=None, time=""),
        make_raw_record("03-B1", parcel="PN02 -PINOS"),
    ]

    summary = sync_records(records, unit_of_work_factory=sqlite_unit_of_work)

    assert summary.status is SyncState.DONE
    assert summary.new_boxes == 3
    assert summary.new_parcels == 2
    with sqlite_unit_of_work() as uow:
        repositories = uow.repositories
        assert repositories.boxes.count() == 3
        box = repositories.boxes.get("07-A2")
        assert box is not None
        assert box.harvester_key == "7"
        assert box.anomalies == {AnomalyKind.TIMESTAMP_MISSING}
        parcel = repositories.parcels.get("le01")
        assert parcel is not None
        assert parcel.name == "LOS ELOTES"
        assert parcel.box_count == 2
        harvester = repositories.harvesters.get("7")
        assert harvester is not None
        assert harvester.box_count == 2


def test_sync_updates_existing_boxes_through_sqlalchemy(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    sync_records([make_raw_record("A1", parcel="P1")], unit_of_work_factory=sqlite_unit_of_work)

    summary = sync_records(
        [make_raw_record("A1", parcel="P2")],
        unit_of_work_factory=sqlite_unit_of_work,
    )

    assert summary.updated_boxes == 1
    assert summary.new_parcels == 1
    with sqlite_unit_of_work() as uow:
        old_parcel = uow.repositories.parcels.get("p1")
        new_parcel = uow.repositories.parcels.get("p2")
        assert old_parcel is not None
        assert new_parcel is not None
        assert old_parcel.box_count == 0
        assert new_parcel.box_count == 1


def test_exception_inside_context_rolls_back(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    with pytest.raises(RuntimeError), sqlite_unit_of_work() as uow:
        uow.repositories.parcels.put("p1", Parcel(parcel_key="p1", code="P1", name="Uno"))
        raise RuntimeError("boom")

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.parcels.get("p1") is None


def test_statement_error_mid_batch_keeps_earlier_commits(
    sqlite_engine: Engine,
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    with sqlite_engine.begin() as connection:
        connection.exec_driver_sql(
            "CREATE TRIGGER reject_a2 BEFORE INSERT ON box WHEN NEW.code = 'A2' "
            "BEGIN SELECT RAISE(ABORT, 'box A2 rejected'); END"
        )
    records = [make_raw_record("A1"), make_raw_record("A2"), make_raw_record("A3")]

    summary = sync_records(records, unit_of_work_factory=sqlite_unit_of_work)

    assert summary.status is SyncState.FAILED
    assert summary.boxes_processed == 1
    assert summary.failure is not None
    assert "StoreFailure" in summary.failure
    assert "A2" in summary.failure
    with sqlite_unit_of_work() as uow:
        assert uow.repositories.boxes.count() == 1
        assert uow.repositories.boxes.get("A1") is not None
        assert uow.repositories.boxes.get("A3") is None
        parcel = uow.repositories.parcels.get("p1")
        assert parcel is not None
        assert parcel.box_count == 1


def test_commit_recounts_owner_boxes_from_rows(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    sync_records([make_raw_record("A1")], unit_of_work_factory=sqlite_unit_of_work)
    with sqlite_unit_of_work() as uow:
        parcel = uow.repositories.parcels.get("p1")
        assert parcel is not None
        parcel.box_count = 7
        uow.repositories.parcels.put("p1", parcel)
        uow.session.commit()

    summary = sync_records([make_raw_record("A2")], unit_of_work_factory=sqlite_unit_of_work)

    assert summary.status is SyncState.DONE
    with sqlite_unit_of_work() as uow:
        parcel = uow.repositories.parcels.get("p1")
        harvester = uow.repositories.harvesters.get("h1")
        assert parcel is not None
        assert harvester is not None
        assert parcel.box_count == 2
        assert harvester.box_count == 2


def test_sync_persists_box_photo_reference(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    record = make_raw_record(
        "A1",
        _attachments=[
            {
                "media_file_basename": "caja-a1.jpg",
                "download_url": "https://kf.example.org/media/caja-a1.jpg",
            }
        ],
    )

    summary = sync_records([record], unit_of_work_factory=sqlite_unit_of_work)

    assert summary.status is SyncState.DONE
    with sqlite_unit_of_work() as uow:
        box = uow.repositories.boxes.get("A1")
        assert box is not None
        assert box.photo_filename == "caja-a1.jpg"
        assert box.photo_url == "https://kf.example.org/media/caja-a1.jpg"
