"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from harvestsync.adapters.sqlalchemy.mappings import box_table, harvester_table, parcel_table
from harvestsync.domain.model import Box, Entity, Harvester, Parcel
from harvestsync.domain.reconciliation.errors import StoreFailure

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.orm import Session


class SqlAlchemyKeyedRepository[TEntity: Entity]:
    """Upsert-only repository keyed by the entity's natural key.

    ``put`` flushes immediately so the write is visible to later ``get`` calls
    and rejected writes surface as ``StoreFailure`` at the call site.
    """

    def __init__(self, session: Session, entity_cls: type[TEntity]) -> None:
        self.session = session
        self._entity_cls = entity_cls
        self.touched: set[str] = set()

    def get(self, key: str) -> TEntity | None:
        try:
            return self.session.get(self._entity_cls, key)
        except SQLAlchemyError as exc:
            raise StoreFailure(
                f"Could not read {self._entity_cls.__name__} {key!r}: {exc}", key=key
            ) from exc

    def put(self, key: str, entity: TEntity) -> None:
        if entity.key != key:
            raise ValueError(f"Entity key {entity.key!r} does not match {key!r}")
        try:
            self.session.add(entity)
            self.session.flush()
            self.touched.add(key)
        except SQLAlchemyError as exc:
            raise StoreFailure(
                f"Could not write {self._entity_cls.__name__} {key!r}: {exc}", key=key
            ) from exc


class SqlAlchemyBoxRepository(SqlAlchemyKeyedRepository[Box]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Box)

    def count(self) -> int:
        stmt = select(func.count()).select_from(box_table)
        try:
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Could not count boxes: {exc}") from exc


class SqlAlchemyParcelRepository(SqlAlchemyKeyedRepository[Parcel]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Parcel)


class SqlAlchemyHarvesterRepository(SqlAlchemyKeyedRepository[Harvester]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Harvester)


def recount_owner_boxes(
    session: Session,
    *,
    parcel_keys: Iterable[str],
    harvester_keys: Iterable[str],
) -> None:
    """Reset ``box_count`` of the given owners from the boxes visible to ``session``.

    Runs as correlated UPDATEs inside the current transaction, so the counts
    commit atomically with the box writes that changed them.
    """

    parcels = set(parcel_keys)
    harvesters = set(harvester_keys)
    targets = (
        (parcel_table, parcel_table.c.parcel_key, box_table.c.parcel_key, parcels),
        (
            harvester_table,
            harvester_table.c.harvester_key,
            box_table.c.harvester_key,
            harvesters,
        ),
    )
    try:
        for table, key_column, box_column, keys in targets:
            if not keys:
                continue
            box_total = (
                select(func.count())
                .select_from(box_table)
                .where(box_column == key_column)
                .scalar_subquery()
            )
            session.execute(
                update(table).where(key_column.in_(sorted(keys))).values(box_count=box_total)
            )
        for entity in list(session.identity_map.values()):
            if isinstance(entity, Parcel) and entity.key in parcels:
                session.refresh(entity, ["box_count"])
            elif isinstance(entity, Harvester) and entity.key in harvesters:
                session.refresh(entity, ["box_count"])
    except SQLAlchemyError as exc:
        raise StoreFailure(f"Could not recount box totals: {exc}") from exc


if TYPE_CHECKING:
    from harvestsync.domain.ports.persistence import (
        BoxRepository,
        HarvesterRepository,
        ParcelRepository,
    )

    _session_stub = cast("Session", object())
    _box_repo: BoxRepository = SqlAlchemyBoxRepository(_session_stub)
    _parcel_repo: ParcelRepository = SqlAlchemyParcelRepository(_session_stub)
    _harvester_repo: HarvesterRepository = SqlAlchemyHarvesterRepository(_session_stub)
