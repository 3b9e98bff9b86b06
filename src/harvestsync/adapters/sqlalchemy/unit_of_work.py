"""SQLAlchemy-backed unit of work for the reconciliation store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from harvestsync.adapters.sqlalchemy.mappings import create_all_tables, start_mappers
from harvestsync.adapters.sqlalchemy.repositories import (
    SqlAlchemyBoxRepository,
    SqlAlchemyHarvesterRepository,
    SqlAlchemyParcelRepository,
    recount_owner_boxes,
)
from harvestsync.config.storage import get_database_config
from harvestsync.domain.ports.unit_of_work import HarvestRepositories
from harvestsync.domain.reconciliation.errors import StoreFailure

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call harvestsync.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine, metadata, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    start_mappers()
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class SqlAlchemyUnitOfWork:
    """Unit of work managing one SQLAlchemy session for a reconciliation batch."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None
        self._repositories: HarvestRepositories | None = None
        self._parcels: SqlAlchemyParcelRepository | None = None
        self._harvesters: SqlAlchemyHarvesterRepository | None = None

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.session = self.session_factory()
        self._parcels = SqlAlchemyParcelRepository(self.session)
        self._harvesters = SqlAlchemyHarvesterRepository(self.session)
        self._repositories = HarvestRepositories(
            boxes=SqlAlchemyBoxRepository(self.session),
            parcels=self._parcels,
            harvesters=self._harvesters,
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if exc_type is not None:
                self.rollback()
        finally:
            self.session.close()
            self.session = None
            self._repositories = None
            self._parcels = None
            self._harvesters = None
        return False  # don't swallow exceptions

    def commit(self) -> None:
        self._recount_owners()
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Commit rejected: {exc}") from exc

    def _recount_owners(self) -> None:
        # box_count is rebuilt from the box rows rather than trusted from apply
        if self._parcels is None or self._harvesters is None:
            return
        recount_owner_boxes(
            self.session,
            parcel_keys=self._parcels.touched,
            harvester_keys=self._harvesters.touched,
        )
        self._parcels.touched.clear()
        self._harvesters.touched.clear()

    def rollback(self) -> None:
        for repository in (self._parcels, self._harvesters):
            if repository is not None:
                repository.touched.clear()
        try:
            self.session.rollback()
        except SQLAlchemyError as exc:
            raise StoreFailure(f"Rollback failed: {exc}") from exc

    @property
    def repositories(self) -> HarvestRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


if TYPE_CHECKING:
    from harvestsync.domain.ports.unit_of_work import HarvestUnitOfWork

    _uow_check: HarvestUnitOfWork = SqlAlchemyUnitOfWork()
