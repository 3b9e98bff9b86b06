"""SQLAlchemy adapter package for harvestsync."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyBoxRepository,
    SqlAlchemyHarvesterRepository,
    SqlAlchemyKeyedRepository,
    SqlAlchemyParcelRepository,
)
from .unit_of_work import SqlAlchemyUnitOfWork, StartupError, shutdown, startup

__all__ = [
    "SqlAlchemyBoxRepository",
    "SqlAlchemyHarvesterRepository",
    "SqlAlchemyKeyedRepository",
    "SqlAlchemyParcelRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "startup",
    "start_mappers",
]
