"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    BoxRepository,
    HarvesterRepository,
    KeyedRepository,
    ParcelRepository,
)
from .unit_of_work import (
    HarvestRepositories,
    HarvestUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "BoxRepository",
    "HarvestRepositories",
    "HarvestUnitOfWork",
    "HarvesterRepository",
    "KeyedRepository",
    "ParcelRepository",
    "RepositoryCollection",
    "UnitOfWork",
]
