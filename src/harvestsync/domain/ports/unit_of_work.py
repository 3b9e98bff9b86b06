"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from harvestsync.domain.ports.persistence import (
        BoxRepository,
        HarvesterRepository,
        ParcelRepository,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection.

    Implementations raise ``StoreFailure`` when persistence is unreachable or
    rejects a write.
    """

    @property
    def repositories(self) -> TRepositories: ...

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@dataclass(slots=True)
class HarvestRepositories(RepositoryCollection):
    """Repositories making up the reconciliation store."""

    boxes: BoxRepository
    parcels: ParcelRepository
    harvesters: HarvesterRepository


type HarvestUnitOfWork = UnitOfWork[HarvestRepositories]
