"""Ports for persisting harvest entities keyed by natural identity."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from harvestsync.domain.model import Box, Entity, Harvester, Parcel


@runtime_checkable
class KeyedRepository[TEntity: Entity](Protocol):
    """Upsert-only repository contract.

    ``put`` replaces whatever is stored under ``key``; a ``get`` issued after a
    ``put`` within the same unit of work must observe the written entity.
    """

    def get(self, key: str) -> TEntity | None: ...

    def put(self, key: str, entity: TEntity) -> None: ...


@runtime_checkable
class BoxRepository(KeyedRepository[Box], Protocol):
    """Repository contract for boxes."""

    def count(self) -> int: ...


@runtime_checkable
class ParcelRepository(KeyedRepository[Parcel], Protocol):
    """Repository contract for parcels."""


@runtime_checkable
class HarvesterRepository(KeyedRepository[Harvester], Protocol):
    """Repository contract for harvesters."""
