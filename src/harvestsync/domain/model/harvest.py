"""Harvest-tracking entities keyed by natural identity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from harvestsync.domain.model.enums import AnomalyKind, EntityType

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(eq=False, kw_only=True)
class Entity:
    """Entity whose identity is a natural key string."""

    # class-level discriminator; subclasses must override
    ENTITY_TYPE: ClassVar[EntityType]

    @property
    def entity_type(self) -> EntityType:
        return self.ENTITY_TYPE

    @property
    def key(self) -> str:
        raise NotImplementedError


@dataclass(eq=False, kw_only=True)
class Parcel(Entity):
    """A field or plot of land that boxes are harvested from."""

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.PARCEL

    parcel_key: str
    code: str
    name: str
    box_count: int = 0

    @property
    def key(self) -> str:
        return self.parcel_key


@dataclass(eq=False, kw_only=True)
class Harvester(Entity):
    """A worker credited with harvesting boxes."""

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.HARVESTER

    harvester_key: str
    name: str
    box_count: int = 0

    @property
    def key(self) -> str:
        return self.harvester_key


@dataclass(eq=False, kw_only=True)
class Box(Entity):
    """A unit of harvested product identified by its scan code.

    ``parcel_key`` and ``harvester_key`` reference the owning Parcel and
    Harvester by natural key so the entity stays usable without an ORM.
    """

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.BOX

    code: str
    parcel_key: str
    harvester_key: str
    submission_time: datetime | None = None
    quantity: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    submission_id: str | None = None
    photo_filename: str | None = None
    photo_url: str | None = None
    anomalies: frozenset[AnomalyKind] = field(default_factory=frozenset["AnomalyKind"])

    @property
    def key(self) -> str:
        return self.code

    @property
    def timestamp_missing(self) -> bool:
        return self.submission_time is None
