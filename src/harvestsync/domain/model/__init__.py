"""Public domain model surface."""

from __future__ import annotations

from harvestsync.domain.model.enums import AnomalyKind, EntityType
from harvestsync.domain.model.harvest import Box, Entity, Harvester, Parcel

__all__ = [
    "AnomalyKind",
    "Box",
    "Entity",
    "EntityType",
    "Harvester",
    "Parcel",
]
