"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    """Discriminator for the three reconciled entity kinds."""

    BOX = "box"
    PARCEL = "parcel"
    HARVESTER = "harvester"


class AnomalyKind(StrEnum):
    """Non-fatal record defects that are flagged but never reject a record."""

    TIMESTAMP_MISSING = "timestamp_missing"
    TIMESTAMP_INVALID = "timestamp_invalid"
    QUANTITY_INVALID = "quantity_invalid"
    QUANTITY_EXCESSIVE = "quantity_excessive"
    LOCATION_INVALID = "location_invalid"
    PARCEL_MISSING = "parcel_missing"
    HARVESTER_MISSING = "harvester_missing"
