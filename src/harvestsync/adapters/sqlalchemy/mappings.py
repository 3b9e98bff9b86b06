"""SQLAlchemy mapping metadata for the harvest domain model."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    TypeDecorator,
    orm,
)
from sqlalchemy.orm import configure_mappers

from harvestsync.domain.model import AnomalyKind, Box, Harvester, Parcel

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class AnomalySetType(TypeDecorator[frozenset[AnomalyKind]]):
    impl = String
    cache_ok = True

    def process_bind_param(
        self,
        value: frozenset[AnomalyKind] | None,
        dialect: Dialect,
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = sorted(kind.value for kind in value)
        return json.dumps(payload)

    def process_result_value(self, value: str | None, dialect: Dialect) -> frozenset[AnomalyKind]:
        _ = dialect
        if value is None:
            return frozenset()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return frozenset()
        items = cast(list[Any], loaded)
        return frozenset(AnomalyKind(item) for item in items if isinstance(item, str))


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Core tables -----------------------------------------------------------------

parcel_table = Table(
    "parcel",
    mapper_registry.metadata,
    Column("parcel_key", String(64), primary_key=True),
    Column("code", String(64), nullable=False),
    Column("name", String(255), nullable=False),
    Column("box_count", Integer, nullable=False, default=0),
)

harvester_table = Table(
    "harvester",
    mapper_registry.metadata,
    Column("harvester_key", String(255), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("box_count", Integer, nullable=False, default=0),
)

box_table = Table(
    "box",
    mapper_registry.metadata,
    Column("code", String(64), primary_key=True),
    Column(
        "parcel_key",
        String(64),
        ForeignKey("parcel.parcel_key"),
        nullable=False,
        index=True,
    ),
    Column(
        "harvester_key",
        String(255),
        ForeignKey("harvester.harvester_key"),
        nullable=False,
        index=True,
    ),
    Column("submission_time", UTCDateTime(), nullable=True),
    Column("quantity", Float, nullable=True),
    Column("latitude", Float, nullable=True),
    Column("longitude", Float, nullable=True),
    Column("submission_id", String(64), nullable=True),
    Column("photo_filename", String(255), nullable=True),
    Column("photo_url", String(1024), nullable=True),
    Column("anomalies", AnomalySetType(), nullable=False),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Parcel, parcel_table)
    mapper_registry.map_imperatively(Harvester, harvester_table)
    mapper_registry.map_imperatively(Box, box_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
