"""In-memory reconciliation store.

Units of work stage their writes and publish them on ``commit`` under the
store lock, so each commit is atomic per identity even when several batches
share one store. Aggregate box counts are recomputed from the committed boxes
inside that same critical section, so concurrent batches cannot lose an
increment. Reads go to staged writes first (read-your-writes) and hand out
copies, so uncommitted mutations never leak into the shared state.
"""

from __future__ import annotations

import copy
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from harvestsync.domain.model import Box, Entity, EntityType, Harvester, Parcel
from harvestsync.domain.ports import HarvestRepositories
from harvestsync.domain.reconciliation.errors import StoreFailure

if TYPE_CHECKING:
    from types import TracebackType


@dataclass(slots=True)
class InMemoryHarvestStore:
    """Committed entity state shared by all units of work."""

    boxes: dict[str, Box] = field(default_factory=dict[str, Box])
    parcels: dict[str, Parcel] = field(default_factory=dict[str, Parcel])
    harvesters: dict[str, Harvester] = field(default_factory=dict[str, Harvester])
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def table(self, entity_type: EntityType) -> dict[str, Entity]:
        tables: dict[EntityType, dict[str, Entity]] = {
            EntityType.BOX: self.boxes,  # pyright: ignore[reportAssignmentType]
            EntityType.PARCEL: self.parcels,  # pyright: ignore[reportAssignmentType]
            EntityType.HARVESTER: self.harvesters,  # pyright: ignore[reportAssignmentType]
        }
        return tables[entity_type]

    def recount_owners(self) -> None:
        """Reset every aggregate ``box_count`` from the committed boxes.

        Callers must hold ``lock``.
        """

        by_parcel = Counter(box.parcel_key for box in self.boxes.values())
        by_harvester = Counter(box.harvester_key for box in self.boxes.values())
        for key, parcel in self.parcels.items():
            parcel.box_count = by_parcel[key]
        for key, harvester in self.harvesters.items():
            harvester.box_count = by_harvester[key]


class InMemoryKeyedRepository[TEntity: Entity]:
    """Keyed repository over one table of an ``InMemoryHarvestStore``."""

    def __init__(
        self,
        store: InMemoryHarvestStore,
        entity_cls: type[TEntity],
        staged: dict[tuple[EntityType, str], Entity],
    ) -> None:
        self._store = store
        self._entity_cls = entity_cls
        self._entity_type = entity_cls.ENTITY_TYPE
        self._staged = staged

    def get(self, key: str) -> TEntity | None:
        staged = self._staged.get((self._entity_type, key))
        if staged is not None:
            return copy.copy(staged)  # pyright: ignore[reportReturnType]
        with self._store.lock:
            committed = self._store.table(self._entity_type).get(key)
        if committed is None:
            return None
        return copy.copy(committed)  # pyright: ignore[reportReturnType]

    def put(self, key: str, entity: TEntity) -> None:
        if not isinstance(entity, self._entity_cls):
            raise TypeError(f"Expected {self._entity_cls.__name__}, got {type(entity).__name__}")
        if entity.key != key:
            raise ValueError(f"Entity key {entity.key!r} does not match {key!r}")
        self._staged[(self._entity_type, key)] = copy.copy(entity)


class InMemoryBoxRepository(InMemoryKeyedRepository[Box]):
    def count(self) -> int:
        with self._store.lock:
            committed = set(self._store.boxes)
        staged = {key for entity_type, key in self._staged if entity_type is EntityType.BOX}
        return len(committed | staged)


class InMemoryUnitOfWork:
    """Unit of work staging writes against an ``InMemoryHarvestStore``."""

    def __init__(self, store: InMemoryHarvestStore) -> None:
        self.store = store
        self._staged: dict[tuple[EntityType, str], Entity] = {}
        self._repositories: HarvestRepositories | None = None

    def __enter__(self) -> InMemoryUnitOfWork:
        self._staged = {}
        self._repositories = HarvestRepositories(
            boxes=InMemoryBoxRepository(self.store, Box, self._staged),
            parcels=InMemoryKeyedRepository(self.store, Parcel, self._staged),
            harvesters=InMemoryKeyedRepository(self.store, Harvester, self._staged),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self._repositories = None
        return False

    @property
    def repositories(self) -> HarvestRepositories:
        if self._repositories is None:
            raise StoreFailure("Unit of work used outside of its context")
        return self._repositories

    def commit(self) -> None:
        with self.store.lock:
            for (entity_type, key), entity in self._staged.items():
                self.store.table(entity_type)[key] = entity
            self.store.recount_owners()
        self._staged.clear()

    def rollback(self) -> None:
        self._staged.clear()


if TYPE_CHECKING:
    from harvestsync.domain.ports import HarvestUnitOfWork

    _uow_check: HarvestUnitOfWork = InMemoryUnitOfWork(InMemoryHarvestStore())
