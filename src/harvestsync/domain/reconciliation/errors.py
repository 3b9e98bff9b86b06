"""Error taxonomy for harvest reconciliation.

- ``ValidationError``: a record cannot be reconciled; the batch skips it.
- ``AnomalyWarning``: a record defect that is flagged but never rejects it.
- ``StoreFailure``: persistence is unavailable or rejected a write; the batch
  stops.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from harvestsync.domain.model import AnomalyKind


class HarvestSyncError(Exception):
    """Base class for reconciliation errors."""


class ValidationError(HarvestSyncError, ValueError):
    """Raised when a raw record has no usable box identity."""

    def __init__(self, reason: str, *, box_code: str | None = None) -> None:
        self.reason = reason
        self.box_code = box_code
        super().__init__(f"box {box_code}: {reason}" if box_code else reason)


class StoreFailure(HarvestSyncError, RuntimeError):  # noqa: N818
    """Raised when the reconciliation store cannot complete an operation."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.args[0]}"


@dataclass(frozen=True, slots=True)
class AnomalyWarning:
    """A non-fatal defect observed while normalizing one record."""

    kind: AnomalyKind
    detail: str | None = None
