"""Intra-batch deduplication of normalized records.

Responsibilities of this stage:
- collapse repeated sightings of the same box code within one batch
- keep the last sighting (original batch order) as the survivor
- count earlier sightings as superseded, never as errors
- avoid persistence/database lookups
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from .contracts import DeduplicationResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .contracts import NormalizedRecord


class DeduplicateRecords(Protocol):
    """Collapse duplicate box sightings in a batch."""

    def __call__(
        self,
        records: Sequence[NormalizedRecord],
        *,
        positions: Sequence[int] | None = None,
    ) -> DeduplicationResult: ...


def deduplicate_records(
    records: Sequence[NormalizedRecord],
    *,
    positions: Sequence[int] | None = None,
) -> DeduplicationResult:
    """Keep the last record per box code.

    Survivors are returned ordered by the batch position of their final
    sighting, so committing them in order preserves last-in-batch-wins.
    ``positions`` carries the original batch index of each record (defaults
    to the index in ``records``).
    """

    effective_positions = list(positions) if positions is not None else list(range(len(records)))
    if len(effective_positions) != len(records):
        raise ValueError("positions must align with records")

    last_index_by_code: dict[str, int] = {}
    for index, record in enumerate(records):
        last_index_by_code[record.box_code] = index

    survivors = sorted(last_index_by_code.values())
    return DeduplicationResult(
        records=[records[index] for index in survivors],
        positions=[effective_positions[index] for index in survivors],
        superseded=len(records) - len(survivors),
    )
