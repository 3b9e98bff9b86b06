from __future__ import annotations

import pytest

from harvestsync.domain.reconciliation import deduplicate_records
from tests.helpers.records import make_normalized


def test_deduplicate_keeps_last_sighting_per_box() -> None:
    first = make_normalized("A1", parcel_code="P1")
    second = make_normalized("A2", parcel_code="P2")
    last = make_normalized("A1", parcel_code="P9")

    result = deduplicate_records([first, second, last])

    assert result.records == [second, last]
    assert result.positions == [1, 2]
    assert result.superseded == 1


def test_deduplicate_orders_survivors_by_final_position() -> None:
    records = [
        make_normalized("A1"),
        make_normalized("A2"),
        make_normalized("A3"),
        make_normalized("A1"),
    ]

    result = deduplicate_records(records)

    assert [record.box_code for record in result.records] == ["A2", "A3", "A1"]
    assert result.positions == [1, 2, 3]


def test_deduplicate_carries_original_batch_positions() -> None:
    records = [make_normalized("A1"), make_normalized("A2")]

    result = deduplicate_records(records, positions=[0, 4])

    assert result.positions == [0, 4]
    assert result.superseded == 0


def test_deduplicate_rejects_misaligned_positions() -> None:
    with pytest.raises(ValueError, match="positions"):
        deduplicate_records([make_normalized("A1")], positions=[0, 1])


def test_deduplicate_handles_empty_batch() -> None:
    result = deduplicate_records([])

    assert result.records == []
    assert result.positions == []
    assert result.superseded == 0
