"""Identity resolution for normalized records.

Responsibilities of this stage:
- derive Box/Parcel/Harvester identities from normalized records
- look identities up through injected finders, else default-construct
- classify each change as new or update against pre-batch store state
- produce a ``ResolutionPlan`` without mutating persistence state

Out of scope for this stage:
- intra-batch deduplication (see ``deduplicate``)
- writes and commit (see ``apply``)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Final, Protocol

from .contracts import BoxChange, BoxFields, HarvesterChange, ParcelChange, ResolutionPlan

if TYPE_CHECKING:
    from collections.abc import Sequence

    from harvestsync.domain.model import Box, Harvester, Parcel

    from .contracts import NormalizedRecord

UNASSIGNED_KEY: Final[str] = "unassigned"
UNASSIGNED_NAME: Final[str] = "Unassigned"

type FindBox = Callable[[str], Box | None]
type FindParcel = Callable[[str], Parcel | None]
type FindHarvester = Callable[[str], Harvester | None]


class ResolveRecords(Protocol):
    """Resolve deduplicated records against current store state."""

    def __call__(
        self,
        records: Sequence[NormalizedRecord],
        *,
        find_box: FindBox,
        find_parcel: FindParcel,
        find_harvester: FindHarvester,
        positions: Sequence[int] | None = None,
    ) -> ResolutionPlan: ...


def parcel_key(code: str | None) -> str:
    """Return the lookup key for a parcel code (trimmed, case-folded)."""

    if code is None or not code.strip():
        return UNASSIGNED_KEY
    return code.strip().casefold()


def harvester_key(name: str | None) -> str:
    """Return the lookup key for a harvester (trimmed, case-folded, no leading zeros)."""

    display = harvester_display_name(name)
    if display is None:
        return UNASSIGNED_KEY
    return display.casefold()


def harvester_display_name(name: str | None) -> str | None:
    if name is None or not name.strip():
        return None
    # int() only parses decimal digits, not superscripts or circled numbers
    text = name.strip()
    return str(int(text)) if text.isdecimal() else text


def resolve_records(
    records: Sequence[NormalizedRecord],
    *,
    find_box: FindBox,
    find_parcel: FindParcel,
    find_harvester: FindHarvester,
    positions: Sequence[int] | None = None,
) -> ResolutionPlan:
    """Resolve each record into a ``BoxChange`` in the given order.

    Matching policy:
    - box code present in the store -> update, else new
    - parcel/harvester missing from the store -> new on first reference in
      the plan, later references in the same plan are not new
    - missing parcel/harvester -> the ``unassigned`` placeholder identity
    """

    effective_positions = list(positions) if positions is not None else list(range(len(records)))
    plan = ResolutionPlan()
    for position, record in zip(effective_positions, records, strict=True):
        parcel = _resolve_parcel(record, plan=plan, find_parcel=find_parcel)
        harvester = _resolve_harvester(record, plan=plan, find_harvester=find_harvester)
        existing = find_box(record.box_code)
        plan.add_change(
            BoxChange(
                box_code=record.box_code,
                fields=BoxFields(
                    parcel_key=parcel.parcel_key,
                    harvester_key=harvester.harvester_key,
                    submission_time=record.submission_time,
                    quantity=record.quantity,
                    latitude=record.latitude,
                    longitude=record.longitude,
                    submission_id=record.submission_id,
                    photo_filename=record.photo_filename,
                    photo_url=record.photo_url,
                    anomalies=record.anomaly_kinds,
                ),
                is_new=existing is None,
                parcel=parcel,
                harvester=harvester,
                position=position,
            )
        )
    return plan


def _resolve_parcel(
    record: NormalizedRecord,
    *,
    plan: ResolutionPlan,
    find_parcel: FindParcel,
) -> ParcelChange:
    key = parcel_key(record.parcel_code)
    if key == UNASSIGNED_KEY:
        code, name = UNASSIGNED_KEY, UNASSIGNED_NAME
    else:
        code = (record.parcel_code or "").strip()
        name = (record.parcel_name or code).strip()

    is_new = key not in plan.parcels and find_parcel(key) is None
    change = ParcelChange(parcel_key=key, code=code, name=name, is_new=is_new)
    if key not in plan.parcels:
        plan.parcels[key] = change
    return change


def _resolve_harvester(
    record: NormalizedRecord,
    *,
    plan: ResolutionPlan,
    find_harvester: FindHarvester,
) -> HarvesterChange:
    key = harvester_key(record.harvester_name)
    name = harvester_display_name(record.harvester_name) or UNASSIGNED_NAME

    is_new = key not in plan.harvesters and find_harvester(key) is None
    change = HarvesterChange(harvester_key=key, name=name, is_new=is_new)
    if key not in plan.harvesters:
        plan.harvesters[key] = change
    return change
