"""Normalization stage for raw survey records.

Responsibilities of this stage:
- map heterogeneous field names onto canonical fields (``schema.FIELD_ALIASES``)
- coerce values and flag anomalies without discarding the record
- reject only records without a box code (``ValidationError``)
- stay pure: no persistence lookups, safe to run concurrently
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol, cast

from pydantic import ValidationError as PydanticValidationError

from harvestsync.domain.model import AnomalyKind

from .contracts import NormalizedRecord
from .errors import AnomalyWarning, ValidationError
from .schema import DEFAULT_UTC_OFFSET, SurveyRecord, ValidationScratch, resolve_fields

if TYPE_CHECKING:
    from datetime import timedelta

log = logging.getLogger(__name__)

_PARCEL_SEPARATOR: Final[re.Pattern[str]] = re.compile(r"(?:^|\s+)-\s*")
_HARVESTER_PREFIX: Final[re.Pattern[str]] = re.compile(r"^(\d{1,2})-\S+$")


class NormalizeRecord(Protocol):
    """Turn one raw record into a ``NormalizedRecord`` or raise ``ValidationError``."""

    def __call__(self, raw: Mapping[str, object]) -> NormalizedRecord: ...


@dataclass(slots=True, kw_only=True)
class RecordNormalizer:
    """Default normalizer for survey export records."""

    utc_offset: timedelta = DEFAULT_UTC_OFFSET

    def __call__(self, raw: Mapping[str, object]) -> NormalizedRecord:
        return normalize_record(raw, utc_offset=self.utc_offset)


def normalize_record(
    raw: Mapping[str, object],
    *,
    utc_offset: timedelta = DEFAULT_UTC_OFFSET,
) -> NormalizedRecord:
    """Normalize ``raw`` onto canonical fields.

    Only the box code is mandatory. Missing timestamps, parcels and
    harvesters are flagged as anomalies on the returned record.
    """

    if not isinstance(raw, Mapping):
        raise ValidationError(f"expected a mapping, got {type(raw).__name__}")

    scratch = ValidationScratch(utc_offset=utc_offset)
    try:
        record = SurveyRecord.model_validate(raw, context=scratch)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"unreadable record ({exc.error_count()} field errors)",
            box_code=_partial_box_code(raw),
        ) from exc

    if record.box_code is None:
        raise ValidationError("missing box code", box_code=_partial_box_code(raw))

    anomalies = list(scratch.anomalies)
    if record.submission_time is None and not _flagged(anomalies, AnomalyKind.TIMESTAMP_INVALID):
        anomalies.append(AnomalyWarning(kind=AnomalyKind.TIMESTAMP_MISSING))

    parcel_code, parcel_name = split_parcel(record.parcel)
    if parcel_code is None:
        anomalies.append(AnomalyWarning(kind=AnomalyKind.PARCEL_MISSING, detail=record.parcel))

    harvester_name = record.harvester or harvester_from_box_code(record.box_code)
    if harvester_name is None:
        anomalies.append(AnomalyWarning(kind=AnomalyKind.HARVESTER_MISSING))

    if anomalies:
        log.debug(
            "Box %s normalized with anomalies: %s",
            record.box_code,
            ", ".join(anomaly.kind for anomaly in anomalies),
        )

    return NormalizedRecord(
        box_code=record.box_code,
        parcel_code=parcel_code,
        parcel_name=parcel_name,
        harvester_name=harvester_name,
        submission_time=record.submission_time,
        quantity=record.quantity,
        latitude=record.latitude,
        longitude=record.longitude,
        submission_id=record.submission_id,
        photo_filename=record.photo_filename,
        photo_url=record.photo_url,
        anomalies=tuple(anomalies),
    )


def split_parcel(value: str | None) -> tuple[str | None, str | None]:
    """Split a scanned ``"CODE -NAME"`` parcel string into code and name.

    An empty code falls back to the name (``" -LOS ELOTES"``), a missing name
    falls back to the code.
    """

    if value is None:
        return None, None
    parts = _PARCEL_SEPARATOR.split(value, maxsplit=1)
    code = parts[0].strip()
    name = parts[1].strip() if len(parts) > 1 else ""
    if not code:
        code = name
    if not code:
        return None, None
    return code, name or code


def harvester_from_box_code(box_code: str) -> str | None:
    """Derive the harvester number from an ``NN-XXXXXX`` box code."""

    match = _HARVESTER_PREFIX.match(box_code)
    if match is None:
        return None
    return str(int(match.group(1)))


def _flagged(anomalies: list[AnomalyWarning], kind: AnomalyKind) -> bool:
    return any(anomaly.kind is kind for anomaly in anomalies)


def _partial_box_code(raw: object) -> str | None:
    if not isinstance(raw, Mapping):
        return None
    value = resolve_fields(cast(Mapping[str, object], raw)).get("box_code")
    if value is None:
        return None
    return str(value).strip() or None
