"""Pydantic model describing one survey export record.

Export configuration varies between runs, so the same concept can arrive
under several spellings (``"Escanea la caja"``, ``"escanea_la_caja"``,
``"box"`` ...). ``FIELD_ALIASES`` maps each canonical field to its ordered
alias list; aliases are written in folded form (see ``fold_field_name``).
"""

from __future__ import annotations

import math
import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta, timezone
from typing import Final, cast

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator, model_validator

from harvestsync.domain.model import AnomalyKind

from .errors import AnomalyWarning

FIELD_ALIASES: Final[Mapping[str, tuple[str, ...]]] = {
    "box_code": ("box code", "box", "escanea la caja", "caja", "scan code"),
    "parcel": ("parcel code", "parcel", "escanea la parcela", "parcela"),
    "harvester": (
        "harvester name",
        "harvester",
        "harvester id",
        "worker",
        "cortadora",
        "cosechadora",
    ),
    "submission_time": ("submission time", "time", "timestamp", "start", "fecha"),
    "quantity": ("quantity", "weight", "peso de la caja", "peso"),
    "latitude": ("latitude", "pon tu ubicacion latitude", "lat"),
    "longitude": ("longitude", "pon tu ubicacion longitude", "lng", "lon"),
    "location": ("location", "pon tu ubicacion", "tu ubicacion"),
    "submission_id": ("submission id", "kobo id", "id"),
    "photo_filename": (
        "photo filename",
        "photo",
        "foto de la caja de primera",
        "foto de la caja",
        "foto",
    ),
    "photo_url": ("photo url", "foto de la caja de primera url", "foto de la caja url"),
    "attachments": ("attachments",),
    "year": ("year", "ano"),
    "month": ("month", "mes"),
    "day": ("day", "dia"),
}

DEFAULT_UTC_OFFSET: Final[timedelta] = timedelta(hours=-6)
SPREADSHEET_EPOCH: Final[datetime] = datetime(1899, 12, 30)  # noqa: DTZ001
_MAX_SPREADSHEET_SERIAL: Final[float] = 2958466.0
_DATE_PART_NOON: Final[int] = 12
# Heavier boxes are almost always a missing decimal point
MAX_BOX_WEIGHT_KG: Final[float] = 20.0


def fold_field_name(name: str) -> str:
    """Fold a raw field name so spelling variants compare equal."""

    text = unicodedata.normalize("NFKD", name)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.casefold().replace("_", " ")
    return " ".join(text.split())


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return isinstance(value, float) and math.isnan(value)


def resolve_fields(record: Mapping[str, object]) -> dict[str, object]:
    """Map ``record`` onto canonical field names; first non-blank alias wins."""

    folded: dict[str, object] = {}
    for raw_key, value in record.items():
        folded.setdefault(fold_field_name(str(raw_key)), value)

    resolved: dict[str, object] = {}
    for canonical, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            value = folded.get(alias)
            if _is_blank(value):
                continue
            resolved[canonical] = value
            break
    return resolved


@dataclass(slots=True)
class ValidationScratch:
    """Validation context collecting anomalies for one record."""

    utc_offset: timedelta = DEFAULT_UTC_OFFSET
    anomalies: list[AnomalyWarning] = field(default_factory=list["AnomalyWarning"])

    def flag(self, kind: AnomalyKind, detail: str | None = None) -> None:
        self.anomalies.append(AnomalyWarning(kind=kind, detail=detail))

    @property
    def tz(self) -> timezone:
        return timezone(self.utc_offset)


def _scratch(info: ValidationInfo) -> ValidationScratch:
    if isinstance(info.context, ValidationScratch):
        return info.context
    return ValidationScratch()


def _to_text(value: object) -> str | None:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _to_float(value: object) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        number = float(value.strip().replace(",", "."))
    else:
        raise ValueError(f"Not a number: {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Not a finite number: {value!r}")
    return number


def parse_submission_time(value: object, *, tz: timezone) -> datetime:
    """Parse a survey timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings, ``datetime``/``date`` objects and spreadsheet
    serial day numbers. Naive values are read as wall time in ``tz``.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day, _DATE_PART_NOON)  # noqa: DTZ001
    elif isinstance(value, int | float) and not isinstance(value, bool):
        parsed = _from_spreadsheet_serial(float(value))
    elif isinstance(value, str):
        parsed = _parse_time_text(value)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(UTC)


def _parse_time_text(value: str) -> datetime:
    text = value.strip()
    try:
        return _from_spreadsheet_serial(float(text))
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc


def _from_spreadsheet_serial(serial: float) -> datetime:
    if not 0 < serial < _MAX_SPREADSHEET_SERIAL:
        raise ValueError(f"Spreadsheet serial out of range: {serial}")
    return SPREADSHEET_EPOCH + timedelta(days=serial)


def _from_date_parts(resolved: Mapping[str, object]) -> datetime | None:
    parts = [resolved.get(name) for name in ("year", "month", "day")]
    if any(_is_blank(part) for part in parts):
        return None
    year, month, day = (int(_to_float(part)) for part in parts)
    return datetime(year, month, day, _DATE_PART_NOON)  # noqa: DTZ001


def _split_location(value: object) -> tuple[object, object] | None:
    if not isinstance(value, str):
        return None
    parts = value.split()
    if len(parts) < 2:  # noqa: PLR2004
        return None
    return parts[0], parts[1]


def _first_attachment(value: object) -> Mapping[str, object] | None:
    if not isinstance(value, list | tuple):
        return None
    items = cast(list[object] | tuple[object, ...], value)
    if not items or not isinstance(items[0], Mapping):
        return None
    return cast(Mapping[str, object], items[0])


class SurveyBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class SurveyRecord(SurveyBaseModel):
    """Canonical view of one raw survey record with lenient coercion.

    Unparseable optional values become ``None`` and are reported through the
    ``ValidationScratch`` passed as validation context.
    """

    box_code: str | None = None
    parcel: str | None = None
    harvester: str | None = None
    submission_time: datetime | None = None
    quantity: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    submission_id: str | None = None
    photo_filename: str | None = None
    photo_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_aliases(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, Mapping):
            return value
        resolved = resolve_fields(cast(Mapping[str, object], value))

        if "submission_time" not in resolved:
            try:
                from_parts = _from_date_parts(resolved)
            except (OverflowError, TypeError, ValueError):
                _scratch(info).flag(AnomalyKind.TIMESTAMP_INVALID, "invalid year/month/day")
                from_parts = None
            if from_parts is not None:
                resolved["submission_time"] = from_parts

        if "latitude" not in resolved and "longitude" not in resolved:
            location = _split_location(resolved.get("location"))
            if location is not None:
                resolved["latitude"], resolved["longitude"] = location

        # Uploaded attachments are authoritative over the filename answer
        attachment = _first_attachment(resolved.pop("attachments", None))
        if attachment is not None:
            for target, source in (
                ("photo_filename", "media_file_basename"),
                ("photo_url", "download_url"),
            ):
                if not _is_blank(attachment.get(source)):
                    resolved[target] = attachment[source]

        return resolved

    @field_validator(
        "box_code",
        "parcel",
        "harvester",
        "submission_id",
        "photo_filename",
        "photo_url",
        mode="before",
    )
    @classmethod
    def _normalize_text(cls, value: object) -> str | None:
        return _to_text(value)

    @field_validator("submission_time", mode="before")
    @classmethod
    def _parse_time(cls, value: object, info: ValidationInfo) -> datetime | None:
        if _is_blank(value):
            return None
        scratch = _scratch(info)
        try:
            return parse_submission_time(value, tz=scratch.tz)
        except (OverflowError, ValueError) as exc:
            scratch.flag(AnomalyKind.TIMESTAMP_INVALID, str(exc))
            return None

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: object, info: ValidationInfo) -> float | None:
        if _is_blank(value):
            return None
        try:
            quantity = _to_float(value)
        except ValueError as exc:
            _scratch(info).flag(AnomalyKind.QUANTITY_INVALID, str(exc))
            return None
        if quantity <= 0:
            _scratch(info).flag(AnomalyKind.QUANTITY_INVALID, f"Non-positive quantity: {value!r}")
            return None
        if quantity > MAX_BOX_WEIGHT_KG:
            _scratch(info).flag(
                AnomalyKind.QUANTITY_EXCESSIVE,
                f"Weight above {MAX_BOX_WEIGHT_KG:g} kg: {value!r}",
            )
            return None
        return quantity

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _parse_coordinate(cls, value: object, info: ValidationInfo) -> float | None:
        if _is_blank(value):
            return None
        limit = 90.0 if info.field_name == "latitude" else 180.0
        try:
            coordinate = _to_float(value)
        except ValueError as exc:
            _scratch(info).flag(AnomalyKind.LOCATION_INVALID, str(exc))
            return None
        if abs(coordinate) > limit:
            _scratch(info).flag(
                AnomalyKind.LOCATION_INVALID, f"{info.field_name} out of range: {value!r}"
            )
            return None
        return coordinate

