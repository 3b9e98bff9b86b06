"""Synchronization defaults for the harvest reconciliation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .env import env_float, env_int
from .errors import ConfigurationError

DEFAULT_NORMALIZE_WORKERS = 1
# Survey devices record local time in Mexico (CST, no DST)
DEFAULT_SURVEY_UTC_OFFSET_HOURS = -6.0


@dataclass(frozen=True, slots=True)
class SyncConfig:
    normalize_workers: int = DEFAULT_NORMALIZE_WORKERS
    survey_utc_offset_hours: float = DEFAULT_SURVEY_UTC_OFFSET_HOURS

    def __post_init__(self) -> None:
        if self.normalize_workers < 1:
            raise ConfigurationError("normalize_workers must be at least 1")
        if not -24 < self.survey_utc_offset_hours < 24:
            raise ConfigurationError("survey_utc_offset_hours must lie strictly within +/-24")

    @property
    def survey_utc_offset(self) -> timedelta:
        return timedelta(hours=self.survey_utc_offset_hours)


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        normalize_workers=env_int(
            "HARVESTSYNC_NORMALIZE_WORKERS", DEFAULT_NORMALIZE_WORKERS, minimum=1
        ),
        survey_utc_offset_hours=env_float(
            "SURVEY_UTC_OFFSET_HOURS", DEFAULT_SURVEY_UTC_OFFSET_HOURS
        ),
    )
