from __future__ import annotations

from typing import TYPE_CHECKING

from harvestsync.config import get_database_config, get_storage_config
from harvestsync.config.storage import DEFAULT_DB_FILENAME

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


def test_storage_config_uses_env_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HARVESTSYNC_DATA_DIR", str(tmp_path / "data"))

    storage = get_storage_config()

    assert storage.database_path() == (tmp_path / "data" / DEFAULT_DB_FILENAME).resolve()
    assert (tmp_path / "data").is_dir()


def test_storage_config_defaults_to_xdg_data_home(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.delenv("HARVESTSYNC_DATA_DIR", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    storage = get_storage_config()

    assert storage.resolve_data_dir() == (tmp_path / "harvestsync").resolve()


def test_database_config_prefers_explicit_uri(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite+pysqlite:///:memory:")

    assert get_database_config().uri == "sqlite+pysqlite:///:memory:"


def test_database_config_falls_back_to_data_dir(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.delenv("DATABASE_URI", raising=False)
    monkeypatch.setenv("HARVESTSYNC_DATA_DIR", str(tmp_path))

    uri = get_database_config().uri

    assert uri.startswith("sqlite+pysqlite:///")
    assert uri.endswith(DEFAULT_DB_FILENAME)
