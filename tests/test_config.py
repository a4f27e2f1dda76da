"""Tests for bmwid.config: XDG paths, atomic writes, settings, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from bmwid.config import (
    atomic_write,
    default_store_path,
    get_config_dir,
    get_data_dir,
    load_settings,
    resolve_settings,
    save_settings,
    update_settings,
)
from bmwid.exceptions import ConfigError
from bmwid.models import Settings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("bmwid.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        result = get_config_dir()

        assert result == tmp_path / ".config" / "bmwid"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, isolated_config: Path) -> None:
        assert get_config_dir() == isolated_config / "config" / "bmwid"

    def test_data_dir_xdg_custom(self, isolated_config: Path) -> None:
        assert get_data_dir() == isolated_config / "data" / "bmwid"

    def test_default_store_path(self, isolated_config: Path) -> None:
        assert default_store_path() == isolated_config / "data" / "bmwid" / "settings.json"

    def test_fallback_dirs(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("bmwid.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)

        assert get_config_dir() == tmp_path / ".bmwid"
        assert get_data_dir() == tmp_path / ".bmwid" / "data"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "out.json"
        atomic_write(target, '{"a": 1}')
        assert target.read_text(encoding="utf-8") == '{"a": 1}'

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "out.txt"
        target.write_text("old")
        atomic_write(target, "new")
        assert target.read_text() == "new"

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "out.txt"
        with patch("bmwid.config.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write(target, "data")
        assert list(tmp_path.iterdir()) == []

    def test_applies_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert target.stat().st_mode & 0o777 == 0o600


# ---------------------------------------------------------------------------
# Settings file
# ---------------------------------------------------------------------------


class TestSettingsFile:
    def test_load_returns_defaults_when_missing(self, isolated_config: Path) -> None:
        settings = load_settings()
        assert settings == Settings()
        assert settings.region == "ROW"
        assert settings.timeout == 30.0
        assert settings.refresh_lead_minutes == 15

    def test_save_and_load(self, isolated_config: Path) -> None:
        save_settings(Settings(region="na", timeout=5))
        loaded = load_settings()
        assert loaded.region == "na"
        assert loaded.timeout == 5

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        path = isolated_config / "config" / "bmwid" / "config.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{broken")
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings()

    def test_load_invalid_schema_raises_config_error(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "config" / "bmwid" / "config.json", {"timeout": -1})
        with pytest.raises(ConfigError):
            load_settings()

    def test_update_settings(self, isolated_config: Path) -> None:
        update_settings("timeout", "12.5")
        update_settings("verify_ssl", "false")
        loaded = load_settings()
        assert loaded.timeout == 12.5
        assert loaded.verify_ssl is False

    def test_update_unknown_key(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="Unknown setting 'colour'"):
            update_settings("colour", "red")

    def test_update_invalid_value(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid value for 'timeout'"):
            update_settings("timeout", "soon")
        assert load_settings().timeout == 30.0


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestResolveSettings:
    def test_defaults(self, isolated_config: Path) -> None:
        assert resolve_settings() == Settings()

    def test_file_overrides_defaults(self, isolated_config: Path) -> None:
        save_settings(Settings(region="NA"))
        assert resolve_settings().region == "NA"

    def test_env_overrides_file(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_settings(Settings(region="NA", timeout=10))
        monkeypatch.setenv("BMWID_REGION", "row")
        monkeypatch.setenv("BMWID_TIMEOUT", "7")
        monkeypatch.setenv("BMWID_STORE", "/tmp/tokens.json")

        settings = resolve_settings()

        assert settings.region == "row"
        assert settings.timeout == 7
        assert settings.store_path == "/tmp/tokens.json"

    def test_cli_overrides_env(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BMWID_REGION", "row")
        monkeypatch.setenv("BMWID_TIMEOUT", "7")

        settings = resolve_settings(cli_region="na", cli_timeout=3)

        assert settings.region == "na"
        assert settings.timeout == 3

    def test_invalid_env_raises_config_error(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BMWID_TIMEOUT", "never")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            resolve_settings()
