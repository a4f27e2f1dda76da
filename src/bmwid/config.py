"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.bmwid/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- a single :class:`~bmwid.models.Settings` JSON file
  (``config.json``) holding defaults such as region and HTTP timeout.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables and the settings file.

All file writes go through :func:`atomic_write` so a crash never leaves a
half-written settings or token file behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from bmwid.exceptions import ConfigError
from bmwid.models import Settings

_APP_NAME = "bmwid"
_CONFIG_FILENAME = "config.json"
_STORE_FILENAME = "settings.json"

ENV_REGION = "BMWID_REGION"
ENV_TIMEOUT = "BMWID_TIMEOUT"
ENV_STORE = "BMWID_STORE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform uses the XDG Base Directory layout (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/bmwid/`` (default ``~/.config/bmwid/``).
    On macOS/Windows: ``~/.bmwid/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (token store), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/bmwid/`` (default ``~/.local/share/bmwid/``).
    On macOS/Windows: ``~/.bmwid/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_store_path() -> Path:
    """Location of the token store when no override is configured."""
    return get_data_dir() / _STORE_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX.  When *mode* is given the
    permissions are applied before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in the handler below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def _settings_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_settings() -> Settings:
    """Load settings from the config directory.

    Returns:
        The stored :class:`~bmwid.models.Settings`, or defaults when no file
        exists yet.

    Raises:
        ConfigError: If the file exists but is not valid JSON or fails
            validation.
    """
    path = _settings_path()
    if not path.is_file():
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Settings.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {path}: {exc}") from exc


def save_settings(settings: Settings) -> None:
    """Persist *settings* atomically to ``config.json``."""
    data = settings.model_dump(mode="json")
    atomic_write(_settings_path(), json.dumps(data, indent=2) + "\n")


def update_settings(key: str, value: str) -> Settings:
    """Set a single settings field from its string form and save.

    Args:
        key: Field name of :class:`~bmwid.models.Settings`.
        value: New value; pydantic coerces it to the field type.

    Returns:
        The saved settings.

    Raises:
        ConfigError: If *key* is unknown or *value* fails validation.
    """
    if key not in Settings.model_fields:
        known = ", ".join(sorted(Settings.model_fields))
        raise ConfigError(f"Unknown setting '{key}'. Known settings: {known}")
    data: dict[str, Any] = load_settings().model_dump()
    data[key] = value
    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{key}': {exc}") from exc
    save_settings(settings)
    return settings


# --- Precedence resolution ---


def resolve_settings(
    cli_region: Optional[str] = None,
    cli_timeout: Optional[float] = None,
) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_region``, ``cli_timeout``)
        2. Environment variables (``BMWID_REGION``, ``BMWID_TIMEOUT``,
           ``BMWID_STORE``)
        3. ``config.json``
        4. Built-in defaults

    Raises:
        ConfigError: If the settings file or an environment override is
            invalid.
    """
    data: dict[str, Any] = load_settings().model_dump()

    env_overrides = {
        "region": os.environ.get(ENV_REGION),
        "timeout": os.environ.get(ENV_TIMEOUT),
        "store_path": os.environ.get(ENV_STORE),
    }
    data.update({k: v for k, v in env_overrides.items() if v})

    if cli_region:
        data["region"] = cli_region
    if cli_timeout is not None:
        data["timeout"] = cli_timeout

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
