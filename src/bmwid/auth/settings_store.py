"""Persistent token store keyed by ``"<provider>.<username>"``.

:class:`SettingsStore` is the interface :class:`~bmwid.auth.identity.Identity`
talks to.  Two implementations ship with the package:

- :class:`FileSettingsStore` -- one JSON document (by default
  ``~/.local/share/bmwid/settings.json``) mapping keys to serialised
  :class:`~bmwid.models.Token` records.  Writes are atomic and the file is
  created with ``0o600`` permissions so tokens are never world-readable.
- :class:`MemorySettingsStore` -- a dict, for embedding and tests.

Every :meth:`~SettingsStore.set` overwrites the previous record for the key.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from bmwid.config import atomic_write, default_store_path
from bmwid.exceptions import PersistenceError
from bmwid.models import Token

logger = logging.getLogger(__name__)


class SettingsStore(ABC):
    """Key/value store for token records."""

    @abstractmethod
    def get(self, key: str) -> Optional[Token]:
        """Return the token stored under *key*, or ``None`` if absent or unreadable."""
        ...

    @abstractmethod
    def set(self, key: str, token: Token) -> None:
        """Store *token* under *key*, replacing any previous record.

        Raises:
            PersistenceError: If the record could not be written.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove the record for *key*. Returns ``True`` if one existed."""
        ...


class MemorySettingsStore(SettingsStore):
    """In-process store. Records are copied in and out."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Token]:
        data = self._records.get(key)
        if data is None:
            return None
        return Token.model_validate(data)

    def set(self, key: str, token: Token) -> None:
        self._records[key] = token.model_dump(mode="json")

    def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._records)


class FileSettingsStore(SettingsStore):
    """JSON-file backed store.

    Args:
        path: File to use. Defaults to :func:`~bmwid.config.default_store_path`.

    Example::

        store = FileSettingsStore()
        store.set("bmw.alice", Token(access_token="AT1", refresh_token="RT1"))
        assert store.get("bmw.alice").access_token == "AT1"
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else default_store_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """The filesystem path of the store document."""
        return self._path

    def get(self, key: str) -> Optional[Token]:
        with self._lock:
            data = self._read().get(key)
        if data is None:
            return None
        try:
            return Token.model_validate(data)
        except ValidationError as exc:
            logger.debug("Ignoring unreadable token record %s: %s", key, exc)
            return None

    def set(self, key: str, token: Token) -> None:
        with self._lock:
            records = self._read()
            records[key] = token.model_dump(mode="json")
            self._write(records)
        logger.debug("Stored token record %s", key)

    def delete(self, key: str) -> bool:
        with self._lock:
            records = self._read()
            if key not in records:
                return False
            del records[key]
            self._write(records)
        return True

    def _read(self) -> dict[str, Any]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.debug("Token store %s unreadable: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, records: dict[str, Any]) -> None:
        text = json.dumps(records, indent=2, sort_keys=True) + "\n"
        try:
            atomic_write(self._path, text, mode=0o600)
        except OSError as exc:
            raise PersistenceError(f"Cannot write token store {self._path}: {exc}") from exc
