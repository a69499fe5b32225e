# backend/tenantauth/core/local_storage.py
"""
Client-side key/value storage.

The portal keeps the tenant client-profile session outside the identity
backend, in local storage under a single ``clientProfile`` key. This module
provides that storage as a small JSON file of string values, an in-memory
variant scoped to one HTTP caller, and a typed store for the client-profile
session on top of either.

An unreadable file (bad UTF-8, bad JSON, not an object) is reset to empty,
so a corrupt file can never keep a caller stuck or crash startup.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tenantauth.exceptions import ClientProfileSessionError
from tenantauth.schemas.auth import ClientProfileSession

logger = logging.getLogger(__name__)

CLIENT_PROFILE_KEY = "clientProfile"


class LocalStorage:
    """String key/value storage persisted as one JSON object on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_all(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError:
            return self._discard_unreadable("is not valid UTF-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return self._discard_unreadable("is not valid JSON")
        if not isinstance(data, dict):
            return self._discard_unreadable("is not a JSON object")
        return data

    def _discard_unreadable(self, reason: str) -> dict[str, Any]:
        logger.warning(f"Local storage file {self.path} {reason}; discarding its contents.")
        self._write_all({})
        return {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        """
        Return the stored string for ``key``, or None when it is absent.

        Values written by something other than ``set_item`` may not be
        strings; those read back as their JSON text so callers can reject
        and remove them like any other malformed value.
        """
        data = self._read_all()
        if key not in data:
            return None
        value = data[key]
        return value if isinstance(value, str) else json.dumps(value)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


class MemoryStorage(LocalStorage):
    """Same interface as ``LocalStorage``, held in memory for one caller."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.path = None
        self._data: dict[str, Any] = dict(initial or {})

    def _read_all(self) -> dict[str, Any]:
        return dict(self._data)

    def _write_all(self, data: dict[str, Any]) -> None:
        self._data = dict(data)


def parse_client_profile_session(raw: str) -> ClientProfileSession:
    try:
        return ClientProfileSession.model_validate_json(raw)
    except ValidationError as e:
        raise ClientProfileSessionError(f"Malformed client profile session: {e}") from e


class ClientProfileSessionStore:
    """Typed access to the persisted client-profile session."""

    def __init__(self, storage: LocalStorage, key: str = CLIENT_PROFILE_KEY):
        self.storage = storage
        self.key = key

    def load(self) -> ClientProfileSession | None:
        """
        Return the persisted session, or None.

        Malformed data is removed from storage and treated as no session.
        """
        raw = self.storage.get_item(self.key)
        if raw is None:
            return None
        try:
            return parse_client_profile_session(raw)
        except ClientProfileSessionError as e:
            logger.error(f"Error parsing client profile session, discarding it: {e}")
            self.storage.remove_item(self.key)
            return None

    def save(self, session: ClientProfileSession) -> None:
        self.storage.set_item(self.key, session.model_dump_json())

    def clear(self) -> None:
        self.storage.remove_item(self.key)
