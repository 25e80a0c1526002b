"""
Persistent credential storage.

Exactly two values are persisted: the access token and the serialized
user-info record. They are written and cleared together.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from shared.logging import clear_context, get_logger, set_user_context


class KeyValueStore(Protocol):
    """Minimal string store, shaped like browser local storage."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store; nothing survives a restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Store backed by a single JSON file, rewritten atomically on change."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = get_logger("resource_access.storage")

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fp:
                data = json.load(fp)
        except (OSError, ValueError) as exc:
            self.logger.warning("Unreadable credential store, ignoring", path=str(self.path), error=str(exc))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fp:
                json.dump(data, fp)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class AuthStore:
    """Access token and user record on top of a key/value store."""

    TOKEN_KEY = "accessToken"
    USER_INFO_KEY = "userInfo"

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store if store is not None else MemoryKeyValueStore()
        self.logger = get_logger("resource_access.auth")

    def get_access_token(self) -> Optional[str]:
        return self.store.get_item(self.TOKEN_KEY) or None

    def get_user_info(self) -> Optional[Dict[str, Any]]:
        raw = self.store.get_item(self.USER_INFO_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            self.logger.warning("Discarding malformed user record")
            return None

    def set_auth_data(self, access_token: str, user_info: Dict[str, Any]) -> None:
        self.store.set_item(self.TOKEN_KEY, access_token)
        self.store.set_item(self.USER_INFO_KEY, json.dumps(user_info))
        user_id = user_info.get("id")
        if user_id is not None:
            set_user_context(str(user_id))

    def clear_auth_data(self) -> None:
        self.store.remove_item(self.TOKEN_KEY)
        self.store.remove_item(self.USER_INFO_KEY)
        clear_context()
        self.logger.info("Cleared stored credentials")

    def is_authenticated(self) -> bool:
        return bool(self.get_access_token() and self.get_user_info())


def create_auth_store(storage_path: Optional[str] = None) -> AuthStore:
    """Pick the file-backed store when a path is configured."""
    if storage_path:
        return AuthStore(JsonFileKeyValueStore(storage_path))
    return AuthStore()
