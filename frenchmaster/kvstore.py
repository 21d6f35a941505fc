"""String key/value persistence used for exposure logs and user-content mirrors.

Values are JSON-encoded strings, the same way a browser's localStorage holds
them. ``JsonFileKeyValueStore`` keeps every key in one JSON object on disk;
``MemoryKeyValueStore`` is the in-process equivalent.
"""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import MalformedPersistedState
from .logging import get_logger

LOG = get_logger("kvstore")


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class JsonFileKeyValueStore(MemoryKeyValueStore):
    """Key/value store persisted as a single JSON object file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            LOG.error(f"Key/value file {self.path} is unreadable, starting empty: {exc}")
            return {}
        if not isinstance(data, dict):
            LOG.error(f"Key/value file {self.path} does not hold an object, starting empty")
            return {}
        return {str(key): value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = dict(self._data)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=".kv-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, ensure_ascii=False, indent=1)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        super().remove_item(key)
        self._flush()


KeyValueStore = MemoryKeyValueStore


def decode_json(raw: Optional[str], key: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedPersistedState(f"{key}: {exc}") from exc


def read_json(store: KeyValueStore, key: str, default: Any, expected: type = object) -> Any:
    """Decode ``key``; missing or malformed data yields ``default``."""
    try:
        value = decode_json(store.get_item(key), key)
    except MalformedPersistedState as exc:
        LOG.error(f"Error parsing persisted state, resetting: {exc}")
        return default
    if value is None:
        return default
    if not isinstance(value, expected):
        LOG.error(f"Persisted state {key} has unexpected type {type(value).__name__}, resetting")
        return default
    return value


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set_item(key, json.dumps(value, ensure_ascii=False))
