"""Key-value configuration stores backing the certificate registry."""

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from .cert_utils import write_file_atomic

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    """Host application's key-value configuration store."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> Any: ...


class MemoryConfigStore:
    """Dict-backed store for embedding and tests."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> Any:
        self.data[key] = value
        return value


class JsonConfigStore:
    """Store persisted as one JSON document, rewritten atomically on every set."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"config file is not valid JSON: {self.path}") from e
        if not isinstance(data, dict):
            raise ValueError(f"config file must contain a JSON object: {self.path}")
        return data

    def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key)
        # Hand out copies so callers cannot mutate state behind set()
        return json.loads(json.dumps(value)) if value is not None else default

    def set(self, key: str, value: Any) -> Any:
        self._data[key] = value
        write_file_atomic(self.path, json.dumps(self._data, indent=2).encode())
        logger.debug("Saved %s to %s", key, self.path)
        return value
