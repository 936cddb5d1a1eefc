from __future__ import annotations
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from common.log import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_KEY = "accessToken"


class KeyValueStore(Protocol):
    """Blocking string key-value store"""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Key-value store persisted as one JSON object on disk"""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or (Path.home() / ".chatline" / "storage.json")
        self._data: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self.path, e)
            return
        if isinstance(data, dict):
            self._data = {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # temp file + rename so a crash never leaves half a file
        fd, tmp_path = tempfile.mkstemp(prefix=f"{self.path.stem}_", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._save()


class TokenStore:
    """Holds the single access credential"""

    def __init__(self, store: KeyValueStore, key: str = ACCESS_TOKEN_KEY) -> None:
        self.store = store
        self.key = key

    def get(self) -> Optional[str]:
        return self.store.get(self.key) or None

    def set(self, token: str) -> None:
        self.store.set(self.key, token)

    def clear(self) -> None:
        self.store.delete(self.key)
