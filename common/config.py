"""
Client configuration.

Values come from, in increasing precedence: defaults, a YAML file,
environment variables (CHATLINE_SERVER, CHATLINE_STORAGE) and CLI options.

Example config.yaml:

    server_url: http://localhost:8080
    private_route: /chat
    request_timeout: 5
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import yaml

from common.log import get_logger

logger = get_logger(__name__)


def default_config_path() -> Path:
    return Path.home() / ".chatline" / "config.yaml"


@dataclass(frozen=True)
class ClientConfig:
    server_url: str = "http://localhost:8080"
    ws_path: str = "/ws"
    public_route: str = "/"
    private_route: str = "/chat"
    storage_path: Path = Path.home() / ".chatline" / "storage.json"
    request_timeout: float = 10.0
    ping_interval: float = 15.0
    ping_timeout: float = 45.0

    @property
    def ws_url(self) -> str:
        """WebSocket endpoint derived from the HTTP base URL"""
        parts = urlsplit(self.server_url)
        scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
        path = parts.path.rstrip("/") + self.ws_path
        return urlunsplit((scheme, parts.netloc, path, "", ""))

    def with_overrides(self, **overrides: Any) -> ClientConfig:
        """Copy with the non-None overrides applied"""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "storage_path" in values:
            values["storage_path"] = Path(values["storage_path"]).expanduser()
        return replace(self, **values)


def _from_mapping(data: Dict[str, Any]) -> ClientConfig:
    known = {f.name for f in fields(ClientConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")
    return ClientConfig().with_overrides(**data)


def load_config(path: Optional[Path] = None) -> ClientConfig:
    """
    Load the client config.

    A missing file is not an error when no explicit path was given; the
    defaults are used instead.
    """
    config_path = path or default_config_path()
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_path}: expected a mapping at top level")
        config = _from_mapping(data)
        logger.debug("Loaded config from %s", config_path)
    elif path is not None:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config = ClientConfig()

    return config.with_overrides(
        server_url=os.getenv("CHATLINE_SERVER"),
        storage_path=os.getenv("CHATLINE_STORAGE"),
    )
