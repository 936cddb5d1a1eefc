import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from chat.cli import app
from common.config import ClientConfig, load_config
from common.envelope import Envelope
from common.log import ContextFormatter, log_envelope


def test_ws_url_follows_http_scheme():
    assert ClientConfig(server_url="http://localhost:8080").ws_url == "ws://localhost:8080/ws"
    assert ClientConfig(server_url="https://chat.example.com/api/").ws_url == "wss://chat.example.com/api/ws"


def test_load_config_reads_yaml_and_env(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("server_url: http://chat.local:9000\nprivate_route: /chat.html\nrequest_timeout: 3\n")
    monkeypatch.setenv("CHATLINE_STORAGE", str(tmp_path / "store.json"))
    monkeypatch.delenv("CHATLINE_SERVER", raising=False)

    config = load_config(path)

    assert config.server_url == "http://chat.local:9000"
    assert config.private_route == "/chat.html"
    assert config.request_timeout == 3
    assert config.storage_path == tmp_path / "store.json"


def test_env_server_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("server_url: http://from-file\n")
    monkeypatch.setenv("CHATLINE_SERVER", "http://from-env")

    assert load_config(path).server_url == "http://from-env"


def test_unknown_config_key_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("sever_url: http://typo\n")

    with pytest.raises(ValueError):
        load_config(path)


def test_explicit_missing_config_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_context_formatter_prefixes_extras():
    record = logging.LogRecord("chat", logging.INFO, __file__, 1, "Dropped", None, None)
    record.event_kind = "ping"
    record.connection_id = "ws-1"

    line = ContextFormatter("%(message)s").format(record)

    assert line == "[kind=ping conn=ws-1] Dropped"


def test_log_envelope_attaches_kind(caplog):
    logger = logging.getLogger("tests.log_envelope")
    with caplog.at_level(logging.INFO, logger="tests.log_envelope"):
        log_envelope(logger, "info", "Sent", Envelope("send_message", {"text": "x"}), connection_id="ws-9")

    record = caplog.records[-1]
    assert record.event_kind == "send_message"
    assert record.connection_id == "ws-9"


def _env(tmp_path: Path) -> dict:
    return {
        "CHATLINE_STORAGE": str(tmp_path / "storage.json"),
        "CHATLINE_SERVER": "http://127.0.0.1:1",
        "HOME": str(tmp_path),
    }


def test_cli_whoami_without_login(tmp_path):
    result = CliRunner().invoke(app, ["whoami"], env=_env(tmp_path))

    assert result.exit_code == 1
    assert "Not logged in" in result.output


def test_cli_logout_forgets_token(tmp_path):
    storage = tmp_path / "storage.json"
    storage.write_text(json.dumps({"accessToken": "abc"}))

    result = CliRunner().invoke(app, ["logout"], env=_env(tmp_path))

    assert result.exit_code == 0, result.output
    assert json.loads(storage.read_text()) == {}
