from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from app.client import DEFAULT_URL, EchoClient, EchoClientConfig, EchoClientError
from app.core.session import SessionRegistry
from app.tools.handlers import ECHO_FALLBACK_TEXT


def _echo_client(client: TestClient) -> EchoClient:
    return EchoClient(EchoClientConfig(url="/mcp"), http_client=client)


def test_client_handshake_and_echo(client: TestClient, registry: SessionRegistry) -> None:
    echo = _echo_client(client)

    assert echo.echo("round trip") == "round trip"
    assert echo.echo("") == ""
    assert echo.echo() == ECHO_FALLBACK_TEXT
    assert echo.server_info["name"] == "echo-server"
    assert registry.count() == 1
    assert registry.lookup(echo.session_id) is not None


def test_client_close_deletes_session(client: TestClient, registry: SessionRegistry) -> None:
    with _echo_client(client) as echo:
        echo.echo("hi")
        session_id = echo.session_id
        assert registry.count() == 1

    assert echo.session_id is None
    assert registry.lookup(session_id) is None
    assert client.get("/health").json()["activeSessions"] == 0


def test_client_lists_tools(client: TestClient) -> None:
    echo = _echo_client(client)

    tools = echo.list_tools()

    assert [tool["name"] for tool in tools] == ["echo"]


def test_client_raises_on_unknown_tool(client: TestClient) -> None:
    echo = _echo_client(client)

    with pytest.raises(EchoClientError) as excinfo:
        echo.call_tool("missing")

    assert excinfo.value.error is not None
    assert excinfo.value.error["code"] == -32601


def test_client_recovers_after_server_forgets_session(client: TestClient, registry: SessionRegistry) -> None:
    echo = _echo_client(client)
    echo.echo("first")
    old_session = echo.session_id

    registry.close_all()

    assert echo.echo("second") == "second"
    assert echo.session_id != old_session
    assert registry.count() == 1


def test_config_from_env(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setenv("ECHO_SERVER_URL", "http://echo.local/mcp")
    monkeypatch.setenv("ECHO_CLIENT_TIMEOUT_MS", "500")
    monkeypatch.setenv("ECHO_CLIENT_RETRY_LIMIT", "not-a-number")

    with caplog.at_level(logging.WARNING, logger="mcp_echo_server.client"):
        config = EchoClientConfig.from_env()

    assert config.url == "http://echo.local/mcp"
    assert config.timeout_ms == 500
    assert config.retry_limit == 0
    assert "Некорректное значение ECHO_CLIENT_RETRY_LIMIT='not-a-number', используем 0" in caplog.text


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ECHO_SERVER_URL", "ECHO_CLIENT_TIMEOUT_MS", "ECHO_CLIENT_RETRY_LIMIT"):
        monkeypatch.delenv(name, raising=False)

    config = EchoClientConfig.from_env()

    assert config == EchoClientConfig(url=DEFAULT_URL, timeout_ms=2000, retry_limit=0)
