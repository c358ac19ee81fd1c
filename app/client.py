"""Клиент для MCP Echo Server: handshake, вызов echo и закрытие сессии."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx

from app.core.config import PROTOCOL_VERSION, SESSION_HEADER

logger = logging.getLogger("mcp_echo_server.client")

DEFAULT_URL = "http://localhost:3000/mcp"


class EchoClientError(RuntimeError):
    """Ошибка обращения к серверу (HTTP-статус или JSON-RPC error)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, error: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


@dataclass(slots=True)
class EchoClientConfig:
    """Настройки клиента, получаемые из окружения."""

    url: str = DEFAULT_URL
    timeout_ms: int = 2000
    retry_limit: int = 0

    @classmethod
    def from_env(cls) -> "EchoClientConfig":
        url = os.getenv("ECHO_SERVER_URL") or DEFAULT_URL
        timeout_raw = os.getenv("ECHO_CLIENT_TIMEOUT_MS")
        retry_raw = os.getenv("ECHO_CLIENT_RETRY_LIMIT")

        timeout_ms = 2000
        if timeout_raw:
            try:
                timeout_ms = max(0, int(timeout_raw))
            except ValueError:
                logger.warning("Некорректное значение ECHO_CLIENT_TIMEOUT_MS=%r, используем 2000", timeout_raw)

        retry_limit = 0
        if retry_raw:
            try:
                retry_limit = max(0, int(retry_raw))
            except ValueError:
                logger.warning("Некорректное значение ECHO_CLIENT_RETRY_LIMIT=%r, используем 0", retry_raw)

        return cls(url=url, timeout_ms=timeout_ms, retry_limit=retry_limit)


class EchoClient:
    """Минимальный JSON-RPC клиент, который держит одну MCP-сессию.

    `http_client` можно подменить (например, `fastapi.testclient.TestClient`),
    тогда клиент ходит в приложение без сети.
    """

    def __init__(self, config: EchoClientConfig, *, http_client: Optional[httpx.Client] = None):
        self._config = config
        self._session_id: Optional[str] = None
        self._initialized = False
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=(config.timeout_ms / 1000) or None)
        self.server_info: Dict[str, Any] = {}

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def __enter__(self) -> "EchoClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Закрыть сессию на сервере (если была) и освободить HTTP-клиент."""
        try:
            if self._session_id:
                self.terminate_session()
        finally:
            if self._owns_client:
                self._client.close()

    def echo(self, message: Optional[str] = None) -> str:
        arguments: Dict[str, Any] = {}
        if message is not None:
            arguments["message"] = message
        result = self.call_tool("echo", arguments)
        content = result.get("content") or []
        texts = [block.get("text", "") for block in content if isinstance(block, dict) and block.get("type") == "text"]
        return "".join(texts)

    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._ensure_initialized()
        payload = {
            "jsonrpc": "2.0",
            "id": f"call-{uuid4().hex}",
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments or {}},
        }
        response, status_code = self._post(payload)
        error_obj = response.get("error")
        if error_obj:
            message = error_obj.get("message") or "server returned an error"
            raise EchoClientError(message, status_code=status_code, error=error_obj)
        return response.get("result") or {}

    def list_tools(self) -> list[Dict[str, Any]]:
        self._ensure_initialized()
        payload = {"jsonrpc": "2.0", "id": f"list-{uuid4().hex}", "method": "tools/list", "params": {}}
        response, _ = self._post(payload)
        return (response.get("result") or {}).get("tools") or []

    def terminate_session(self) -> None:
        if not self._session_id:
            return
        session_id = self._session_id
        logger.debug("terminate_session session=%s", session_id)
        response = self._client.delete(self._config.url, headers={SESSION_HEADER: session_id})
        self._session_id = None
        self._initialized = False
        if response.status_code >= 400:
            raise EchoClientError(
                f"DELETE returned {response.status_code}: {self._parse_response(response)}",
                status_code=response.status_code,
            )
        logger.debug("terminate_session done session=%s", session_id)

    # --- внутренние методы ---

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        self._send_initialize()
        self._send_initialized_notification()
        self._initialized = True
        logger.debug("_ensure_initialized done session=%s", self._session_id)

    def _send_initialize(self) -> None:
        payload = {
            "jsonrpc": "2.0",
            "id": f"init-{uuid4().hex}",
            "method": "initialize",
            "params": {
                "protocolVersion": PROTOCOL_VERSION,
                "clientInfo": {"name": "mcp-echo-client", "version": "1.0.0"},
                "capabilities": {},
            },
        }
        response, status = self._post(payload)
        if not self._session_id:
            raise EchoClientError("Server did not return a session ID.", status_code=status)
        self.server_info = (response.get("result") or {}).get("serverInfo") or {}

    def _send_initialized_notification(self) -> None:
        payload = {
            "jsonrpc": "2.0",
            "method": "notifications/initialized",
            "params": {},
        }
        _, status = self._post(payload)
        logger.debug("_send_initialized_notification status=%s", status)

    def _post(self, payload: Dict[str, Any]) -> tuple[Dict[str, Any], int]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id

        last_exc: Optional[Exception] = None
        attempts = max(1, self._config.retry_limit + 1)

        for _ in range(attempts):
            try:
                logger.debug("_post sending payload=%s headers=%s", payload, headers)
                response = self._client.post(self._config.url, json=payload, headers=headers)
            except httpx.TransportError as exc:
                last_exc = exc
                logger.debug("_post exception=%s", exc)
                continue

            session_id = response.headers.get(SESSION_HEADER)
            if session_id:
                self._session_id = session_id
                logger.debug("_post updated session from headers=%s", self._session_id)

            parsed = self._parse_response(response)
            if response.status_code >= 400:
                detail = parsed.get("error") if isinstance(parsed, dict) else parsed
                raise EchoClientError(
                    f"server returned {response.status_code}: {detail}",
                    status_code=response.status_code,
                    error=detail if isinstance(detail, dict) else None,
                )
            return parsed, response.status_code

        if last_exc:
            raise EchoClientError(f"request failed: {last_exc}") from last_exc

        raise EchoClientError("Unknown error (no response).")

    @staticmethod
    def _parse_response(response: httpx.Response) -> Dict[str, Any]:
        content_type = (response.headers.get("content-type") or "").lower()

        if "text/event-stream" in content_type:
            payload: Dict[str, Any] = {}
            for line in response.text.splitlines():
                if not line.startswith("data:"):
                    continue
                data_str = line[len("data:") :].strip()
                if not data_str:
                    continue
                try:
                    payload = json.loads(data_str)
                except json.JSONDecodeError:
                    payload = {"raw": data_str}
            return payload

        if not response.content:
            return {}

        try:
            return response.json()
        except json.JSONDecodeError:
            return {"raw": response.text}


__all__ = ["DEFAULT_URL", "EchoClient", "EchoClientConfig", "EchoClientError"]
