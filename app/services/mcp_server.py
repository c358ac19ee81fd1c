"""Обработка JSON-RPC сообщений MCP внутри одной сессии."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.core.config import PROTOCOL_VERSION, SERVER_CAPABILITIES, SERVER_INFO
from app.models.json_rpc import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    InitializeParams,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    SessionInfo,
    json_rpc_error,
)
from app.tools.handlers import TOOL_HANDLERS, _tool_error
from app.tools.registry import TOOLS, ToolHandler, ToolSpec

logger = logging.getLogger("mcp_echo_server.services.mcp_server")

# `tool-call` оставлен как старое имя метода, которым пользовались ранние клиенты.
TOOL_CALL_METHODS = frozenset({"tools/call", "tool-call"})


class McpServer:
    """Диспетчер MCP-методов, привязанный к транспорту одной сессии.

    Здесь нет ничего про HTTP: на вход приходит разобранный `JsonRpcRequest`,
    на выход уходит ответ, ошибка или `None` для уведомлений.
    """

    def __init__(
        self,
        *,
        tools: Optional[Dict[str, ToolSpec]] = None,
        tool_handlers: Optional[Dict[str, ToolHandler]] = None,
    ) -> None:
        self._tools = tools if tools is not None else TOOLS
        self._tool_handlers = tool_handlers if tool_handlers is not None else TOOL_HANDLERS
        self.session_info = SessionInfo()

    def handle(self, request: JsonRpcRequest, *, session_id: str) -> JsonRpcResponse | JsonRpcError | None:
        method = request.method
        params = request.params or {}

        if request.is_notification():
            self._handle_notification(method, session_id)
            return None

        if method == "initialize":
            return self._handle_initialize(params, request.id, session_id)
        if method == "ping":
            return JsonRpcResponse(result={}, id=request.id)
        if method == "tools/list":
            return self._handle_tools_list(request.id)
        if method in TOOL_CALL_METHODS:
            return self._handle_tools_call(params, request.id)

        return json_rpc_error(
            METHOD_NOT_FOUND,
            "Method not found",
            data={"method": method},
            request_id=request.id,
        )

    def _handle_notification(self, method: str, session_id: str) -> None:
        if method == "notifications/initialized":
            self.session_info.initialized = True
            logger.info("Session %s finished initialization", session_id)
            return
        logger.debug("Ignoring notification %s for session %s", method, session_id)

    def _handle_initialize(self, params: Dict[str, Any], request_id: Any, session_id: str) -> JsonRpcResponse | JsonRpcError:
        if self.session_info.protocol_version is not None:
            logger.warning("Session %s: repeated initialize rejected", session_id)
            return json_rpc_error(INVALID_REQUEST, "Server already initialized", request_id=request_id)
        try:
            parsed = InitializeParams.model_validate(params)
        except ValidationError as exc:
            return json_rpc_error(
                INVALID_PARAMS,
                "Invalid initialize params",
                data=exc.errors(include_url=False, include_context=False),
                request_id=request_id,
            )

        self.session_info = SessionInfo(
            protocol_version=parsed.protocolVersion or PROTOCOL_VERSION,
            client_info=parsed.clientInfo,
            capabilities=parsed.capabilities,
        )
        logger.info("Session %s initialized by client %s", session_id, parsed.clientInfo.get("name", "<unknown>"))
        result = {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": SERVER_INFO,
            "capabilities": SERVER_CAPABILITIES,
            "sessionId": session_id,
        }
        return JsonRpcResponse(result=result, id=request_id)

    def _handle_tools_list(self, request_id: Any) -> JsonRpcResponse:
        result = {
            "tools": [spec.as_mcp_dict() for spec in self._tools.values()],
        }
        return JsonRpcResponse(result=result, id=request_id)

    def _handle_tools_call(self, params: Dict[str, Any], request_id: Any) -> JsonRpcResponse | JsonRpcError:
        name = params.get("name")
        if not isinstance(name, str) or name not in self._tool_handlers:
            return json_rpc_error(
                METHOD_NOT_FOUND,
                "Tool not found",
                data={"available": list(self._tool_handlers.keys())},
                request_id=request_id,
            )
        arguments = params.get("arguments")
        if not isinstance(arguments, dict):
            arguments = {}

        handler = self._tool_handlers[name]
        try:
            result = handler(arguments)
        except Exception as exc:
            # Сбой инструмента отдаём клиенту как isError, а не как сбой протокола.
            logger.exception("Tool %s failed", name)
            result = _tool_error(f"Tool '{name}' failed: {exc}")
        return JsonRpcResponse(result=result, id=request_id)


__all__ = ["McpServer", "TOOL_CALL_METHODS"]
