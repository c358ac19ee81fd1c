"""Pydantic-модели для JSON-RPC сообщений и состояния MCP-сессии."""

from __future__ import annotations

from typing import Any, Dict, Optional, Literal

from pydantic import BaseModel, Field

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_CONFLICT = -32000


class JsonRpcRequest(BaseModel):
    """Стандартный JSON-RPC 2.0 запрос (или уведомление, если `id` отсутствует)."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[Dict[str, Any]] = None
    id: Optional[Any] = None

    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class JsonRpcResponse(BaseModel):
    """Успешный JSON-RPC 2.0 ответ."""

    jsonrpc: Literal["2.0"] = "2.0"
    result: Any = None
    id: Optional[Any] = None


class JsonRpcErrorObj(BaseModel):
    """Структура ошибки JSON-RPC 2.0."""

    code: int
    message: str
    data: Optional[Any] = None


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 ответ с ошибкой."""

    jsonrpc: Literal["2.0"] = "2.0"
    error: JsonRpcErrorObj
    id: Optional[Any] = None


class InitializeParams(BaseModel):
    """Параметры метода `initialize` MCP."""

    protocolVersion: Optional[str] = None
    clientInfo: Dict[str, Any] = Field(default_factory=dict)
    capabilities: Dict[str, Any] = Field(default_factory=dict)


class SessionInfo(BaseModel):
    """Что клиент сообщил о себе при `initialize`."""

    initialized: bool = False
    protocol_version: Optional[str] = None
    client_info: Dict[str, Any] = Field(default_factory=dict)
    capabilities: Dict[str, Any] = Field(default_factory=dict)


def json_rpc_error(code: int, message: str, *, data: Any = None, request_id: Any = None) -> JsonRpcError:
    return JsonRpcError(
        error=JsonRpcErrorObj(code=code, message=message, data=data),
        id=request_id,
    )


def dump_message(message: JsonRpcResponse | JsonRpcError) -> Dict[str, Any]:
    """Сериализует ответ, не теряя `id: null`, но без пустого `error.data`."""
    payload = message.model_dump()
    error = payload.get("error")
    if isinstance(error, dict) and error.get("data") is None:
        error.pop("data", None)
    return payload


__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "SERVER_CONFLICT",
    "InitializeParams",
    "JsonRpcError",
    "JsonRpcErrorObj",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "SessionInfo",
    "dump_message",
    "json_rpc_error",
]
