"""Обработчики MCP-инструментов."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from app.tools.registry import ToolHandler, ToolResponse

logger = logging.getLogger("mcp_echo_server.tools.handlers")

ECHO_FALLBACK_TEXT = "No message provided"


def _tool_ok(
    *,
    content: Optional[List[Dict[str, Any]]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ToolResponse:
    payload: ToolResponse = {
        "content": content or [],
        "isError": False,
    }
    if metadata:
        payload["metadata"] = metadata
    return payload


def _tool_error(message: str, *, metadata: Optional[Dict[str, Any]] = None) -> ToolResponse:
    payload: ToolResponse = {
        "content": [{"type": "text", "text": message}],
        "isError": True,
    }
    if metadata:
        payload["metadata"] = metadata
    return payload


def _handle_echo(arguments: Dict[str, Any]) -> ToolResponse:
    # Кривые аргументы не ошибка: отвечаем фиксированным текстом.
    message = arguments.get("message") if isinstance(arguments, dict) else None
    if not isinstance(message, str):
        logger.debug("echo called without a string message: %r", message)
        message = ECHO_FALLBACK_TEXT
    return _tool_ok(content=[{"type": "text", "text": message}])


TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "echo": _handle_echo,
}


__all__ = [
    "ECHO_FALLBACK_TEXT",
    "TOOL_HANDLERS",
    "_handle_echo",
    "_tool_error",
    "_tool_ok",
]
