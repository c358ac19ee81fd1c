"""Глобальные константы и настройки MCP Echo Server."""

from __future__ import annotations

import logging
import os
from typing import Dict, List

logger = logging.getLogger("mcp_echo_server.core.config")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Некорректное значение %s=%r, используем %s", name, raw, default)
        return default


def _get_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    items = [item.strip() for item in raw.split(",")]
    return [item for item in items if item]


PROTOCOL_VERSION = "2025-03-26"
SERVER_INFO: Dict[str, str] = {
    "name": "echo-server",
    "version": os.getenv("APP_VERSION", "1.0.0"),
}
SERVER_CAPABILITIES: Dict[str, Dict[str, object]] = {
    "tools": {
        "listChanged": False,
    },
}

# Заголовок, в котором живёт идентификатор сессии (в обе стороны).
SESSION_HEADER = "mcp-session-id"

HOST = os.getenv("MCP_HOST", "0.0.0.0")
PORT = _get_int("MCP_PORT", 3000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ALLOWED_ORIGINS: List[str] = _get_list(
    "MCP_CORS_ORIGINS",
    ["http://localhost:5173", "http://localhost:3000"],
)
CORS_ALLOWED_METHODS: List[str] = ["GET", "POST", "OPTIONS", "DELETE"]
CORS_ALLOWED_HEADERS: List[str] = [
    "Content-Type",
    "Authorization",
    SESSION_HEADER,
    "X-Requested-With",
    "Accept",
    "Origin",
]
CORS_EXPOSED_HEADERS: List[str] = [SESSION_HEADER]

SSE_KEEPALIVE_SECONDS = max(1, _get_int("MCP_SSE_KEEPALIVE_SECONDS", 15))

__all__ = [
    "CORS_ALLOWED_HEADERS",
    "CORS_ALLOWED_METHODS",
    "CORS_ALLOWED_ORIGINS",
    "CORS_EXPOSED_HEADERS",
    "HOST",
    "LOG_LEVEL",
    "PORT",
    "PROTOCOL_VERSION",
    "SERVER_CAPABILITIES",
    "SERVER_INFO",
    "SESSION_HEADER",
    "SSE_KEEPALIVE_SECONDS",
]
