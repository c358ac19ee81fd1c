"""Реестр MCP-сессий: идентификатор сессии -> транспорт."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from app.core.transport import Transport

logger = logging.getLogger("mcp_echo_server.core.session")


class DuplicateSessionError(KeyError):
    """Сессия с таким идентификатором уже зарегистрирована."""


class SessionRegistry:
    """Потокобезопасная таблица активных сессий одного процесса.

    Создаётся при старте приложения и передаётся в диспетчер явно, поэтому в
    одном процессе (например, в тестах) может жить несколько независимых реестров.
    """

    def __init__(self) -> None:
        self._transports: Dict[str, Transport] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and self.lookup(session_id) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._transports)

    def create(self, factory: Callable[[str], Transport]) -> Transport:
        """Выдать новый идентификатор и зарегистрировать канал под одной блокировкой."""
        with self._lock:
            session_id = str(uuid4())
            while session_id in self._transports:
                session_id = str(uuid4())
            transport = factory(session_id)
            self._transports[session_id] = transport
        logger.info("Session initialized: %s", session_id)
        return transport

    def lookup(self, session_id: Optional[str]) -> Optional[Transport]:
        if not session_id:
            return None
        with self._lock:
            return self._transports.get(session_id)

    def insert(self, session_id: str, transport: Transport) -> None:
        with self._lock:
            if session_id in self._transports:
                raise DuplicateSessionError(session_id)
            self._transports[session_id] = transport
        logger.info("Session initialized: %s", session_id)

    def remove(self, session_id: Optional[str]) -> Optional[Transport]:
        if not session_id:
            return None
        with self._lock:
            transport = self._transports.pop(session_id, None)
        if transport is not None:
            logger.info("Session removed: %s", session_id)
        return transport

    def close_all(self) -> None:
        """Закрыть все каналы и очистить реестр (вызывается один раз при остановке)."""
        with self._lock:
            transports: List[Transport] = list(self._transports.values())
            self._transports.clear()
        logger.info("Closing %d active session(s)", len(transports))
        for transport in transports:
            try:
                transport.close()
            except Exception:
                logger.exception("Failed to close session %s", transport.session_id)


__all__ = ["DuplicateSessionError", "SessionRegistry"]
