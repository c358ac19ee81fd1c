"""Транспорт (канал) MCP-сессии: запрос/ответ по POST и SSE-поток по GET."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Optional

from app.models.json_rpc import JsonRpcError, JsonRpcRequest, JsonRpcResponse
from app.services.mcp_server import McpServer

logger = logging.getLogger("mcp_echo_server.core.transport")

CloseCallback = Callable[["Transport"], None]
StreamEvent = Dict[str, str]


class TransportClosedError(RuntimeError):
    """Попытка работать с уже закрытым каналом."""


class StreamConflictError(RuntimeError):
    """У сессии уже открыт SSE-поток."""


class Transport(ABC):
    """Канал, принадлежащий ровно одной сессии.

    `close()` обязателен для любой реализации (допустим no-op): реестр и
    диспетчер вызывают его без проверок наличия.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._on_close: Optional[CloseCallback] = None

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    def set_on_close(self, callback: Optional[CloseCallback]) -> None:
        self._on_close = callback

    @abstractmethod
    def handle_message(self, request: JsonRpcRequest) -> JsonRpcResponse | JsonRpcError | None:
        """Обработать входящее сообщение; `None` означает уведомление без ответа."""

    @abstractmethod
    def open_stream(self) -> AsyncIterator[StreamEvent]:
        """Открыть долгоживущий поток событий в формате `{"event": ..., "data": ...}`."""

    @abstractmethod
    def close(self) -> None:
        ...

    def _notify_closed(self) -> None:
        callback, self._on_close = self._on_close, None
        if callback is None:
            return
        try:
            callback(self)
        except Exception:
            logger.exception("on_close hook failed for session %s", self.session_id)


def to_sse_event(message: Dict[str, Any], *, event: str = "message") -> StreamEvent:
    return {"event": event, "data": json.dumps(message, ensure_ascii=False)}


class StreamableHttpTransport(Transport):
    """Транспорт в стиле MCP streamable HTTP поверх одного `McpServer`.

    Ответы на POST возвращаются синхронно; серверные сообщения, отправленные
    через `send()`, попадают в SSE-поток, если он открыт. Keepalive и реакцию
    на остановку сервера берёт на себя `EventSourceResponse`.
    """

    def __init__(self, session_id: str, *, server: Optional[McpServer] = None) -> None:
        super().__init__(session_id)
        self.server = server or McpServer()
        self._closed = False
        self._queue: Optional[asyncio.Queue] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stream_open(self) -> bool:
        return self._queue is not None

    def handle_message(self, request: JsonRpcRequest) -> JsonRpcResponse | JsonRpcError | None:
        if self._closed:
            raise TransportClosedError(f"Session {self.session_id} is closed")
        logger.debug("Session %s <- %s (id=%r)", self.session_id, request.method, request.id)
        return self.server.handle(request, session_id=self.session_id)

    def send(self, message: Dict[str, Any]) -> bool:
        """Положить серверное сообщение в открытый поток. Возвращает False, если потока нет."""
        if self._closed:
            raise TransportClosedError(f"Session {self.session_id} is closed")
        if self._queue is None:
            return False
        self._queue.put_nowait(message)
        return True

    def open_stream(self) -> AsyncIterator[StreamEvent]:
        if self._closed:
            raise TransportClosedError(f"Session {self.session_id} is closed")
        if self._queue is not None:
            raise StreamConflictError(f"Session {self.session_id} already has an open stream")
        return self._stream()

    async def _stream(self) -> AsyncIterator[StreamEvent]:
        # Поток занимается только при первом чтении тела ответа.
        if self._closed or self._queue is not None:
            logger.warning("Session %s: event stream already taken or closed", self.session_id)
            return
        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue
        logger.info("Session %s opened event stream", self.session_id)
        try:
            while not self._closed:
                message = await queue.get()
                if message is None:
                    break
                yield to_sse_event(message)
        finally:
            if self._queue is queue:
                self._queue = None
            logger.info("Session %s event stream ended", self.session_id)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._queue is not None:
            self._queue.put_nowait(None)
        logger.info("Session closed: %s", self.session_id)
        self._notify_closed()


__all__ = [
    "CloseCallback",
    "StreamConflictError",
    "StreamEvent",
    "StreamableHttpTransport",
    "Transport",
    "TransportClosedError",
    "to_sse_event",
]
