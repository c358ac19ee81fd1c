"""Маршрутизация HTTP-запросов к /mcp по сессиям.

Каждый запрос сначала сводится к одному из двух состояний: `ActiveSession`
(идентификатор зарегистрирован) или `NoSession` (заголовка нет либо он не
известен реестру). Дальше всё решает таблица "глагол x состояние":

    POST    ActiveSession -> сообщение уходит в существующий канал
            NoSession     -> новый канал, регистрация, заголовок mcp-session-id
    GET     ActiveSession -> SSE-поток канала
            NoSession     -> 400
    DELETE  ActiveSession -> close() канала и удаление из реестра
            NoSession     -> 400
    OPTIONS всегда 200, реестр не трогаем
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional, Union

from pydantic import ValidationError

from app.core.config import CORS_ALLOWED_HEADERS, CORS_ALLOWED_METHODS, SESSION_HEADER
from app.core.session import SessionRegistry
from app.core.transport import StreamableHttpTransport, StreamConflictError, StreamEvent, Transport
from app.models.json_rpc import (
    INVALID_REQUEST,
    PARSE_ERROR,
    SERVER_CONFLICT,
    JsonRpcRequest,
    dump_message,
    json_rpc_error,
)

logger = logging.getLogger("mcp_echo_server.api.dispatcher")

TransportFactory = Callable[[str], Transport]

INVALID_SESSION_BODY: Dict[str, Any] = {"error": "Missing or invalid session"}


@dataclass(frozen=True)
class NoSession:
    requested_id: Optional[str] = None


@dataclass(frozen=True)
class ActiveSession:
    session_id: str
    transport: Transport


SessionState = Union[NoSession, ActiveSession]


@dataclass
class DispatchResult:
    """Что нужно отправить клиенту: статус, заголовки и либо JSON, либо поток."""

    status_code: int = 200
    body: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)
    stream: Optional[AsyncIterator[StreamEvent]] = None

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


def _default_transport_factory(session_id: str) -> Transport:
    return StreamableHttpTransport(session_id)


class RequestDispatcher:
    """Реализует протокол сессий поверх явно переданного `SessionRegistry`."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.registry = registry
        self._transport_factory = transport_factory or _default_transport_factory

    def resolve(self, session_id: Optional[str]) -> SessionState:
        transport = self.registry.lookup(session_id)
        if transport is None or transport.closed:
            return NoSession(requested_id=session_id or None)
        return ActiveSession(session_id=transport.session_id, transport=transport)

    # --- POST ---

    def post(self, session_id: Optional[str], raw: bytes) -> DispatchResult:
        try:
            raw_body = json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            error = json_rpc_error(PARSE_ERROR, "Parse error")
            return DispatchResult(status_code=400, body=dump_message(error))
        try:
            request = JsonRpcRequest.model_validate(raw_body)
        except ValidationError as exc:
            request_id = raw_body.get("id") if isinstance(raw_body, dict) else None
            error = json_rpc_error(
                INVALID_REQUEST,
                "Invalid Request",
                data=exc.errors(include_url=False, include_context=False, include_input=False),
                request_id=request_id,
            )
            return DispatchResult(status_code=400, body=dump_message(error))

        state = self.resolve(session_id)
        headers: Dict[str, str] = {}
        if isinstance(state, NoSession):
            transport = self._create_session()
            headers[SESSION_HEADER] = transport.session_id
            if state.requested_id:
                logger.info(
                    "Unknown session %s, issued new session %s",
                    state.requested_id,
                    transport.session_id,
                )
        else:
            transport = state.transport

        reply = transport.handle_message(request)
        if reply is None:
            return DispatchResult(status_code=202, headers=headers)
        return DispatchResult(status_code=200, body=dump_message(reply), headers=headers)

    def _create_session(self) -> Transport:
        return self.registry.create(self._build_transport)

    def _build_transport(self, session_id: str) -> Transport:
        transport = self._transport_factory(session_id)
        transport.set_on_close(self._forget)
        return transport

    def _forget(self, transport: Transport) -> None:
        self.registry.remove(transport.session_id)

    # --- GET ---

    def get(self, session_id: Optional[str]) -> DispatchResult:
        state = self.resolve(session_id)
        if isinstance(state, NoSession):
            logger.warning("GET /mcp with missing or invalid session: %r", state.requested_id)
            return DispatchResult(status_code=400, body=dict(INVALID_SESSION_BODY))
        try:
            stream = state.transport.open_stream()
        except StreamConflictError as exc:
            error = json_rpc_error(SERVER_CONFLICT, "Conflict: only one event stream is allowed per session", data=str(exc))
            return DispatchResult(status_code=409, body=dump_message(error))
        return DispatchResult(
            status_code=200,
            headers={"Cache-Control": "no-cache"},
            stream=stream,
        )

    # --- DELETE ---

    def delete(self, session_id: Optional[str]) -> DispatchResult:
        state = self.resolve(session_id)
        if isinstance(state, NoSession):
            logger.warning("DELETE /mcp with missing or invalid session: %r", state.requested_id)
            return DispatchResult(status_code=400, body=dict(INVALID_SESSION_BODY))
        state.transport.close()
        # on_close уже убрал сессию, но реестр не должен зависеть от чужого хука.
        self.registry.remove(state.session_id)
        logger.info("Session deleted: %s", state.session_id)
        return DispatchResult(status_code=200)

    # --- OPTIONS ---

    def options(self) -> DispatchResult:
        return DispatchResult(
            status_code=200,
            headers={
                "Access-Control-Allow-Methods": ", ".join(CORS_ALLOWED_METHODS),
                "Access-Control-Allow-Headers": ", ".join(CORS_ALLOWED_HEADERS),
            },
        )


__all__ = [
    "ActiveSession",
    "DispatchResult",
    "INVALID_SESSION_BODY",
    "NoSession",
    "RequestDispatcher",
    "SessionState",
    "TransportFactory",
]
