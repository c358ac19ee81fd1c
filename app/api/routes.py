"""FastAPI-маршруты MCP API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from app.api.dispatcher import DispatchResult, RequestDispatcher
from app.core.config import SESSION_HEADER, SSE_KEEPALIVE_SECONDS
from app.core.transport import StreamEvent
from app.models.json_rpc import INTERNAL_ERROR, dump_message, json_rpc_error

logger = logging.getLogger("mcp_echo_server.api.routes")

router = APIRouter()


def _dispatcher(request: Request) -> RequestDispatcher:
    return request.app.state.dispatcher


def _internal_error() -> JSONResponse:
    # Ошибку ловим внутри маршрута, чтобы ответ прошёл через CORS middleware.
    error = json_rpc_error(INTERNAL_ERROR, "Internal server error")
    return JSONResponse(status_code=500, content=dump_message(error))


async def _guard_stream(stream: AsyncIterator[StreamEvent], session_id: str) -> AsyncIterator[StreamEvent]:
    # Заголовки уже ушли клиенту: при сбое только логируем и закрываем поток.
    try:
        async for chunk in stream:
            yield chunk
    except Exception:
        logger.exception("Event stream for session %s failed", session_id)
    finally:
        await stream.aclose()


def _to_response(result: DispatchResult, session_id: str = "") -> Response:
    if result.stream is not None:
        # ping и обрыв потока по сигналу остановки uvicorn делает EventSourceResponse.
        return EventSourceResponse(
            _guard_stream(result.stream, session_id),
            status_code=result.status_code,
            headers=result.headers,
            ping=SSE_KEEPALIVE_SECONDS,
        )
    if result.body is None:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "activeSessions": _dispatcher(request).registry.count(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.options("/mcp")
async def mcp_options(request: Request) -> Response:
    return _to_response(_dispatcher(request).options())


@router.post("/mcp")
async def mcp_post(request: Request) -> Response:
    try:
        raw = await request.body()
        result = _dispatcher(request).post(request.headers.get(SESSION_HEADER), raw)
        return _to_response(result)
    except Exception:
        logger.exception("Error in POST /mcp")
        return _internal_error()


@router.get("/mcp")
async def mcp_stream(request: Request) -> Response:
    session_id = request.headers.get(SESSION_HEADER) or ""
    try:
        result = _dispatcher(request).get(session_id)
        return _to_response(result, session_id)
    except Exception:
        logger.exception("Error in GET /mcp")
        return _internal_error()


@router.delete("/mcp")
async def mcp_delete(request: Request) -> Response:
    try:
        result = _dispatcher(request).delete(request.headers.get(SESSION_HEADER))
        return _to_response(result)
    except Exception:
        logger.exception("Error in DELETE /mcp")
        return _internal_error()


__all__ = ["router"]
