"""Точка входа FastAPI: минимальный MCP-сервер с единственным инструментом echo.

Реестр сессий создаётся вместе с приложением, живёт в `app.state` и
закрывается в lifespan при остановке (uvicorn сам обрабатывает SIGINT/SIGTERM).
"""
from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import RequestDispatcher, TransportFactory, router as api_router
from .core.config import (
    CORS_ALLOWED_HEADERS,
    CORS_ALLOWED_METHODS,
    CORS_ALLOWED_ORIGINS,
    CORS_EXPOSED_HEADERS,
    HOST,
    LOG_LEVEL,
    PORT,
    SERVER_INFO,
)
from .core.session import SessionRegistry


logger = logging.getLogger("mcp_echo_server")
if not logger.handlers:
    logging.basicConfig(level=LOG_LEVEL)


def create_app(
    registry: Optional[SessionRegistry] = None,
    *,
    transport_factory: Optional[TransportFactory] = None,
) -> FastAPI:
    """Собрать приложение с собственным (или переданным) реестром сессий."""
    session_registry = registry if registry is not None else SessionRegistry()

    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("MCP Echo Server starting, accepted origins: %s", CORS_ALLOWED_ORIGINS)
        try:
            yield
        finally:
            logger.info("Shutting down gracefully...")
            session_registry.close_all()

    application = FastAPI(title="MCP Echo Server", version=SERVER_INFO["version"], lifespan=lifespan)
    application.state.registry = session_registry
    application.state.dispatcher = RequestDispatcher(session_registry, transport_factory=transport_factory)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=CORS_ALLOWED_METHODS,
        allow_headers=CORS_ALLOWED_HEADERS,
        expose_headers=CORS_EXPOSED_HEADERS,
    )
    application.include_router(api_router)
    return application


app = create_app()


def run() -> None:
    logger.info("MCP Echo Server running at http://%s:%s", HOST, PORT)
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
