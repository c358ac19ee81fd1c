"""HTTP-слой MCP: маршруты и диспетчер сессий."""

from .dispatcher import DispatchResult, RequestDispatcher, TransportFactory
from .routes import router

__all__ = ["DispatchResult", "RequestDispatcher", "TransportFactory", "router"]
