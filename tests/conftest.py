from __future__ import annotations

from typing import Any, Dict, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.session import SessionRegistry
from app.main import create_app

ALLOWED_ORIGIN = "http://localhost:5173"


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def app(registry: SessionRegistry) -> FastAPI:
    return create_app(registry)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def rpc(method: str, params: Optional[Dict[str, Any]] = None, request_id: Any = 1) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    return payload


def initialize(client: TestClient) -> str:
    response = client.post(
        "/mcp",
        json=rpc(
            "initialize",
            {
                "protocolVersion": "2025-03-26",
                "clientInfo": {"name": "pytest", "version": "1.0"},
                "capabilities": {},
            },
        ),
    )
    assert response.status_code == 200
    return response.headers["mcp-session-id"]
