import pytest
from httpx import AsyncClient
from pymongo.errors import ServerSelectionTimeoutError

import database
from main import app


@pytest.mark.asyncio
async def test_root_banner(client: AsyncClient):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "School Portal API is running"}


@pytest.mark.asyncio
async def test_health_connected(client: AsyncClient):
    response = await client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["uptime"] >= 0
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_health_without_database(client: AsyncClient):
    app.dependency_overrides[database.get_optional_db] = lambda: None

    response = await client.get("/healthz")

    assert response.status_code == 503
    assert response.json()["database"] == "disconnected"


@pytest.mark.asyncio
async def test_health_while_unreachable(client: AsyncClient, monkeypatch):
    def unreachable(db):
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(database, "ping", unreachable)
    monkeypatch.setattr(database, "_has_connected", False)

    response = await client.get("/healthz")

    assert response.status_code == 503
    assert response.json()["database"] == "connecting"


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    response = await client.get("/", headers={"X-Request-ID": "abc123"})

    assert response.headers["x-request-id"] == "abc123"


@pytest.mark.asyncio
async def test_unknown_route(client: AsyncClient):
    response = await client.get("/api/nowhere")

    assert response.status_code == 404
    assert response.json() == {"message": "Route not found"}


@pytest.mark.asyncio
async def test_routes_fail_without_database(client: AsyncClient):
    app.dependency_overrides.pop(database.get_db)

    response = await client.post("/api/students/login", json={"studentID": "S100", "password": "correct"})

    assert response.status_code == 500
    assert response.json() == {"message": "Database not configured"}
