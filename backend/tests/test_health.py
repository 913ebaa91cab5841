import httpx
import pytest

from backend.fetcher.main import app


@pytest.fixture
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_ok(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_info_endpoint(client):
    resp = await client.get("/api/v1/info")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Audio Fetcher API"
    assert isinstance(data["version"], str)


@pytest.mark.asyncio
async def test_api_root_and_docs_redirect(client):
    resp = await client.get("/api")
    assert resp.json()["name"] == "Audio Fetcher API"
    resp = await client.get("/docs")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/api/docs"
