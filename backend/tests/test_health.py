"""Health endpoint tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_liveness(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    async def test_readiness(self, client: AsyncClient):
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"]["database"] == "ok"
