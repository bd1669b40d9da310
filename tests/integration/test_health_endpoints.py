"""Integration tests for health endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from campaign_automation.main import app

pytestmark = pytest.mark.integration


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_endpoint(self, engine):
        app.state.engine = engine
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.get("/health")
                assert response.status_code == 200
                data = response.json()
                assert data["status"] == "healthy"
                assert "version" in data
                assert "uptime_seconds" in data
                assert data["monitored_campaigns"] == 0
        finally:
            del app.state.engine

    @pytest.mark.asyncio
    async def test_ready_without_kafka_is_degraded(self):
        app.state.kafka_producer = None
        with patch("campaign_automation.db.database.check_db", AsyncMock(return_value=True)):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "degraded", "database": True, "kafka": False}

    @pytest.mark.asyncio
    async def test_ready_without_database(self):
        app.state.kafka_producer = AsyncMock()
        try:
            with patch("campaign_automation.db.database.check_db", AsyncMock(return_value=False)):
                transport = ASGITransport(app=app)
                async with AsyncClient(transport=transport, base_url="http://test") as client:
                    response = await client.get("/ready")
        finally:
            app.state.kafka_producer = None
        assert response.status_code == 503
        assert response.json()["database"] is False
