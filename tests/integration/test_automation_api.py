"""Integration tests for the automation job-trigger API."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from campaign_automation.domains.experiments.models import CampaignStatus
from campaign_automation.main import app
from tests.fakes import (
    evening_peak_history,
    make_campaign,
    make_snapshot,
    make_template,
    make_variant,
)

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def client(engine):
    app.state.engine = engine
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        await engine.monitor.stop_all_monitoring()
        del app.state.engine


def _seed_clear_winner(store, **campaign_overrides):
    store.templates["tmpl-1"] = make_template()
    store.add_campaign(
        make_campaign(**campaign_overrides),
        make_variant("control", is_control=True),
        make_variant("urgent", created_offset_minutes=1),
    )
    store.add_snapshot(make_snapshot("control", 500, 50))
    store.add_snapshot(make_snapshot("urgent", 520, 78))


class TestWinnerRoutes:
    @pytest.mark.asyncio
    async def test_analyze(self, client, store):
        _seed_clear_winner(store)

        response = await client.post(
            "/api/v1/automation/winners/camp-1/analyze", json={"confidence_level": 95}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["winner_variant_id"] == "urgent"
        assert data["committed"] is False

    @pytest.mark.asyncio
    async def test_manual_select(self, client, store):
        _seed_clear_winner(store)

        response = await client.post(
            "/api/v1/automation/winners/camp-1/select",
            json={"variant_id": "control", "user_id": "user-7"},
        )

        assert response.status_code == 200
        assert response.json()["winner_variant_id"] == "control"
        assert store.campaigns["camp-1"].status == CampaignStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_manual_select_unknown_campaign(self, client):
        response = await client.post(
            "/api/v1/automation/winners/missing/select",
            json={"variant_id": "control", "user_id": "user-7"},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_manual_select_completed_campaign(self, client, store):
        _seed_clear_winner(store, status=CampaignStatus.COMPLETED)

        response = await client.post(
            "/api/v1/automation/winners/camp-1/select",
            json={"variant_id": "control", "user_id": "user-7"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"

    @pytest.mark.asyncio
    async def test_summary(self, client, store):
        _seed_clear_winner(store)

        response = await client.get("/api/v1/automation/campaigns/camp-1/summary")

        assert response.status_code == 200
        data = response.json()
        assert data["best_variant_id"] == "urgent"
        assert len(data["variants"]) == 2

    @pytest.mark.asyncio
    async def test_summary_unknown_campaign(self, client):
        response = await client.get("/api/v1/automation/campaigns/missing/summary")
        assert response.status_code == 404


class TestMonitoringRoutes:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, client, store):
        _seed_clear_winner(store)

        started = await client.post("/api/v1/automation/monitoring/camp-1/start")
        stopped = await client.post("/api/v1/automation/monitoring/camp-1/stop")

        assert started.json() == {"campaign_id": "camp-1", "monitoring": True}
        assert stopped.json() == {"campaign_id": "camp-1", "stopped": True}

    @pytest.mark.asyncio
    async def test_check_unknown_campaign_returns_no_alerts(self, client):
        response = await client.post("/api/v1/automation/monitoring/missing/check")

        assert response.status_code == 200
        assert response.json()["count"] == 0


class TestVariantRoutes:
    @pytest.mark.asyncio
    async def test_generate(self, client, store):
        _seed_clear_winner(store)

        response = await client.post(
            "/api/v1/automation/campaigns/camp-1/variants",
            json={"template_id": "tmpl-1", "test_type": "subject_line"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == len(data["variants"])
        assert data["count"] > 0

    @pytest.mark.asyncio
    async def test_unknown_template(self, client, store):
        _seed_clear_winner(store)

        response = await client.post(
            "/api/v1/automation/campaigns/camp-1/variants",
            json={"template_id": "nope", "test_type": "subject_line"},
        )

        assert response.status_code == 404


class TestSalonAndJobRoutes:
    @pytest.mark.asyncio
    async def test_optimizations(self, client, store):
        store.history = evening_peak_history()

        response = await client.post(
            "/api/v1/automation/salons/salon-1/optimizations",
            json={"optimization_types": ["send_time"]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["recommendations"][0]["model_version"] == "send_time_v1.0"

    @pytest.mark.asyncio
    async def test_insights(self, client, store):
        store.history = evening_peak_history()

        response = await client.post("/api/v1/automation/salons/salon-1/insights")

        assert response.status_code == 200
        assert response.json()["insights"][0]["insight_type"] == "send_time_patterns"

    @pytest.mark.asyncio
    async def test_winner_analysis(self, client, store):
        response = await client.post("/api/v1/automation/salons/salon-1/winner-analysis")

        assert response.status_code == 200
        assert response.json() == {"salon_id": "salon-1", "results": [], "winners_committed": 0}

    @pytest.mark.asyncio
    async def test_run_job(self, client, store):
        _seed_clear_winner(store)

        response = await client.post("/api/v1/automation/jobs/weekly-report")

        assert response.status_code == 200
        data = response.json()
        assert data["job"] == "weekly_report"
        assert data["items"] == 1

    @pytest.mark.asyncio
    async def test_unknown_job(self, client):
        response = await client.post("/api/v1/automation/jobs/defragment")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        response = await client.post(
            "/api/v1/automation/jobs/defragment", headers={"X-Request-ID": "req-42"}
        )
        assert response.headers["X-Request-ID"] == "req-42"
        assert response.json()["request_id"] == "req-42"
