"""Tests for the performance monitor, its registry and alert cooldowns."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from campaign_automation.domains.experiments.errors import CampaignNotFoundError
from campaign_automation.domains.experiments.models import AlertType, CampaignStatus, Channel
from campaign_automation.domains.experiments.monitoring import PerformanceMonitor
from campaign_automation.domains.experiments.registry import MonitorRegistry
from campaign_automation.domains.experiments.winner import WinnerSelector
from tests.fakes import (
    NOW,
    make_automation,
    make_campaign,
    make_channel,
    make_record,
    make_template,
    make_variant,
)


def _seed_running_test(store, channel=None):
    store.templates["tmpl-1"] = make_template()
    store.add_campaign(
        make_campaign(),
        make_variant("control", is_control=True),
        make_variant("urgent", created_offset_minutes=1),
    )
    sent_at = NOW - timedelta(hours=1)
    store.history += [
        make_record(variant_id="control", created_at=sent_at, booked=i < 50) for i in range(500)
    ]
    store.history += [
        make_record(variant_id="urgent", created_at=sent_at, booked=i < 78) for i in range(520)
    ]
    store.channels["salon-1"] = [channel or make_channel()]
    store.automation["salon-1"] = make_automation(performance_alert_threshold=0.06)


@pytest.fixture
def monitor(engine):
    return engine.monitor


class TestStartStop:
    @pytest.mark.asyncio
    async def test_start_registers_timer(self, store, monitor):
        _seed_running_test(store)
        try:
            assert await monitor.start_monitoring("camp-1")
            assert monitor.registry.is_monitoring("camp-1")
            assert store.action_types() == ["monitoring_started"]
        finally:
            await monitor.stop_all_monitoring()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store, monitor):
        _seed_running_test(store)
        try:
            await monitor.start_monitoring("camp-1")
            assert await monitor.start_monitoring("camp-1")
            assert monitor.registry.monitored_campaigns() == ["camp-1"]
            assert store.action_types() == ["monitoring_started"]
        finally:
            await monitor.stop_all_monitoring()

    @pytest.mark.asyncio
    async def test_start_unknown_campaign(self, monitor):
        with pytest.raises(CampaignNotFoundError):
            await monitor.start_monitoring("missing")

    @pytest.mark.asyncio
    async def test_start_refused_when_monitoring_disabled(self, store, monitor):
        _seed_running_test(store)
        store.automation["salon-1"] = make_automation(enable_performance_monitoring=False)
        assert not await monitor.start_monitoring("camp-1")
        assert not monitor.registry.is_monitoring("camp-1")

    @pytest.mark.asyncio
    async def test_stop(self, store, monitor):
        _seed_running_test(store)
        await monitor.start_monitoring("camp-1")

        assert await monitor.stop_monitoring("camp-1")
        assert not monitor.registry.is_monitoring("camp-1")
        assert store.action_types() == ["monitoring_started", "monitoring_stopped"]
        assert not await monitor.stop_monitoring("camp-1")

    @pytest.mark.asyncio
    async def test_stop_all(self, store, monitor):
        _seed_running_test(store)
        store.add_campaign(make_campaign("camp-2"))
        await monitor.start_monitoring("camp-1")
        await monitor.start_monitoring("camp-2")

        assert await monitor.stop_all_monitoring() == 2
        assert monitor.registry.monitored_campaigns() == []


class TestMonitoringCheck:
    @pytest.mark.asyncio
    async def test_check_collects_metrics_and_raises_alerts(self, store, monitor, clock):
        _seed_running_test(store)

        alerts = await monitor.perform_monitoring_check("camp-1")

        assert [a.alert_type for a in alerts] == [AlertType.EARLY_WINNER, AlertType.TEST_COMPLETE]
        snapshot = store.snapshots[("urgent", NOW.date())]
        assert snapshot.delivered_count == 520
        assert snapshot.conversion_count == 78
        assert store.channels["salon-1"][0].last_monitored_at == clock.now

    @pytest.mark.asyncio
    async def test_alerts_go_out_as_one_message_per_recipient(self, store, monitor, dispatcher):
        _seed_running_test(store, make_channel(recipients=["a@glow.test", "b@glow.test"]))

        await monitor.perform_monitoring_check("camp-1")

        assert [(dest, channel) for dest, channel, _ in dispatcher.sent] == [
            ("a@glow.test", Channel.EMAIL),
            ("b@glow.test", Channel.EMAIL),
        ]
        assert dispatcher.sent[0][2]["subject"] == "A/B Test Alert: 2 updates"

    @pytest.mark.asyncio
    async def test_cooldown_suppresses_second_dispatch(self, store, monitor, dispatcher):
        _seed_running_test(store)

        await monitor.perform_monitoring_check("camp-1")
        await monitor.perform_monitoring_check("camp-1")

        assert len(dispatcher.sent) == 1

    @pytest.mark.asyncio
    async def test_dispatch_resumes_after_cooldown(self, store, monitor, dispatcher, clock):
        _seed_running_test(store, make_channel(alert_cooldown_minutes=30))

        await monitor.perform_monitoring_check("camp-1")
        clock.advance(minutes=31)
        await monitor.perform_monitoring_check("camp-1")

        assert len(dispatcher.sent) == 2

    @pytest.mark.asyncio
    async def test_sms_channel_gets_short_body(self, store, monitor, dispatcher):
        _seed_running_test(
            store, make_channel(enable_email_alerts=False, enable_sms_alerts=True)
        )

        await monitor.perform_monitoring_check("camp-1")

        (_, channel, content), = dispatcher.sent
        assert channel == Channel.SMS
        assert content["body"].startswith("A/B Test Alert: Early winner detected")
        assert content["body"].endswith("(+1 more) View dashboard for details.")

    @pytest.mark.asyncio
    async def test_inactive_channel_is_skipped(self, store, monitor, dispatcher):
        _seed_running_test(store, make_channel(is_active=False))
        await monitor.perform_monitoring_check("camp-1")
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_failure_does_not_fail_check(self, store, monitor, dispatcher):
        _seed_running_test(store)
        dispatcher.send = AsyncMock(side_effect=RuntimeError("broker down"))

        alerts = await monitor.perform_monitoring_check("camp-1")
        assert len(alerts) == 2

    @pytest.mark.asyncio
    async def test_check_skipped_while_another_is_in_flight(self, store, monitor):
        _seed_running_test(store)
        monitor.registry.begin_check("camp-1")

        assert await monitor.perform_monitoring_check("camp-1") == []
        assert store.snapshots == {}

    @pytest.mark.asyncio
    async def test_scheduled_check_after_stop_does_not_dispatch(self, store, monitor, dispatcher):
        _seed_running_test(store)

        alerts, _ = await monitor._check("camp-1", scheduled=True)

        assert alerts
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_completed_campaign_is_not_checked(self, store, monitor):
        _seed_running_test(store)
        store.campaigns["camp-1"] = make_campaign(status=CampaignStatus.COMPLETED)
        assert await monitor.perform_monitoring_check("camp-1") == []

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, store, monitor):
        _seed_running_test(store)
        store.list_variants = AsyncMock(side_effect=RuntimeError("db down"))

        assert await monitor.perform_monitoring_check("camp-1") == []
        assert monitor.registry.begin_check("camp-1")

    @pytest.mark.asyncio
    async def test_detector_failure_is_isolated(self, store, monitor):
        _seed_running_test(store)
        broken = MagicMock()
        broken.detect.side_effect = ValueError("bad detector")
        monitor._detectors.insert(0, broken)

        alerts = await monitor.perform_monitoring_check("camp-1")
        assert len(alerts) == 2


class TestTimer:
    @pytest.mark.asyncio
    async def test_timer_stops_after_auto_winner_commits(self, store, dispatcher, clock):
        _seed_running_test(store)
        store.automation["salon-1"] = make_automation(enable_auto_winner_selection=True)

        async def no_wait(_seconds):
            await asyncio.sleep(0)

        registry = MonitorRegistry()
        monitor = PerformanceMonitor(
            store,
            dispatcher,
            registry=registry,
            winner_selector=WinnerSelector(store, clock=clock),
            clock=clock,
            sleep=no_wait,
        )

        await monitor.start_monitoring("camp-1")
        for _ in range(100):
            if not registry.is_monitoring("camp-1"):
                break
            await asyncio.sleep(0)

        assert not registry.is_monitoring("camp-1")
        assert store.campaigns["camp-1"].status == CampaignStatus.COMPLETED
        assert store.results["camp-1"].winner_variant_id == "urgent"
        assert "monitoring_stopped" in store.action_types()


class TestMonitorRegistry:
    def test_claim_channel_honours_cooldown(self):
        registry = MonitorRegistry()
        key = ("salon-1", "mon-1")
        cooldown = timedelta(minutes=60)

        assert registry.claim_channel(key, NOW, cooldown)
        assert not registry.claim_channel(key, NOW + timedelta(minutes=59), cooldown)
        assert registry.claim_channel(key, NOW + timedelta(minutes=60), cooldown)
        assert registry.last_sent(key) == NOW + timedelta(minutes=60)

    def test_channels_are_independent(self):
        registry = MonitorRegistry()
        cooldown = timedelta(minutes=60)
        assert registry.claim_channel(("salon-1", "a"), NOW, cooldown)
        assert registry.claim_channel(("salon-1", "b"), NOW, cooldown)

    def test_begin_check_is_exclusive(self):
        registry = MonitorRegistry()
        assert registry.begin_check("camp-1")
        assert not registry.begin_check("camp-1")
        registry.end_check("camp-1")
        assert registry.begin_check("camp-1")
