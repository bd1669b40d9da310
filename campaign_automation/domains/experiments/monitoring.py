"""Real-time performance monitoring for running A/B tests.

Each monitored campaign gets an asyncio timer task that runs a check every
``monitoring_interval_minutes``. A check refreshes today's metric snapshot
for every variant, runs the alert detectors and hands any alerts to the
notifier. Checks for one campaign never overlap; a firing that finds a check
already in flight is skipped.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, time, timedelta

import structlog

from .alerts import AlertNotifier
from .audit import ActionLogger, utc_now
from .config import ExperimentConfig, default_config
from .detectors import AlertDetector, default_detectors
from .errors import CampaignNotFoundError
from .metrics import metrics_from_history
from .models import (
    AlertType,
    AutomationConfiguration,
    CampaignStatus,
    MetricSnapshot,
    PerformanceAlert,
    TestCampaign,
    Variant,
    VariantPerformance,
)
from .registry import MonitorRegistry
from .winner import WinnerSelector, load_variant_performances

logger = structlog.get_logger()


class PerformanceMonitor:
    def __init__(
        self,
        store,
        dispatcher,
        registry: MonitorRegistry | None = None,
        winner_selector: WinnerSelector | None = None,
        audit: ActionLogger | None = None,
        detectors: Sequence[AlertDetector] | None = None,
        config: ExperimentConfig = default_config,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._registry = registry or MonitorRegistry()
        self._audit = audit or ActionLogger(store, clock)
        self._winner_selector = winner_selector
        self._detectors = list(detectors) if detectors is not None else default_detectors(config)
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._notifier = AlertNotifier(store, dispatcher, self._registry, clock)

    @property
    def registry(self) -> MonitorRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Timer lifecycle
    # ------------------------------------------------------------------

    async def start_monitoring(self, campaign_id: str) -> bool:
        """Start the periodic check timer for a campaign.

        Returns False when the salon has performance monitoring switched off.
        Raises ``CampaignNotFoundError`` for an unknown campaign.
        """
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        automation = await self._store.get_automation_config(campaign.salon_id)
        if automation is None or not automation.enable_performance_monitoring:
            logger.info("monitoring_disabled", campaign_id=campaign_id, salon_id=campaign.salon_id)
            return False

        if self._registry.is_monitoring(campaign_id):
            logger.info("monitoring_already_active", campaign_id=campaign_id)
            return True

        interval_minutes = (
            automation.monitoring_interval_minutes or self._config.monitoring.default_interval_minutes
        )
        task = asyncio.create_task(self._run_timer(campaign_id, interval_minutes * 60))
        previous = self._registry.register(campaign_id, task)
        if previous is not None:
            previous.cancel()

        logger.info(
            "monitoring_started", campaign_id=campaign_id, interval_minutes=interval_minutes
        )
        await self._audit.log(
            campaign.salon_id,
            "monitoring_started",
            f"Started performance monitoring for {campaign.name}",
            {"interval_minutes": interval_minutes},
            campaign_id=campaign_id,
        )
        return True

    async def stop_monitoring(self, campaign_id: str) -> bool:
        task = self._registry.unregister(campaign_id)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()

        logger.info("monitoring_stopped", campaign_id=campaign_id)
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is not None:
            await self._audit.log(
                campaign.salon_id,
                "monitoring_stopped",
                f"Stopped performance monitoring for {campaign.name}",
                campaign_id=campaign_id,
            )
        return True

    async def stop_all_monitoring(self) -> int:
        timers = self._registry.unregister_all()
        for task in timers.values():
            task.cancel()
        logger.info("monitoring_stopped_all", count=len(timers))
        return len(timers)

    async def _run_timer(self, campaign_id: str, interval_seconds: float) -> None:
        while True:
            await self._sleep(interval_seconds)
            if not self._registry.is_monitoring(campaign_id):
                return
            _, still_running = await self._check(campaign_id, scheduled=True)
            if not still_running:
                await self.stop_monitoring(campaign_id)
                return

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def perform_monitoring_check(self, campaign_id: str) -> list[PerformanceAlert]:
        """Run one check now. Never raises; failures are logged."""
        alerts, _ = await self._check(campaign_id, scheduled=False)
        return alerts

    async def _check(self, campaign_id: str, scheduled: bool) -> tuple[list[PerformanceAlert], bool]:
        if not self._registry.begin_check(campaign_id):
            logger.info("monitoring_check_skipped_in_flight", campaign_id=campaign_id)
            return [], True

        try:
            campaign = await self._store.get_campaign(campaign_id)
            if campaign is None:
                logger.warning("monitoring_campaign_missing", campaign_id=campaign_id)
                return [], False
            if campaign.status != CampaignStatus.RUNNING:
                logger.info(
                    "monitoring_campaign_not_running",
                    campaign_id=campaign_id,
                    status=campaign.status.value,
                )
                return [], False

            automation = await self._store.get_automation_config(campaign.salon_id)
            if automation is None or not automation.enable_performance_monitoring:
                return [], False

            variants = await self._store.list_variants(campaign_id)
            await self.collect_metrics(campaign, variants)
            performances = await load_variant_performances(self._store, variants)
            alerts = self.analyze_performance(campaign, performances, automation)

            if alerts and (not scheduled or self._registry.is_monitoring(campaign_id)):
                await self._notifier.dispatch(campaign, alerts)

            still_running = True
            if self._should_select_winner(alerts, automation):
                result = await self._winner_selector.analyze_and_select_winner(
                    campaign_id, automation.auto_winner_confidence_level
                )
                still_running = not result.committed

            await self._store.mark_channels_monitored(campaign.salon_id, self._clock())
            logger.info(
                "monitoring_check_completed",
                campaign_id=campaign_id,
                variants=len(variants),
                alerts=[a.alert_type.value for a in alerts],
            )
            return alerts, still_running
        except Exception:
            logger.exception("monitoring_check_failed", campaign_id=campaign_id)
            return [], True
        finally:
            self._registry.end_check(campaign_id)

    def _should_select_winner(
        self, alerts: Sequence[PerformanceAlert], automation: AutomationConfiguration
    ) -> bool:
        return (
            self._winner_selector is not None
            and automation.enable_auto_winner_selection
            and any(a.alert_type == AlertType.EARLY_WINNER for a in alerts)
        )

    async def collect_metrics(
        self, campaign: TestCampaign, variants: Sequence[Variant]
    ) -> list[MetricSnapshot]:
        """Recount today's delivery records and upsert the daily snapshots.

        Only records created today (UTC) are counted, so summing snapshots
        across days never counts a message twice.
        """
        day = self._clock().astimezone(UTC).date()
        start = datetime.combine(day, time.min, tzinfo=UTC)
        end = start + timedelta(days=1)

        snapshots = []
        for variant in variants:
            history = await self._store.list_delivery_history(
                variant_id=variant.variant_id, start=start, end=end
            )
            counts = metrics_from_history(history)
            snapshot = MetricSnapshot(
                campaign_id=campaign.campaign_id,
                variant_id=variant.variant_id,
                metric_date=day,
                **counts.model_dump(),
            )
            snapshots.append(await self._store.upsert_snapshot(snapshot))
        return snapshots

    def analyze_performance(
        self,
        campaign: TestCampaign,
        performances: Sequence[VariantPerformance],
        automation: AutomationConfiguration,
    ) -> list[PerformanceAlert]:
        if len(performances) < 2:
            return []

        now = self._clock()
        alerts = []
        for detector in self._detectors:
            try:
                alert = detector.detect(campaign, performances, automation, now)
            except Exception:
                logger.exception(
                    "alert_detector_failed",
                    detector=type(detector).__name__,
                    campaign_id=campaign.campaign_id,
                )
                continue
            if alert is not None:
                alerts.append(alert)
        return alerts

    async def get_realtime_performance(self, campaign_id: str) -> list[VariantPerformance]:
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        variants = await self._store.list_variants(campaign_id)
        return await load_variant_performances(self._store, variants)
