"""Batch entry points driven by the external scheduler.

Every job walks the salons with automation enabled. A failure for one salon
is logged and counted; it never stops the remaining salons and never escapes
the job.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel

from campaign_automation.domains.experiments.audit import utc_now
from campaign_automation.domains.experiments.models import CampaignStatus, Channel, Salon
from campaign_automation.domains.experiments.monitoring import PerformanceMonitor
from campaign_automation.domains.experiments.templates import render_weekly_report
from campaign_automation.domains.experiments.winner import WinnerSelector
from campaign_automation.domains.optimization.optimizer import CampaignOptimizer

logger = structlog.get_logger()

REPORT_WINDOW = timedelta(days=7)


class JobReport(BaseModel):
    job: str
    salons_processed: int = 0
    salons_failed: int = 0
    items: int = 0


class ScheduledJobs:
    def __init__(
        self,
        store,
        dispatcher,
        monitor: PerformanceMonitor,
        winner_selector: WinnerSelector,
        optimizer: CampaignOptimizer,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._monitor = monitor
        self._winner_selector = winner_selector
        self._optimizer = optimizer
        self._clock = clock

    async def _for_each_salon(
        self, job: str, work: Callable[[Salon], Awaitable[int]]
    ) -> JobReport:
        report = JobReport(job=job)
        try:
            salons = await self._store.list_enabled_salons()
        except Exception:
            logger.exception("scheduled_job_salon_lookup_failed", job=job)
            return report

        for salon in salons:
            try:
                report.items += await work(salon)
                report.salons_processed += 1
            except Exception:
                report.salons_failed += 1
                logger.exception("scheduled_job_salon_failed", job=job, salon_id=salon.salon_id)

        logger.info(
            "scheduled_job_completed",
            job=job,
            salons_processed=report.salons_processed,
            salons_failed=report.salons_failed,
            items=report.items,
        )
        return report

    async def run_performance_collection_job(self) -> JobReport:
        """Run a full monitoring check for every running campaign.

        A campaign whose timer check is already in flight is skipped by the
        monitor itself.
        """

        async def collect(salon: Salon) -> int:
            automation = await self._store.get_automation_config(salon.salon_id)
            if automation is None or not automation.enable_performance_monitoring:
                return 0
            campaigns = await self._store.list_campaigns(salon.salon_id, CampaignStatus.RUNNING)
            for campaign in campaigns:
                await self._monitor.perform_monitoring_check(campaign.campaign_id)
            return len(campaigns)

        return await self._for_each_salon("performance_collection", collect)

    async def run_winner_analysis_job(self) -> JobReport:
        async def analyze(salon: Salon) -> int:
            results = await self._winner_selector.run_automatic_winner_analysis(salon.salon_id)
            return sum(1 for r in results if r.committed)

        return await self._for_each_salon("winner_analysis", analyze)

    async def run_campaign_optimization_job(self) -> JobReport:
        async def optimize(salon: Salon) -> int:
            recommendations = await self._optimizer.run_daily_optimization_job(salon.salon_id)
            insights = await self._optimizer.generate_insights(salon.salon_id)
            logger.info(
                "salon_optimization_completed",
                salon_id=salon.salon_id,
                recommendations=len(recommendations),
                insights=len(insights),
            )
            return len(recommendations)

        return await self._for_each_salon("campaign_optimization", optimize)

    async def run_weekly_report_job(self) -> JobReport:
        """Email each salon owner a summary of the past week's testing."""

        async def report(salon: Salon) -> int:
            return 1 if await self.send_weekly_report(salon) else 0

        return await self._for_each_salon("weekly_report", report)

    async def send_weekly_report(self, salon: Salon) -> bool:
        if not salon.owner_email:
            return False

        since = self._clock() - REPORT_WINDOW
        completed = await self._store.list_campaigns(
            salon.salon_id, CampaignStatus.COMPLETED, completed_after=since
        )
        running = await self._store.list_campaigns(salon.salon_id, CampaignStatus.RUNNING)
        recommendations = await self._store.list_recommendations(
            salon.salon_id, created_after=since
        )
        if not (completed or running or recommendations):
            logger.debug("weekly_report_skipped_no_data", salon_id=salon.salon_id)
            return False

        summary = (
            f"This week: {len(completed)} test(s) completed, {len(running)} test(s) running, "
            f"{len(recommendations)} new optimization recommendation(s)."
        )
        content = {
            "subject": f"Weekly A/B Testing Report for {salon.name}",
            "body": render_weekly_report(salon.name, summary, completed, running, recommendations),
        }
        sent = await self._dispatcher.send(salon.owner_email, Channel.EMAIL, content)
        logger.info("weekly_report_sent", salon_id=salon.salon_id, delivered=sent)
        return sent
