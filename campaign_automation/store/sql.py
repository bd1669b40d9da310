"""SQLAlchemy implementation of the record store."""

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campaign_automation.db.models import (
    ActionLogDB,
    AutomationConfigurationDB,
    CommunicationHistoryDB,
    CustomerSegmentDB,
    MessageTemplateDB,
    MonitoringSettingsDB,
    OptimizationInsightDB,
    OptimizationRecommendationDB,
    SalonDB,
    TestCampaignDB,
    TestMetricDB,
    TestResultDB,
    TestVariantDB,
    VariantGenerationRuleDB,
)
from campaign_automation.domains.experiments.models import (
    ActionLogEntry,
    AutomationConfiguration,
    CampaignStatus,
    CustomerSegment,
    DeliveryRecord,
    MessageTemplate,
    MetricSnapshot,
    MonitoringChannelConfig,
    Salon,
    TestCampaign,
    TestResult,
    TestType,
    Variant,
    VariantGenerationRule,
    VariantStatus,
)
from campaign_automation.domains.optimization.models import (
    CampaignOptimizationInsight,
    OptimizationRecommendation,
)

logger = structlog.get_logger()

_COUNTER_COLUMNS = (
    "sent_count",
    "delivered_count",
    "open_count",
    "click_count",
    "conversion_count",
    "bounce_count",
    "participant_count",
)


class SqlRecordStore:
    """Record store backed by PostgreSQL through an async session factory.

    Every method opens its own short-lived session so the store can be shared
    by concurrent monitoring tasks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- salons and configuration ------------------------------------------

    async def get_salon(self, salon_id: str) -> Salon | None:
        async with self._session_factory() as session:
            result = await session.execute(select(SalonDB).where(SalonDB.salon_id == salon_id))
            row = result.scalar_one_or_none()
            return Salon.model_validate(row, from_attributes=True) if row else None

    async def list_enabled_salons(self) -> list[Salon]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SalonDB)
                .join(
                    AutomationConfigurationDB,
                    AutomationConfigurationDB.salon_id == SalonDB.salon_id,
                )
                .where(AutomationConfigurationDB.is_enabled.is_(True))
                .order_by(SalonDB.salon_id)
            )
            return [Salon.model_validate(r, from_attributes=True) for r in result.scalars().all()]

    async def get_automation_config(self, salon_id: str) -> AutomationConfiguration | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AutomationConfigurationDB).where(
                    AutomationConfigurationDB.salon_id == salon_id
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return AutomationConfiguration.model_validate(row, from_attributes=True)

    async def list_monitoring_channels(self, salon_id: str) -> list[MonitoringChannelConfig]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MonitoringSettingsDB)
                .where(MonitoringSettingsDB.salon_id == salon_id)
                .order_by(MonitoringSettingsDB.id)
            )
            return [
                MonitoringChannelConfig.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    async def mark_channels_monitored(self, salon_id: str, monitored_at: datetime) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(MonitoringSettingsDB)
                .where(
                    MonitoringSettingsDB.salon_id == salon_id,
                    MonitoringSettingsDB.is_active.is_(True),
                )
                .values(last_monitored_at=monitored_at)
            )
            await session.commit()

    # -- campaigns and variants --------------------------------------------

    async def get_campaign(self, campaign_id: str) -> TestCampaign | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TestCampaignDB).where(TestCampaignDB.campaign_id == campaign_id)
            )
            row = result.scalar_one_or_none()
            return TestCampaign.model_validate(row, from_attributes=True) if row else None

    async def list_campaigns(
        self,
        salon_id: str,
        status: CampaignStatus | None = None,
        completed_after: datetime | None = None,
    ) -> list[TestCampaign]:
        stmt = (
            select(TestCampaignDB)
            .where(TestCampaignDB.salon_id == salon_id)
            .order_by(TestCampaignDB.created_at)
        )
        if status is not None:
            stmt = stmt.where(TestCampaignDB.status == status.value)
        if completed_after is not None:
            stmt = stmt.where(TestCampaignDB.completed_at >= completed_after)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                TestCampaign.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    async def list_variants(self, campaign_id: str) -> list[Variant]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TestVariantDB)
                .where(TestVariantDB.campaign_id == campaign_id)
                .order_by(TestVariantDB.created_at, TestVariantDB.priority, TestVariantDB.id)
            )
            return [Variant.model_validate(r, from_attributes=True) for r in result.scalars().all()]

    async def insert_variant(self, variant: Variant) -> Variant:
        async with self._session_factory() as session:
            session.add(TestVariantDB(**variant.model_dump()))
            await session.commit()
        return variant

    async def commit_winner(
        self,
        campaign_id: str,
        winner_variant_id: str,
        result: TestResult,
    ) -> bool:
        async with self._session_factory() as session:
            transition = await session.execute(
                update(TestCampaignDB)
                .where(
                    TestCampaignDB.campaign_id == campaign_id,
                    TestCampaignDB.status == CampaignStatus.RUNNING.value,
                )
                .values(
                    status=CampaignStatus.COMPLETED.value,
                    completed_at=result.completed_at,
                )
            )
            if transition.rowcount != 1:
                await session.rollback()
                logger.info("campaign_not_running", campaign_id=campaign_id)
                return False

            session.add(TestResultDB(**result.model_dump()))
            await session.execute(
                update(TestVariantDB)
                .where(TestVariantDB.campaign_id == campaign_id)
                .values(
                    status=case(
                        (TestVariantDB.variant_id == winner_variant_id, VariantStatus.WINNER.value),
                        else_=VariantStatus.LOSER.value,
                    )
                )
            )
            await session.commit()

        logger.info(
            "campaign_completed",
            campaign_id=campaign_id,
            winner_variant_id=winner_variant_id,
        )
        return True

    # -- metrics and history -----------------------------------------------

    async def list_snapshots(self, variant_id: str) -> list[MetricSnapshot]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TestMetricDB)
                .where(TestMetricDB.variant_id == variant_id)
                .order_by(TestMetricDB.metric_date)
            )
            return [
                MetricSnapshot.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    async def upsert_snapshot(self, snapshot: MetricSnapshot) -> MetricSnapshot:
        values = snapshot.model_dump()
        stmt = (
            pg_insert(TestMetricDB)
            .values(**values)
            .on_conflict_do_update(
                constraint="uq_test_metrics_day",
                set_={column: values[column] for column in _COUNTER_COLUMNS},
            )
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        return snapshot

    async def list_delivery_history(
        self,
        *,
        salon_id: str | None = None,
        variant_id: str | None = None,
        template_id: str | None = None,
        segment_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[DeliveryRecord]:
        stmt = select(CommunicationHistoryDB).order_by(CommunicationHistoryDB.created_at)
        if salon_id is not None:
            stmt = stmt.where(CommunicationHistoryDB.salon_id == salon_id)
        if variant_id is not None:
            stmt = stmt.where(CommunicationHistoryDB.variant_id == variant_id)
        if template_id is not None:
            stmt = stmt.where(CommunicationHistoryDB.template_id == template_id)
        if segment_id is not None:
            stmt = stmt.where(CommunicationHistoryDB.segment_id == segment_id)
        if start is not None:
            stmt = stmt.where(CommunicationHistoryDB.created_at >= start)
        if end is not None:
            stmt = stmt.where(CommunicationHistoryDB.created_at < end)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                DeliveryRecord.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    # -- templates, segments and rules -------------------------------------

    async def get_template(self, template_id: str) -> MessageTemplate | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MessageTemplateDB).where(MessageTemplateDB.template_id == template_id)
            )
            row = result.scalar_one_or_none()
            return MessageTemplate.model_validate(row, from_attributes=True) if row else None

    async def list_templates(self, salon_id: str) -> list[MessageTemplate]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MessageTemplateDB)
                .where(MessageTemplateDB.salon_id == salon_id)
                .order_by(MessageTemplateDB.id)
            )
            return [
                MessageTemplate.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    async def update_template(self, template_id: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        async with self._session_factory() as session:
            await session.execute(
                update(MessageTemplateDB)
                .where(MessageTemplateDB.template_id == template_id)
                .values(**changes)
            )
            await session.commit()

    async def list_segments(self, salon_id: str) -> list[CustomerSegment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CustomerSegmentDB)
                .where(CustomerSegmentDB.salon_id == salon_id)
                .order_by(CustomerSegmentDB.id)
            )
            return [
                CustomerSegment.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    async def list_generation_rules(
        self, salon_id: str, rule_type: TestType
    ) -> list[VariantGenerationRule]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VariantGenerationRuleDB)
                .where(
                    VariantGenerationRuleDB.salon_id == salon_id,
                    VariantGenerationRuleDB.rule_type == rule_type.value,
                    VariantGenerationRuleDB.is_active.is_(True),
                )
                .order_by(VariantGenerationRuleDB.priority.desc())
            )
            return [
                VariantGenerationRule.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    # -- engine outputs ----------------------------------------------------

    async def insert_recommendation(
        self, recommendation: OptimizationRecommendation
    ) -> OptimizationRecommendation:
        async with self._session_factory() as session:
            session.add(OptimizationRecommendationDB(**recommendation.model_dump()))
            await session.commit()
        return recommendation

    async def list_recommendations(
        self, salon_id: str, created_after: datetime | None = None
    ) -> list[OptimizationRecommendation]:
        stmt = (
            select(OptimizationRecommendationDB)
            .where(OptimizationRecommendationDB.salon_id == salon_id)
            .order_by(OptimizationRecommendationDB.created_at.desc())
        )
        if created_after is not None:
            stmt = stmt.where(OptimizationRecommendationDB.created_at >= created_after)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                OptimizationRecommendation.model_validate(r, from_attributes=True)
                for r in result.scalars().all()
            ]

    async def insert_insight(
        self, insight: CampaignOptimizationInsight
    ) -> CampaignOptimizationInsight:
        async with self._session_factory() as session:
            session.add(OptimizationInsightDB(**insight.model_dump()))
            await session.commit()
        return insight

    async def insert_action_log(self, entry: ActionLogEntry) -> None:
        async with self._session_factory() as session:
            session.add(ActionLogDB(**entry.model_dump()))
            await session.commit()
