"""Record store interface consumed by the automation engine.

The engine never talks to a database directly. Everything it reads or writes
goes through this protocol, which ``SqlRecordStore`` implements over
SQLAlchemy and the test suite implements in memory.
"""

from datetime import datetime
from typing import Any, Protocol

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
)
from campaign_automation.domains.optimization.models import (
    CampaignOptimizationInsight,
    OptimizationRecommendation,
)


class RecordStore(Protocol):
    # Salons and configuration
    async def get_salon(self, salon_id: str) -> Salon | None: ...

    async def list_enabled_salons(self) -> list[Salon]: ...

    async def get_automation_config(self, salon_id: str) -> AutomationConfiguration | None: ...

    async def list_monitoring_channels(self, salon_id: str) -> list[MonitoringChannelConfig]: ...

    async def mark_channels_monitored(self, salon_id: str, monitored_at: datetime) -> None: ...

    # Campaigns and variants
    async def get_campaign(self, campaign_id: str) -> TestCampaign | None: ...

    async def list_campaigns(
        self,
        salon_id: str,
        status: CampaignStatus | None = None,
        completed_after: datetime | None = None,
    ) -> list[TestCampaign]: ...

    async def list_variants(self, campaign_id: str) -> list[Variant]: ...

    async def insert_variant(self, variant: Variant) -> Variant: ...

    async def commit_winner(
        self,
        campaign_id: str,
        winner_variant_id: str,
        result: TestResult,
    ) -> bool:
        """Atomically complete a running campaign.

        Moves the campaign from ``running`` to ``completed``, stores the
        result and marks the winner and losers. Returns False without writing
        anything when the campaign is no longer running.
        """
        ...

    # Metrics and history
    async def list_snapshots(self, variant_id: str) -> list[MetricSnapshot]: ...

    async def upsert_snapshot(self, snapshot: MetricSnapshot) -> MetricSnapshot: ...

    async def list_delivery_history(
        self,
        *,
        salon_id: str | None = None,
        variant_id: str | None = None,
        template_id: str | None = None,
        segment_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[DeliveryRecord]: ...

    # Templates, segments and generation rules
    async def get_template(self, template_id: str) -> MessageTemplate | None: ...

    async def list_templates(self, salon_id: str) -> list[MessageTemplate]: ...

    async def update_template(self, template_id: str, changes: dict[str, Any]) -> None: ...

    async def list_segments(self, salon_id: str) -> list[CustomerSegment]: ...

    async def list_generation_rules(
        self, salon_id: str, rule_type: TestType
    ) -> list[VariantGenerationRule]: ...

    # Engine outputs
    async def insert_recommendation(
        self, recommendation: OptimizationRecommendation
    ) -> OptimizationRecommendation: ...

    async def list_recommendations(
        self, salon_id: str, created_after: datetime | None = None
    ) -> list[OptimizationRecommendation]: ...

    async def insert_insight(
        self, insight: CampaignOptimizationInsight
    ) -> CampaignOptimizationInsight: ...

    async def insert_action_log(self, entry: ActionLogEntry) -> None: ...
