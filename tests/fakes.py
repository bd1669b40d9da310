"""In-memory collaborators and record builders for engine tests."""

import itertools
from datetime import UTC, date, datetime, timedelta
from typing import Any

from campaign_automation.domains.experiments.models import (
    ActionLogEntry,
    AutomationConfiguration,
    CampaignStatus,
    Channel,
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

NOW = datetime(2026, 3, 10, 15, 0, 0, tzinfo=UTC)

_ids = itertools.count(1)


class InMemoryRecordStore:
    """Record store kept in dicts, with call counters for assertions."""

    def __init__(self) -> None:
        self.salons: dict[str, Salon] = {}
        self.automation: dict[str, AutomationConfiguration] = {}
        self.channels: dict[str, list[MonitoringChannelConfig]] = {}
        self.campaigns: dict[str, TestCampaign] = {}
        self.variants: dict[str, Variant] = {}
        self.snapshots: dict[tuple[str, date], MetricSnapshot] = {}
        self.history: list[DeliveryRecord] = []
        self.templates: dict[str, MessageTemplate] = {}
        self.segments: list[CustomerSegment] = []
        self.rules: list[VariantGenerationRule] = []
        self.results: dict[str, TestResult] = {}
        self.recommendations: list[OptimizationRecommendation] = []
        self.insights: list[CampaignOptimizationInsight] = []
        self.action_logs: list[ActionLogEntry] = []
        self.template_updates: list[tuple[str, dict[str, Any]]] = []
        self.history_queries = 0
        self.commit_attempts = 0

    # -- seeding helpers --------------------------------------------------

    def add_salon(self, salon: Salon, automation: AutomationConfiguration | None = None) -> None:
        self.salons[salon.salon_id] = salon
        if automation is not None:
            self.automation[salon.salon_id] = automation

    def add_campaign(self, campaign: TestCampaign, *variants: Variant) -> None:
        self.campaigns[campaign.campaign_id] = campaign
        for variant in variants:
            self.variants[variant.variant_id] = variant

    def add_snapshot(self, snapshot: MetricSnapshot) -> None:
        self.snapshots[(snapshot.variant_id, snapshot.metric_date)] = snapshot

    # -- salons and configuration -----------------------------------------

    async def get_salon(self, salon_id):
        return self.salons.get(salon_id)

    async def list_enabled_salons(self):
        return [
            salon
            for salon_id, salon in sorted(self.salons.items())
            if salon_id in self.automation and self.automation[salon_id].is_enabled
        ]

    async def get_automation_config(self, salon_id):
        return self.automation.get(salon_id)

    async def list_monitoring_channels(self, salon_id):
        return list(self.channels.get(salon_id, []))

    async def mark_channels_monitored(self, salon_id, monitored_at):
        self.channels[salon_id] = [
            c.model_copy(update={"last_monitored_at": monitored_at}) if c.is_active else c
            for c in self.channels.get(salon_id, [])
        ]

    # -- campaigns and variants -------------------------------------------

    async def get_campaign(self, campaign_id):
        return self.campaigns.get(campaign_id)

    async def list_campaigns(self, salon_id, status=None, completed_after=None):
        campaigns = [c for c in self.campaigns.values() if c.salon_id == salon_id]
        if status is not None:
            campaigns = [c for c in campaigns if c.status == status]
        if completed_after is not None:
            campaigns = [
                c for c in campaigns if c.completed_at and c.completed_at >= completed_after
            ]
        return sorted(campaigns, key=lambda c: c.created_at)

    async def list_variants(self, campaign_id):
        return [v for v in self.variants.values() if v.campaign_id == campaign_id]

    async def insert_variant(self, variant):
        self.variants[variant.variant_id] = variant
        return variant

    async def commit_winner(self, campaign_id, winner_variant_id, result):
        self.commit_attempts += 1
        campaign = self.campaigns.get(campaign_id)
        if campaign is None or campaign.status != CampaignStatus.RUNNING:
            return False
        self.campaigns[campaign_id] = campaign.model_copy(
            update={"status": CampaignStatus.COMPLETED, "completed_at": result.completed_at}
        )
        self.results[campaign_id] = result
        for variant_id, variant in list(self.variants.items()):
            if variant.campaign_id != campaign_id:
                continue
            status = (
                VariantStatus.WINNER if variant_id == winner_variant_id else VariantStatus.LOSER
            )
            self.variants[variant_id] = variant.model_copy(update={"status": status})
        return True

    # -- metrics and history ----------------------------------------------

    async def list_snapshots(self, variant_id):
        return [
            snapshot
            for (vid, _), snapshot in sorted(self.snapshots.items(), key=lambda item: item[0][1])
            if vid == variant_id
        ]

    async def upsert_snapshot(self, snapshot):
        self.add_snapshot(snapshot)
        return snapshot

    async def list_delivery_history(
        self,
        *,
        salon_id=None,
        variant_id=None,
        template_id=None,
        segment_id=None,
        start=None,
        end=None,
    ):
        self.history_queries += 1
        records = self.history
        if salon_id is not None:
            records = [r for r in records if r.salon_id == salon_id]
        if variant_id is not None:
            records = [r for r in records if r.variant_id == variant_id]
        if template_id is not None:
            records = [r for r in records if r.template_id == template_id]
        if segment_id is not None:
            records = [r for r in records if r.segment_id == segment_id]
        if start is not None:
            records = [r for r in records if r.created_at >= start]
        if end is not None:
            records = [r for r in records if r.created_at < end]
        return list(records)

    # -- templates, segments and rules ------------------------------------

    async def get_template(self, template_id):
        return self.templates.get(template_id)

    async def list_templates(self, salon_id):
        return [t for t in self.templates.values() if t.salon_id == salon_id]

    async def update_template(self, template_id, changes):
        self.template_updates.append((template_id, dict(changes)))
        template = self.templates.get(template_id)
        if template is not None:
            self.templates[template_id] = template.model_copy(update=changes)

    async def list_segments(self, salon_id):
        return [s for s in self.segments if s.salon_id == salon_id]

    async def list_generation_rules(self, salon_id, rule_type):
        return sorted(
            (
                r
                for r in self.rules
                if r.salon_id == salon_id and r.rule_type == rule_type and r.is_active
            ),
            key=lambda r: r.priority,
            reverse=True,
        )

    # -- engine outputs ---------------------------------------------------

    async def insert_recommendation(self, recommendation):
        self.recommendations.append(recommendation)
        return recommendation

    async def list_recommendations(self, salon_id, created_after=None):
        return [
            r
            for r in self.recommendations
            if r.salon_id == salon_id and (created_after is None or r.created_at >= created_after)
        ]

    async def insert_insight(self, insight):
        self.insights.append(insight)
        return insight

    async def insert_action_log(self, entry):
        self.action_logs.append(entry)

    def action_types(self) -> list[str]:
        return [entry.action_type for entry in self.action_logs]


class RecordingDispatcher:
    """Message dispatcher that records every send and reports a fixed outcome."""

    def __init__(self, outcome: bool = True) -> None:
        self.outcome = outcome
        self.sent: list[tuple[str, Channel, dict]] = []

    async def send(self, destination, channel, content) -> bool:
        self.sent.append((destination, channel, content))
        return self.outcome


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_automation(salon_id: str = "salon-1", **overrides) -> AutomationConfiguration:
    return AutomationConfiguration(salon_id=salon_id, **overrides)


def make_campaign(
    campaign_id: str = "camp-1",
    salon_id: str = "salon-1",
    status: CampaignStatus = CampaignStatus.RUNNING,
    started_hours_ago: float = 48,
    **overrides,
) -> TestCampaign:
    defaults = {
        "campaign_id": campaign_id,
        "salon_id": salon_id,
        "name": f"Campaign {campaign_id}",
        "test_type": TestType.SUBJECT_LINE,
        "status": status,
        "base_template_id": "tmpl-1",
        "created_at": NOW - timedelta(hours=started_hours_ago + 1),
        "started_at": NOW - timedelta(hours=started_hours_ago),
    }
    defaults.update(overrides)
    return TestCampaign(**defaults)


def make_variant(
    variant_id: str,
    campaign_id: str = "camp-1",
    is_control: bool = False,
    created_offset_minutes: int = 0,
    **overrides,
) -> Variant:
    defaults = {
        "variant_id": variant_id,
        "campaign_id": campaign_id,
        "name": variant_id,
        "is_control": is_control,
        "created_at": NOW - timedelta(days=3) + timedelta(minutes=created_offset_minutes),
    }
    defaults.update(overrides)
    return Variant(**defaults)


def make_snapshot(
    variant_id: str,
    delivered: int,
    conversions: int,
    campaign_id: str = "camp-1",
    metric_date: date | None = None,
    **overrides,
) -> MetricSnapshot:
    counts = {
        "sent_count": delivered,
        "delivered_count": delivered,
        "open_count": 0,
        "click_count": 0,
        "conversion_count": conversions,
        "bounce_count": 0,
        "participant_count": delivered,
    }
    counts.update(overrides)
    return MetricSnapshot(
        campaign_id=campaign_id,
        variant_id=variant_id,
        metric_date=metric_date or NOW.date(),
        **counts,
    )


def make_record(
    salon_id: str = "salon-1",
    status: str = "delivered",
    created_at: datetime = NOW,
    opened: bool = False,
    clicked: bool = False,
    booked: bool = False,
    customer_id: str | None = None,
    **overrides,
) -> DeliveryRecord:
    n = next(_ids)
    return DeliveryRecord(
        message_id=f"msg-{n}",
        salon_id=salon_id,
        customer_id=customer_id or f"cust-{n}",
        status=status,
        opened_at=created_at if opened else None,
        clicked_at=created_at if clicked else None,
        booking_id=f"booking-{n}" if booked else None,
        created_at=created_at,
        **overrides,
    )


def make_records(count: int, engaged: int = 0, **kwargs) -> list[DeliveryRecord]:
    """``count`` records, the first ``engaged`` of which were opened."""
    return [make_record(opened=i < engaged, **kwargs) for i in range(count)]


def make_channel(
    config_id: str = "mon-1",
    salon_id: str = "salon-1",
    recipients: list[str] | None = None,
    **overrides,
) -> MonitoringChannelConfig:
    return MonitoringChannelConfig(
        config_id=config_id,
        salon_id=salon_id,
        alert_recipients=recipients if recipients is not None else ["owner@salon.test"],
        **overrides,
    )


def make_template(
    template_id: str = "tmpl-1",
    salon_id: str = "salon-1",
    subject: str | None = "Spring styles are here",
    content: str = "Book your next appointment with us.",
    channel: Channel = Channel.EMAIL,
) -> MessageTemplate:
    return MessageTemplate(
        template_id=template_id,
        salon_id=salon_id,
        name=f"Template {template_id}",
        channel=channel,
        subject=subject,
        content=content,
    )


DAY = (NOW - timedelta(days=2)).replace(minute=0)


def evening_peak_history() -> list[DeliveryRecord]:
    """50 messages at 18:00 with 20 opened, 150 spread over 08:00-17:00 with 10 opened."""
    history = make_records(50, engaged=20, created_at=DAY.replace(hour=18))
    for hour in range(8, 18):
        history += make_records(15, engaged=1, created_at=DAY.replace(hour=hour))
    return history
