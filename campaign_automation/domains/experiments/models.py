"""Pydantic models for A/B test campaigns, variants, metrics and decisions."""

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class CampaignStatus(StrEnum):
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VariantStatus(StrEnum):
    ACTIVE = "active"
    WINNER = "winner"
    LOSER = "loser"


class TestType(StrEnum):
    __test__ = False  # keep pytest from collecting this class

    SUBJECT_LINE = "subject_line"
    CONTENT = "content"
    SEND_TIME = "send_time"
    CHANNEL = "channel"
    PERSONALIZATION = "personalization"


class Channel(StrEnum):
    EMAIL = "email"
    SMS = "sms"


class Recommendation(StrEnum):
    IMPLEMENT_WINNER = "implement_winner"
    CONTINUE_TEST = "continue_test"
    INCONCLUSIVE = "inconclusive"
    MANUAL_REVIEW = "manual_review"


class ActionTaken(StrEnum):
    AUTO_WINNER = "auto_winner"
    MANUAL_SELECTION = "manual_selection"


class AlertType(StrEnum):
    EARLY_WINNER = "early_winner"
    SIGNIFICANT_CHANGE = "significant_change"
    PERFORMANCE_DROP = "performance_drop"
    TEST_COMPLETE = "test_complete"


class AlertSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RuleType(StrEnum):
    MINIMUM_IMPROVEMENT = "minimum_improvement"
    MINIMUM_SAMPLE_SIZE = "minimum_sample_size"
    MINIMUM_DURATION = "minimum_duration"
    COST_THRESHOLD = "cost_threshold"


class RuleCondition(StrEnum):
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"


# ---------------------------------------------------------------------------
# Records owned by the surrounding application
# ---------------------------------------------------------------------------


class Salon(BaseModel):
    salon_id: str
    name: str
    owner_email: str | None = None


class MessageTemplate(BaseModel):
    template_id: str
    salon_id: str
    name: str
    channel: Channel = Channel.EMAIL
    subject: str | None = None
    content: str = ""


class CustomerSegment(BaseModel):
    segment_id: str
    salon_id: str
    name: str
    criteria: dict[str, Any] = Field(default_factory=dict)


class DeliveryRecord(BaseModel):
    """One outbound message as recorded by the sending service."""

    message_id: str
    salon_id: str
    customer_id: str
    channel: Channel = Channel.EMAIL
    status: str  # queued | sent | delivered | opened | clicked | failed | bounced
    variant_id: str | None = None
    template_id: str | None = None
    segment_id: str | None = None
    failure_reason: str | None = None
    booking_id: str | None = None
    opened_at: datetime | None = None
    clicked_at: datetime | None = None
    created_at: datetime


class AutomationConfiguration(BaseModel):
    salon_id: str
    is_enabled: bool = True
    enable_variant_generation: bool = True
    max_variants_per_test: int = 4
    enable_performance_monitoring: bool = True
    monitoring_interval_minutes: int = 15
    performance_alert_threshold: float = 0.05
    enable_auto_winner_selection: bool = False
    auto_winner_confidence_level: int = 95
    minimum_test_duration_hours: int = 24
    minimum_sample_size: int = 100
    enable_campaign_optimization: bool = True
    learning_data_days: int = 30


class MonitoringChannelConfig(BaseModel):
    config_id: str
    salon_id: str
    name: str = "default"
    is_active: bool = True
    enable_email_alerts: bool = True
    enable_sms_alerts: bool = False
    alert_recipients: list[str] = Field(default_factory=list)
    alert_cooldown_minutes: int = 60
    last_monitored_at: datetime | None = None


class VariantGenerationRule(BaseModel):
    rule_id: str
    salon_id: str
    name: str
    rule_type: TestType
    is_active: bool = True
    priority: int = 0
    conditions: dict[str, Any] = Field(default_factory=dict)
    actions: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Experiment entities
# ---------------------------------------------------------------------------


class TestCampaign(BaseModel):
    __test__ = False

    campaign_id: str
    salon_id: str
    name: str
    test_type: TestType
    status: CampaignStatus = CampaignStatus.DRAFT
    base_template_id: str | None = None
    target_segment_id: str | None = None
    confidence_level: int = 95
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class Variant(BaseModel):
    variant_id: str
    campaign_id: str
    name: str
    is_control: bool = False
    template_overrides: dict[str, Any] = Field(default_factory=dict)
    channel_override: Channel | None = None
    audience_percentage: int = 50
    priority: int = 0
    status: VariantStatus = VariantStatus.ACTIVE
    created_at: datetime


class MetricCounts(BaseModel):
    sent_count: int = 0
    delivered_count: int = 0
    open_count: int = 0
    click_count: int = 0
    conversion_count: int = 0
    bounce_count: int = 0
    participant_count: int = 0


class MetricSnapshot(MetricCounts):
    """Counters for one variant on one calendar day."""

    campaign_id: str
    variant_id: str
    metric_date: date


class VariantPerformance(BaseModel):
    variant_id: str
    variant_name: str
    is_control: bool = False
    counts: MetricCounts = Field(default_factory=MetricCounts)
    open_rate: float = 0.0
    click_rate: float = 0.0
    conversion_rate: float = 0.0
    confidence: float = 0.5


class ZTestResult(BaseModel):
    is_significant: bool
    p_value: float
    z_score: float
    confidence: float
    improvement: float
    sample_size: int
    rationale: str


class VariantComparison(BaseModel):
    performance: VariantPerformance
    significance: ZTestResult


class BusinessRule(BaseModel):
    rule_id: str
    type: RuleType
    condition: RuleCondition
    value: float
    description: str


class WinnerSelectionResult(BaseModel):
    success: bool
    winner_variant_id: str | None = None
    winner_variant_name: str | None = None
    confidence: float = 0.0
    improvement: float = 0.0
    statistical_significance: float = 0.0
    p_value: float = 1.0
    sample_size: int = 0
    test_duration_hours: float = 0.0
    rationale: str
    business_rules_passed: bool = False
    failed_rules: list[str] = Field(default_factory=list)
    recommendation: Recommendation
    committed: bool = False


class TestResult(BaseModel):
    __test__ = False

    result_id: str
    campaign_id: str
    winner_variant_id: str | None = None
    completed_at: datetime
    statistical_significance: float | None = None
    confidence_level: int | None = None
    p_value: float | None = None
    performance_improvement: float | None = None  # fraction, 0.5 == +50%
    result_summary: dict[str, Any] = Field(default_factory=dict)
    action_taken: ActionTaken
    implemented_at: datetime | None = None
    notes: str = ""


class PerformanceAlert(BaseModel):
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    recommended_action: str


class GeneratedVariant(BaseModel):
    """A candidate produced by a generation rule, before it is persisted."""

    name: str
    template_overrides: dict[str, Any] = Field(default_factory=dict)
    channel_override: Channel | None = None
    confidence: float
    rationale: str


class ActionLogEntry(BaseModel):
    salon_id: str
    action_type: str
    description: str
    data: dict[str, Any] = Field(default_factory=dict)
    triggered_by: str = "system"
    status: str = "completed"
    campaign_id: str | None = None
    created_at: datetime


class TestPerformanceSummary(BaseModel):
    __test__ = False

    campaign_id: str
    campaign_name: str
    status: CampaignStatus
    test_duration_hours: float
    total_participants: int
    variants: list[VariantPerformance] = Field(default_factory=list)
    best_variant_id: str | None = None
    best_variant_significance: ZTestResult | None = None
    recommendation: Recommendation


class TemplatePerformanceAnalysis(BaseModel):
    template_id: str
    total_sent: int
    open_rate: float
    click_rate: float
    suggestions: list[str] = Field(default_factory=list)
