"""SQLAlchemy ORM models for campaign experimentation state.

Column names match the pydantic domain models so rows convert with
``model_validate(row, from_attributes=True)``.
"""

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SalonDB(Base):
    __tablename__ = "salons"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    salon_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str] = mapped_column(String)
    owner_email: Mapped[str | None] = mapped_column(String, nullable=True)


class AutomationConfigurationDB(Base):
    __tablename__ = "automation_configurations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    salon_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_variant_generation: Mapped[bool] = mapped_column(Boolean, default=True)
    max_variants_per_test: Mapped[int] = mapped_column(Integer, default=4)
    enable_performance_monitoring: Mapped[bool] = mapped_column(Boolean, default=True)
    monitoring_interval_minutes: Mapped[int] = mapped_column(Integer, default=15)
    performance_alert_threshold: Mapped[float] = mapped_column(Float, default=0.05)
    enable_auto_winner_selection: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_winner_confidence_level: Mapped[int] = mapped_column(Integer, default=95)
    minimum_test_duration_hours: Mapped[int] = mapped_column(Integer, default=24)
    minimum_sample_size: Mapped[int] = mapped_column(Integer, default=100)
    enable_campaign_optimization: Mapped[bool] = mapped_column(Boolean, default=True)
    learning_data_days: Mapped[int] = mapped_column(Integer, default=30)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class MonitoringSettingsDB(Base):
    __tablename__ = "performance_monitoring_settings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    config_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String, default="default")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_email_alerts: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_sms_alerts: Mapped[bool] = mapped_column(Boolean, default=False)
    alert_recipients: Mapped[list] = mapped_column(JSONB, default=list)
    alert_cooldown_minutes: Mapped[int] = mapped_column(Integer, default=60)
    last_monitored_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class TestCampaignDB(Base):
    __tablename__ = "ab_test_campaigns"
    __test__ = False

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    campaign_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    test_type: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="draft", index=True)
    base_template_id: Mapped[str | None] = mapped_column(String, nullable=True)
    target_segment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence_level: Mapped[int] = mapped_column(Integer, default=95)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class TestVariantDB(Base):
    __tablename__ = "test_variants"
    __test__ = False

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    variant_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    campaign_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    is_control: Mapped[bool] = mapped_column(Boolean, default=False)
    template_overrides: Mapped[dict] = mapped_column(JSONB, default=dict)
    channel_override: Mapped[str | None] = mapped_column(String, nullable=True)
    audience_percentage: Mapped[int] = mapped_column(Integer, default=50)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TestMetricDB(Base):
    __tablename__ = "test_metrics"
    __table_args__ = (UniqueConstraint("variant_id", "metric_date", name="uq_test_metrics_day"),)
    __test__ = False

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    campaign_id: Mapped[str] = mapped_column(String, index=True)
    variant_id: Mapped[str] = mapped_column(String, index=True)
    metric_date: Mapped[date] = mapped_column(Date)
    sent_count: Mapped[int] = mapped_column(Integer, default=0)
    delivered_count: Mapped[int] = mapped_column(Integer, default=0)
    open_count: Mapped[int] = mapped_column(Integer, default=0)
    click_count: Mapped[int] = mapped_column(Integer, default=0)
    conversion_count: Mapped[int] = mapped_column(Integer, default=0)
    bounce_count: Mapped[int] = mapped_column(Integer, default=0)
    participant_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TestResultDB(Base):
    __tablename__ = "test_results"
    __test__ = False

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    result_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    campaign_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    winner_variant_id: Mapped[str | None] = mapped_column(String, nullable=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    statistical_significance: Mapped[float | None] = mapped_column(Float, nullable=True)
    confidence_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    p_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    performance_improvement: Mapped[float | None] = mapped_column(Float, nullable=True)
    result_summary: Mapped[dict] = mapped_column(JSONB, default=dict)
    action_taken: Mapped[str] = mapped_column(String)
    implemented_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")


class MessageTemplateDB(Base):
    __tablename__ = "message_templates"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    template_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    channel: Mapped[str] = mapped_column(String, default="email")
    subject: Mapped[str | None] = mapped_column(String, nullable=True)
    content: Mapped[str] = mapped_column(Text, default="")


class CustomerSegmentDB(Base):
    __tablename__ = "customer_segments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    segment_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    criteria: Mapped[dict] = mapped_column(JSONB, default=dict)


class CommunicationHistoryDB(Base):
    __tablename__ = "communication_history"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    customer_id: Mapped[str] = mapped_column(String, index=True)
    channel: Mapped[str] = mapped_column(String, default="email")
    status: Mapped[str] = mapped_column(String)
    variant_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    template_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    segment_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    failure_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    booking_id: Mapped[str | None] = mapped_column(String, nullable=True)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class VariantGenerationRuleDB(Base):
    __tablename__ = "variant_generation_rules"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    rule_type: Mapped[str] = mapped_column(String, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    conditions: Mapped[dict] = mapped_column(JSONB, default=dict)
    actions: Mapped[dict] = mapped_column(JSONB, default=dict)


class OptimizationRecommendationDB(Base):
    __tablename__ = "optimization_recommendations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    recommendation_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    campaign_id: Mapped[str | None] = mapped_column(String, nullable=True)
    test_campaign_id: Mapped[str | None] = mapped_column(String, nullable=True)
    recommendation_type: Mapped[str] = mapped_column(String)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text)
    confidence_score: Mapped[float] = mapped_column(Float)
    expected_improvement: Mapped[float] = mapped_column(Float)
    impact_score: Mapped[float] = mapped_column(Float)
    priority: Mapped[int] = mapped_column(Integer)
    implementation_data: Mapped[dict] = mapped_column(JSONB, default=dict)
    implementation_complexity: Mapped[str] = mapped_column(String, default="low")
    estimated_effort_hours: Mapped[float] = mapped_column(Float, default=1.0)
    model_version: Mapped[str] = mapped_column(String)
    based_on_data_points: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, default="active", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class OptimizationInsightDB(Base):
    __tablename__ = "campaign_optimization_insights"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    insight_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    insight_type: Mapped[str] = mapped_column(String)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str] = mapped_column(Text)
    confidence: Mapped[float] = mapped_column(Float)
    sample_size: Mapped[int] = mapped_column(Integer, default=0)
    data: Mapped[dict] = mapped_column(JSONB, default=dict)
    supporting_metrics: Mapped[dict] = mapped_column(JSONB, default=dict)
    recommended_actions: Mapped[list] = mapped_column(JSONB, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ActionLogDB(Base):
    __tablename__ = "automated_action_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    salon_id: Mapped[str] = mapped_column(String, index=True)
    campaign_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    action_type: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str] = mapped_column(Text)
    data: Mapped[dict] = mapped_column(JSONB, default=dict)
    triggered_by: Mapped[str] = mapped_column(String, default="system")
    status: Mapped[str] = mapped_column(String, default="completed")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
