"""Pydantic models for campaign optimization analyses and recommendations."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class OptimizationType(StrEnum):
    SEND_TIME = "send_time"
    AUDIENCE = "audience"
    CONTENT = "content"
    CHANNEL = "channel"
    FREQUENCY = "frequency"


class Timeframe(StrEnum):
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_90_DAYS = "last_90_days"
    ALL_TIME = "all_time"


class RecommendationStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"


class OptimizationContext(BaseModel):
    salon_id: str
    timeframe: Timeframe = Timeframe.LAST_30_DAYS
    optimization_types: list[OptimizationType] = Field(
        default_factory=lambda: list(OptimizationType)
    )
    campaign_id: str | None = None
    test_campaign_id: str | None = None


class OptimizationAnalysis(BaseModel):
    """Outcome of one analysis that cleared its evidence threshold."""

    optimization_type: OptimizationType
    expected_improvement: float  # percent
    confidence: float
    rationale: str
    data_points: int
    implementation_data: dict[str, Any] = Field(default_factory=dict)
    supporting_data: dict[str, Any] = Field(default_factory=dict)


class OptimizationRecommendation(BaseModel):
    recommendation_id: str
    salon_id: str
    campaign_id: str | None = None
    test_campaign_id: str | None = None
    recommendation_type: OptimizationType
    title: str
    description: str
    confidence_score: float
    expected_improvement: float  # fraction, 0.25 == +25%
    impact_score: float
    priority: int
    implementation_data: dict[str, Any] = Field(default_factory=dict)
    implementation_complexity: str = "low"
    estimated_effort_hours: float = 1.0
    model_version: str
    based_on_data_points: int = 0
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    created_at: datetime
    expires_at: datetime


class CampaignOptimizationInsight(BaseModel):
    insight_id: str
    salon_id: str
    insight_type: str  # send_time_patterns | audience_preferences
    title: str
    description: str
    confidence: float
    sample_size: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    supporting_metrics: dict[str, Any] = Field(default_factory=dict)
    recommended_actions: list[str] = Field(default_factory=list)
    created_at: datetime
    valid_until: datetime
