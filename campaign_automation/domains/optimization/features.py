"""Engagement features and the per-type optimization analyses.

These functions are pure: they take delivery history already pulled from the
store and return an ``OptimizationAnalysis`` when the evidence threshold is
met, or ``None`` when it is not.
"""

import calendar
import math
import re
from collections import defaultdict
from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from campaign_automation.domains.experiments.models import (
    CustomerSegment,
    DeliveryRecord,
    MessageTemplate,
)

from .config import OptimizationConfig, default_optimization_config
from .models import OptimizationAnalysis, OptimizationType

EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF\U0001F900-\U0001F9FF☀-➿]"
)
PERSONALIZATION_PATTERN = re.compile(r"\{\{.+?\}\}")
URGENCY_WORDS = ("urgent", "limited", "hurry", "act now", "expires", "deadline", "last chance")
DEFAULT_SEND_HOUR = 10


def _is_engaged(record: DeliveryRecord) -> bool:
    return record.opened_at is not None or record.clicked_at is not None


def engagement_rate(records: Sequence[DeliveryRecord]) -> float:
    """Percentage of messages that were opened or clicked."""
    if not records:
        return 0.0
    return sum(1 for r in records if _is_engaged(r)) / len(records) * 100


def conversion_rate(records: Sequence[DeliveryRecord]) -> float:
    if not records:
        return 0.0
    return sum(1 for r in records if r.booking_id) / len(records) * 100


def bucket_engagement(
    records: Sequence[DeliveryRecord], key: Callable[[DeliveryRecord], Hashable]
) -> dict[Hashable, float]:
    sent: dict[Hashable, int] = defaultdict(int)
    engaged: dict[Hashable, int] = defaultdict(int)
    for record in records:
        bucket = key(record)
        sent[bucket] += 1
        if _is_engaged(record):
            engaged[bucket] += 1
    return {bucket: engaged[bucket] / sent[bucket] * 100 for bucket in sent}


def has_emojis(text: str) -> bool:
    return bool(EMOJI_PATTERN.search(text))


def has_urgency(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in URGENCY_WORDS)


def has_personalization(text: str) -> bool:
    return bool(PERSONALIZATION_PATTERN.search(text))


# ---------------------------------------------------------------------------
# Send time
# ---------------------------------------------------------------------------


def send_time_confidence(sample_size: int, buckets: int) -> float:
    if sample_size >= 200 and buckets >= 10:
        return 0.9
    if sample_size >= 100 and buckets >= 8:
        return 0.8
    if sample_size >= 50 and buckets >= 6:
        return 0.7
    return 0.6


def _best_bucket(engagement: Mapping, default):
    best, best_value = default, 0.0
    for bucket in sorted(engagement):
        if engagement[bucket] > best_value:
            best, best_value = bucket, engagement[bucket]
    return best


def analyze_send_time(
    history: Sequence[DeliveryRecord],
    config: OptimizationConfig = default_optimization_config,
) -> OptimizationAnalysis | None:
    """Find the hour of day whose engagement beats the overall average.

    Hours are taken in ``config.audience_timezone``. The lift is reported
    as computed, without a cap.
    """
    if len(history) < config.evidence.min_send_time_messages:
        return None

    tz = ZoneInfo(config.audience_timezone)
    hourly = bucket_engagement(history, lambda r: r.created_at.astimezone(tz).hour)
    weekday = bucket_engagement(history, lambda r: r.created_at.astimezone(tz).weekday())

    average = engagement_rate(history)
    if average == 0:
        return None

    best_hour = _best_bucket(hourly, DEFAULT_SEND_HOUR)
    best_day = _best_bucket(weekday, 1)
    optimal = hourly.get(best_hour, average)
    improvement = (optimal - average) / average * 100
    if improvement < config.evidence.min_lift_pct:
        return None

    recommended_time = f"{best_hour:02d}:00"
    return OptimizationAnalysis(
        optimization_type=OptimizationType.SEND_TIME,
        expected_improvement=improvement,
        confidence=send_time_confidence(len(history), len(hourly)),
        rationale=(
            f"Analysis of {len(history)} messages shows {recommended_time} has "
            f"{optimal:.1f}% engagement vs {average:.1f}% average."
        ),
        data_points=len(hourly),
        implementation_data={
            "recommended_time": recommended_time,
            "recommended_day": calendar.day_name[best_day],
        },
        supporting_data={
            "hourly_engagement": {str(h): v for h, v in sorted(hourly.items())},
            "day_of_week_engagement": {
                calendar.day_name[d]: v for d, v in sorted(weekday.items())
            },
            "audience_timezone": config.audience_timezone,
        },
    )


# ---------------------------------------------------------------------------
# Audience
# ---------------------------------------------------------------------------


def analyze_audience(
    segment_history: Sequence[tuple[CustomerSegment, Sequence[DeliveryRecord]]],
    config: OptimizationConfig = default_optimization_config,
) -> OptimizationAnalysis | None:
    """Rank segments by engagement and compare the top ones to the average."""
    performance = {}
    for segment, records in segment_history:
        if not records:
            continue
        performance[segment.name] = {
            "segment_id": segment.segment_id,
            "total_sent": len(records),
            "engagement": engagement_rate(records),
            "conversion": conversion_rate(records),
        }
    if not performance:
        return None

    eligible = [
        name
        for name, data in performance.items()
        if data["total_sent"] >= config.evidence.min_segment_messages
    ]
    top = sorted(eligible, key=lambda name: performance[name]["engagement"], reverse=True)[
        : config.evidence.top_segments
    ]
    if not top:
        return None

    average = sum(d["engagement"] for d in performance.values()) / len(performance)
    if average == 0:
        return None
    top_average = sum(performance[name]["engagement"] for name in top) / len(top)
    improvement = (top_average - average) / average * 100
    if improvement < config.evidence.min_lift_pct:
        return None

    return OptimizationAnalysis(
        optimization_type=OptimizationType.AUDIENCE,
        expected_improvement=improvement,
        confidence=0.8 if len(top) >= 2 else 0.6,
        rationale=(
            f"Top segments show {top_average:.1f}% engagement vs "
            f"{average:.1f}% average across all segments."
        ),
        data_points=len(performance),
        implementation_data={"recommended_segments": top},
        supporting_data={
            "segment_performance": performance,
            "high_engagement_segments": [
                name for name, d in performance.items() if d["engagement"] > 20
            ],
            "low_engagement_segments": [
                name for name, d in performance.items() if d["engagement"] < 10
            ],
        },
    )


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


@dataclass
class TemplateFeatures:
    template_id: str
    engagement: float
    message_count: int
    subject_length: int
    content_length: int
    has_emojis: bool
    has_urgency: bool
    has_personalization: bool


def template_features(
    template: MessageTemplate, records: Sequence[DeliveryRecord]
) -> TemplateFeatures:
    headline = template.subject or template.content
    return TemplateFeatures(
        template_id=template.template_id,
        engagement=engagement_rate(records),
        message_count=len(records),
        subject_length=len(template.subject or ""),
        content_length=len(template.content),
        has_emojis=has_emojis(headline),
        has_urgency=has_urgency(headline),
        has_personalization=has_personalization(template.content),
    )


def _share(features: Sequence[TemplateFeatures], flag: str) -> float:
    return sum(1 for f in features if getattr(f, flag)) / len(features)


def _mean(features: Sequence[TemplateFeatures], attr: str) -> float:
    return sum(getattr(f, attr) for f in features) / len(features)


def analyze_content(
    features: Sequence[TemplateFeatures],
    config: OptimizationConfig = default_optimization_config,
) -> OptimizationAnalysis | None:
    """Compare structural features of the top and bottom thirds of templates."""
    eligible = [f for f in features if f.message_count >= config.evidence.min_template_messages]
    if len(eligible) < config.evidence.min_templates:
        return None

    third = math.ceil(len(eligible) / 3)
    top = sorted(eligible, key=lambda f: f.engagement, reverse=True)[:third]
    bottom = sorted(eligible, key=lambda f: f.engagement)[:third]

    heuristics = config.content
    performing = []
    if _mean(top, "subject_length") < heuristics.short_subject_chars:
        performing.append("Short subject lines")
    if _share(top, "has_emojis") > heuristics.emoji_share:
        performing.append("Emoji usage")
    if _share(top, "has_urgency") > heuristics.urgency_share:
        performing.append("Urgency language")

    underperforming = []
    if _mean(bottom, "subject_length") > heuristics.long_subject_chars:
        underperforming.append("Long subject lines")
    if _mean(bottom, "content_length") > heuristics.long_content_chars:
        underperforming.append("Lengthy content")

    if not performing:
        return None

    changes = {}
    improvement = 0.0
    if "Short subject lines" in performing:
        changes["subject_line"] = "Shorten subject line to under 50 characters"
        improvement += heuristics.short_subject_gain_pct
    if "Urgency language" in performing:
        changes["content"] = "Add urgency elements to content"
        improvement += heuristics.urgency_gain_pct
    if "Emoji usage" in performing:
        changes["call_to_action"] = "Add relevant emojis to call-to-action"
        improvement += heuristics.emoji_gain_pct

    return OptimizationAnalysis(
        optimization_type=OptimizationType.CONTENT,
        expected_improvement=min(improvement, heuristics.max_gain_pct),
        confidence=heuristics.confidence,
        rationale="Based on analysis of top-performing content patterns",
        data_points=len(eligible),
        implementation_data={"recommended_changes": changes},
        supporting_data={
            "performing_elements": performing,
            "underperforming_elements": underperforming,
            "personalization_share_top": _share(top, "has_personalization"),
        },
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def impact_score(
    expected_improvement: float,
    optimization_type: OptimizationType,
    config: OptimizationConfig = default_optimization_config,
) -> float:
    weight = config.scoring.type_weights.get(
        optimization_type.value, config.scoring.default_type_weight
    )
    return min(expected_improvement / 100 * weight, 1.0)


def priority_for(
    expected_improvement: float,
    confidence: float,
    config: OptimizationConfig = default_optimization_config,
) -> int:
    score = expected_improvement / 100 * confidence
    for minimum, priority in config.scoring.priority_buckets:
        if score >= minimum:
            return priority
    return config.scoring.default_priority
