"""Campaign optimizer thresholds, weights and expiry windows."""

import os
from dataclasses import dataclass, field


@dataclass
class EvidenceThresholds:
    min_send_time_messages: int = 50
    min_segment_messages: int = 10
    top_segments: int = 3
    min_templates: int = 3
    min_template_messages: int = 5
    min_lift_pct: float = 5.0


@dataclass
class ContentHeuristics:
    short_subject_chars: float = 50.0
    long_subject_chars: float = 60.0
    long_content_chars: float = 500.0
    emoji_share: float = 0.6
    urgency_share: float = 0.5
    short_subject_gain_pct: float = 8.0
    urgency_gain_pct: float = 12.0
    emoji_gain_pct: float = 6.0
    max_gain_pct: float = 25.0
    confidence: float = 0.75


@dataclass
class ScoringSettings:
    type_weights: dict[str, float] = field(
        default_factory=lambda: {
            "content": 0.9,
            "audience": 0.8,
            "frequency": 0.75,
            "send_time": 0.7,
            "channel": 0.6,
        }
    )
    default_type_weight: float = 0.5
    # (minimum score, priority), checked in order
    priority_buckets: tuple[tuple[float, int], ...] = ((0.2, 9), (0.15, 7), (0.1, 5))
    default_priority: int = 3


@dataclass
class OptimizationConfig:
    evidence: EvidenceThresholds = field(default_factory=EvidenceThresholds)
    content: ContentHeuristics = field(default_factory=ContentHeuristics)
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    expiry_days: dict[str, int] = field(
        default_factory=lambda: {
            "send_time": 30,
            "audience": 45,
            "content": 60,
            "channel": 30,
            "frequency": 45,
        }
    )
    audience_timezone: str = "UTC"
    model_version_suffix: str = "v1.0"

    @classmethod
    def from_env(cls) -> "OptimizationConfig":
        """Load config with env var overrides. Env vars use OPTIMIZATION_ prefix."""
        config = cls()

        if v := os.getenv("OPTIMIZATION_MIN_SEND_TIME_MESSAGES"):
            config.evidence.min_send_time_messages = int(v)
        if v := os.getenv("OPTIMIZATION_MIN_SEGMENT_MESSAGES"):
            config.evidence.min_segment_messages = int(v)
        if v := os.getenv("OPTIMIZATION_MIN_LIFT_PCT"):
            config.evidence.min_lift_pct = float(v)
        if v := os.getenv("OPTIMIZATION_MAX_CONTENT_GAIN_PCT"):
            config.content.max_gain_pct = float(v)
        if v := os.getenv("OPTIMIZATION_AUDIENCE_TIMEZONE"):
            config.audience_timezone = v

        return config


default_optimization_config = OptimizationConfig()
