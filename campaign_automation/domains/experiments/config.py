"""Experiment engine thresholds with sensible defaults."""

import os
from dataclasses import dataclass, field


@dataclass
class SignificanceThresholds:
    min_delivered_per_arm: int = 30
    required_z_scores: dict[int, float] = field(
        default_factory=lambda: {90: 1.645, 95: 1.96, 99: 2.576}
    )
    default_z_score: float = 1.96


@dataclass
class WinnerSettings:
    default_min_improvement_pct: float = 5.0
    default_min_sample_size: int = 100
    inconclusive_confidence: float = 0.8


@dataclass
class MonitoringSettings:
    default_interval_minutes: int = 15
    early_winner_min_improvement_pct: float = 10.0
    performance_drop_floor_pct: float = 1.0
    default_alert_threshold: float = 0.05
    default_cooldown_minutes: int = 60


@dataclass
class GenerationSettings:
    short_subject_length: int = 30
    urgency_phrases: tuple[str, ...] = (
        "Limited Time",
        "Last Chance",
        "Urgent",
        "Act Fast",
        "Today Only",
    )
    emojis: tuple[str, ...] = ("✨", "💇‍♀️", "💅", "🌟", "💄")
    numbers: tuple[str, ...] = ("3", "5", "7", "10")
    low_competition_hours: tuple[int, ...] = (10, 14, 16)
    default_send_hour: int = 10


@dataclass
class ExperimentConfig:
    significance: SignificanceThresholds = field(default_factory=SignificanceThresholds)
    winner: WinnerSettings = field(default_factory=WinnerSettings)
    monitoring: MonitoringSettings = field(default_factory=MonitoringSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)

    @classmethod
    def from_env(cls) -> "ExperimentConfig":
        """Load config with env var overrides. Env vars use EXPERIMENT_ prefix."""
        config = cls()

        if v := os.getenv("EXPERIMENT_MIN_DELIVERED_PER_ARM"):
            config.significance.min_delivered_per_arm = int(v)
        if v := os.getenv("EXPERIMENT_DEFAULT_Z_SCORE"):
            config.significance.default_z_score = float(v)

        if v := os.getenv("EXPERIMENT_MIN_IMPROVEMENT_PCT"):
            config.winner.default_min_improvement_pct = float(v)
        if v := os.getenv("EXPERIMENT_MIN_SAMPLE_SIZE"):
            config.winner.default_min_sample_size = int(v)

        if v := os.getenv("EXPERIMENT_MONITORING_INTERVAL_MINUTES"):
            config.monitoring.default_interval_minutes = int(v)
        if v := os.getenv("EXPERIMENT_EARLY_WINNER_MIN_IMPROVEMENT_PCT"):
            config.monitoring.early_winner_min_improvement_pct = float(v)
        if v := os.getenv("EXPERIMENT_PERFORMANCE_DROP_FLOOR_PCT"):
            config.monitoring.performance_drop_floor_pct = float(v)
        if v := os.getenv("EXPERIMENT_ALERT_COOLDOWN_MINUTES"):
            config.monitoring.default_cooldown_minutes = int(v)

        if v := os.getenv("EXPERIMENT_SHORT_SUBJECT_LENGTH"):
            config.generation.short_subject_length = int(v)

        return config


default_config = ExperimentConfig()
