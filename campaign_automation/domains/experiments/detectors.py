"""Alert detectors evaluated on every monitoring check.

Each detector looks at the current variant performances and emits at most
one alert. Detectors are synchronous and read-only.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from .config import ExperimentConfig, default_config
from .models import (
    AlertSeverity,
    AlertType,
    AutomationConfiguration,
    PerformanceAlert,
    TestCampaign,
    VariantPerformance,
)
from .significance import z_test
from .winner import elapsed_hours


class AlertDetector(ABC):
    """Base class for monitoring alert detectors."""

    alert_type: AlertType
    severity: AlertSeverity

    def __init__(self, config: ExperimentConfig = default_config) -> None:
        self._config = config

    @abstractmethod
    def detect(
        self,
        campaign: TestCampaign,
        performances: Sequence[VariantPerformance],
        automation: AutomationConfiguration,
        now: datetime,
    ) -> PerformanceAlert | None:
        """Return an alert when this detector's condition holds."""
        ...

    def _alert(self, message: str, data: dict, recommended_action: str) -> PerformanceAlert:
        return PerformanceAlert(
            alert_type=self.alert_type,
            severity=self.severity,
            message=message,
            data=data,
            recommended_action=recommended_action,
        )


def _control_and_rest(
    performances: Sequence[VariantPerformance],
) -> tuple[VariantPerformance, list[VariantPerformance]]:
    # Performances arrive in creation order, so the first is the fallback control
    control = next((p for p in performances if p.is_control), performances[0])
    return control, [p for p in performances if p.variant_id != control.variant_id]


class EarlyWinnerDetector(AlertDetector):
    alert_type = AlertType.EARLY_WINNER
    severity = AlertSeverity.HIGH

    def detect(self, campaign, performances, automation, now):
        control, others = _control_and_rest(performances)
        required = automation.auto_winner_confidence_level / 100
        min_lift = self._config.monitoring.early_winner_min_improvement_pct

        best = None
        for perf in others:
            result = z_test(
                control.counts,
                perf.counts,
                automation.auto_winner_confidence_level,
                variant_name=perf.variant_name,
                config=self._config,
            )
            if (
                result.confidence >= required
                and perf.counts.sent_count >= automation.minimum_sample_size
                and result.improvement > min_lift
            ):
                if best is None or result.improvement > best[1].improvement:
                    best = (perf, result)

        if best is None:
            return None

        perf, result = best
        if automation.enable_auto_winner_selection:
            action = "Auto-winner selection will be triggered"
        else:
            action = "Consider manually selecting this variant as the winner"
        return self._alert(
            f"Early winner detected: {perf.variant_name} shows "
            f"{result.improvement:.1f}% improvement with "
            f"{result.confidence * 100:.1f}% confidence",
            {
                "variant_id": perf.variant_id,
                "variant_name": perf.variant_name,
                "improvement": result.improvement,
                "confidence": result.confidence,
                "sample_size": perf.counts.sent_count,
            },
            action,
        )


class SignificantChangeDetector(AlertDetector):
    alert_type = AlertType.SIGNIFICANT_CHANGE
    severity = AlertSeverity.MEDIUM

    def detect(self, campaign, performances, automation, now):
        ordered = sorted(performances, key=lambda p: p.conversion_rate, reverse=True)
        best, worst = ordered[0], ordered[-1]
        gap = best.conversion_rate - worst.conversion_rate
        threshold = automation.performance_alert_threshold * 100

        if gap <= threshold:
            return None

        return self._alert(
            f"Significant performance difference: {best.variant_name} "
            f"({best.conversion_rate:.2f}%) vs {worst.variant_name} "
            f"({worst.conversion_rate:.2f}%)",
            {
                "best_variant_id": best.variant_id,
                "worst_variant_id": worst.variant_id,
                "difference": gap,
                "threshold": threshold,
            },
            "Monitor closely - may indicate a clear winner emerging",
        )


class PerformanceDropDetector(AlertDetector):
    alert_type = AlertType.PERFORMANCE_DROP
    severity = AlertSeverity.MEDIUM

    def detect(self, campaign, performances, automation, now):
        floor = self._config.monitoring.performance_drop_floor_pct
        poor = [p for p in performances if p.conversion_rate < floor]
        if not poor:
            return None

        return self._alert(
            f"{len(poor)} variant(s) performing below {floor:g}% conversion rate",
            {
                "poor_variants": [
                    {
                        "variant_id": p.variant_id,
                        "name": p.variant_name,
                        "conversion_rate": p.conversion_rate,
                    }
                    for p in poor
                ]
            },
            "Review variant content and targeting",
        )


class TestCompletionDetector(AlertDetector):
    __test__ = False

    alert_type = AlertType.TEST_COMPLETE
    severity = AlertSeverity.LOW

    def detect(self, campaign, performances, automation, now):
        duration = elapsed_hours(campaign, now)
        total_samples = sum(p.counts.sent_count for p in performances)
        required_samples = automation.minimum_sample_size * len(performances)

        if duration < automation.minimum_test_duration_hours or total_samples < required_samples:
            return None

        return self._alert(
            f"Test has reached minimum duration ({duration:.1f}h) and sample size "
            f"({total_samples} messages)",
            {"duration_hours": duration, "total_samples": total_samples},
            "Review results and select winner",
        )


def default_detectors(config: ExperimentConfig = default_config) -> list[AlertDetector]:
    return [
        EarlyWinnerDetector(config),
        SignificantChangeDetector(config),
        PerformanceDropDetector(config),
        TestCompletionDetector(config),
    ]
