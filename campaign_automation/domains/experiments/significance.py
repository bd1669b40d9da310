"""Two-proportion significance testing for variant conversion rates.

Every function here is pure and synchronous. The normal CDF uses the
Abramowitz and Stegun rational approximation (formula 26.2.17), which is
accurate to about 7.5e-8 and keeps the engine free of numeric dependencies.
"""

import math

from .config import ExperimentConfig, default_config
from .models import MetricCounts, ZTestResult

INSUFFICIENT_SAMPLE_RATIONALE = "Insufficient sample size for statistical analysis"
ZERO_STANDARD_ERROR_RATIONALE = "Cannot calculate statistical significance (zero standard error)"


def normal_cdf(x: float) -> float:
    """Standard normal cumulative distribution function."""
    t = 1 / (1 + 0.2316419 * abs(x))
    d = 0.3989423 * math.exp(-x * x / 2)
    prob = d * t * (0.3193815 + t * (-0.3565638 + t * (1.781478 + t * (-1.821256 + t * 1.330274))))
    return 1 - prob if x > 0 else prob


def required_z_score(confidence_level: int, config: ExperimentConfig = default_config) -> float:
    """Critical z value for a two-tailed test at the given confidence percent."""
    return config.significance.required_z_scores.get(
        confidence_level, config.significance.default_z_score
    )


def sample_size_confidence(sample_size: int) -> float:
    """Heuristic confidence for a single arm when a full test does not apply."""
    if sample_size >= 1000:
        return 0.99
    if sample_size >= 400:
        return 0.95
    if sample_size >= 100:
        return 0.90
    if sample_size >= 30:
        return 0.80
    return 0.5


def z_test(
    control: MetricCounts,
    variant: MetricCounts,
    confidence_level: int = 95,
    variant_name: str = "Variant",
    config: ExperimentConfig = default_config,
) -> ZTestResult:
    """Compare variant conversions against control with a pooled two-proportion z-test.

    Conversion rates are measured over delivered messages. ``improvement`` is
    the percentage lift of the variant over control and is 0 when the control
    rate is 0.
    """
    n1 = control.delivered_count
    n2 = variant.delivered_count
    minimum = config.significance.min_delivered_per_arm

    if n1 < minimum or n2 < minimum:
        return ZTestResult(
            is_significant=False,
            p_value=1.0,
            z_score=0.0,
            confidence=0.5,
            improvement=0.0,
            sample_size=n2,
            rationale=INSUFFICIENT_SAMPLE_RATIONALE,
        )

    p1 = control.conversion_count / n1
    p2 = variant.conversion_count / n2
    improvement = (p2 - p1) / p1 * 100 if p1 > 0 else 0.0

    p_pooled = (control.conversion_count + variant.conversion_count) / (n1 + n2)
    se = math.sqrt(p_pooled * (1 - p_pooled) * (1 / n1 + 1 / n2))

    if se == 0:
        return ZTestResult(
            is_significant=False,
            p_value=1.0,
            z_score=0.0,
            confidence=0.0,
            improvement=improvement,
            sample_size=n2,
            rationale=ZERO_STANDARD_ERROR_RATIONALE,
        )

    z_score = abs(p2 - p1) / se
    # The approximation can land a hair outside [0, 1] near z == 0
    p_value = min(1.0, max(0.0, 2 * (1 - normal_cdf(z_score))))
    confidence = 1 - p_value

    is_significant = z_score >= required_z_score(confidence_level, config) and improvement > 0

    direction = "improvement" if improvement > 0 else "decline"
    rationale = (
        f"{variant_name} shows {abs(improvement):.1f}% {direction} "
        f"with {confidence * 100:.1f}% confidence"
    )
    if not is_significant:
        rationale += " (not statistically significant)"

    return ZTestResult(
        is_significant=is_significant,
        p_value=p_value,
        z_score=z_score,
        confidence=confidence,
        improvement=improvement,
        sample_size=n2,
        rationale=rationale,
    )
