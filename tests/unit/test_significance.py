"""Tests for the two-proportion significance engine."""

import pytest

from campaign_automation.domains.experiments.config import ExperimentConfig
from campaign_automation.domains.experiments.models import MetricCounts
from campaign_automation.domains.experiments.significance import (
    INSUFFICIENT_SAMPLE_RATIONALE,
    ZERO_STANDARD_ERROR_RATIONALE,
    normal_cdf,
    required_z_score,
    sample_size_confidence,
    z_test,
)


def _counts(delivered: int, conversions: int) -> MetricCounts:
    return MetricCounts(
        sent_count=delivered,
        delivered_count=delivered,
        conversion_count=conversions,
        participant_count=delivered,
    )


class TestNormalCdf:
    def test_center(self):
        assert normal_cdf(0) == pytest.approx(0.5, abs=1e-6)

    def test_two_tailed_95_critical_value(self):
        assert normal_cdf(1.96) == pytest.approx(0.975, abs=1e-4)

    @pytest.mark.parametrize("x", [0.3, 1.0, 1.645, 2.576, 4.0])
    def test_symmetry(self, x):
        assert normal_cdf(-x) == pytest.approx(1 - normal_cdf(x), abs=1e-9)

    def test_monotonic(self):
        values = [normal_cdf(x / 10) for x in range(-40, 41)]
        assert values == sorted(values)


class TestRequiredZScore:
    def test_known_levels(self):
        assert required_z_score(90) == 1.645
        assert required_z_score(95) == 1.96
        assert required_z_score(99) == 2.576

    def test_unknown_level_falls_back_to_95(self):
        assert required_z_score(80) == 1.96


class TestSampleSizeConfidence:
    @pytest.mark.parametrize(
        "n,expected",
        [(0, 0.5), (29, 0.5), (30, 0.8), (100, 0.9), (399, 0.9), (400, 0.95), (1000, 0.99)],
    )
    def test_buckets(self, n, expected):
        assert sample_size_confidence(n) == expected


class TestZTest:
    def test_clear_winner_at_95(self):
        """10% vs 15% conversion on ~500 deliveries per arm."""
        result = z_test(_counts(500, 50), _counts(520, 78), 95, variant_name="Urgency")

        assert result.improvement == pytest.approx(50.0)
        assert result.z_score == pytest.approx(2.41, abs=0.01)
        assert result.p_value == pytest.approx(0.016, abs=0.002)
        assert result.confidence == pytest.approx(1 - result.p_value)
        assert result.is_significant
        assert result.sample_size == 520
        assert result.rationale.startswith("Urgency shows 50.0% improvement with")
        assert "not statistically significant" not in result.rationale

    def test_same_data_not_significant_at_99(self):
        result = z_test(_counts(500, 50), _counts(520, 78), 99)
        assert not result.is_significant
        assert result.rationale.endswith("(not statistically significant)")

    def test_insufficient_sample(self):
        result = z_test(_counts(29, 10), _counts(500, 100))
        assert not result.is_significant
        assert result.p_value == 1.0
        assert result.confidence == 0.5
        assert result.improvement == 0.0
        assert result.rationale == INSUFFICIENT_SAMPLE_RATIONALE

    def test_zero_standard_error(self):
        result = z_test(_counts(100, 0), _counts(100, 0))
        assert not result.is_significant
        assert result.confidence == 0.0
        assert result.p_value == 1.0
        assert result.rationale == ZERO_STANDARD_ERROR_RATIONALE

    def test_decline_is_never_significant(self):
        """A large negative lift has a big z-score but is not a winner."""
        result = z_test(_counts(1000, 200), _counts(1000, 100))
        assert result.z_score > 5
        assert result.improvement == pytest.approx(-50.0)
        assert not result.is_significant
        assert "50.0% decline" in result.rationale

    def test_zero_control_rate_reports_no_improvement(self):
        result = z_test(_counts(200, 0), _counts(200, 20))
        assert result.improvement == 0.0
        assert not result.is_significant

    def test_p_value_stays_in_unit_interval(self):
        result = z_test(_counts(300, 30), _counts(300, 30))
        assert 0.0 <= result.p_value <= 1.0
        assert result.z_score == 0.0

    def test_minimum_sample_is_configurable(self):
        config = ExperimentConfig()
        config.significance.min_delivered_per_arm = 10
        result = z_test(_counts(20, 2), _counts(20, 8), config=config)
        assert result.rationale != INSUFFICIENT_SAMPLE_RATIONALE


class TestZTestProperties:
    @pytest.mark.parametrize(
        "n1,c1,n2,c2",
        [
            (500, 50, 520, 78),
            (40, 4, 900, 180),
            (1200, 36, 300, 15),
            (75, 30, 60, 12),
        ],
    )
    def test_swapping_arms_keeps_magnitude(self, n1, c1, n2, c2):
        forward = z_test(_counts(n1, c1), _counts(n2, c2))
        reverse = z_test(_counts(n2, c2), _counts(n1, c1))

        assert forward.z_score == pytest.approx(reverse.z_score)
        assert forward.p_value == pytest.approx(reverse.p_value)
        assert forward.improvement * reverse.improvement < 0
        for result in (forward, reverse):
            assert result.confidence == pytest.approx(1 - result.p_value)
            assert 0.0 <= result.p_value <= 1.0

    @pytest.mark.parametrize(
        "n1,c1,n2,c2",
        [(300, 30, 600, 60), (50, 5, 1000, 100), (400, 100, 40, 10)],
    )
    def test_equal_rates_with_unequal_arms_are_not_significant(self, n1, c1, n2, c2):
        result = z_test(_counts(n1, c1), _counts(n2, c2))

        assert result.z_score == pytest.approx(0.0)
        assert result.improvement == pytest.approx(0.0)
        assert not result.is_significant
