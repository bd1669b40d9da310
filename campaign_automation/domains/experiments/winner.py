"""Winner selection for A/B test campaigns.

Runs the significance test for every non-control variant, picks the variant
with the largest confidence-weighted lift, checks it against business rules
and, when the salon allows it, commits the result atomically.
"""

import uuid
from collections.abc import Callable, Sequence
from datetime import datetime

import structlog

from .audit import ActionLogger, utc_now
from .config import ExperimentConfig, default_config
from .errors import CampaignNotFoundError, InvalidSelectionError, VariantNotFoundError
from .metrics import aggregate_snapshots, resolve_control, to_performance
from .models import (
    ActionTaken,
    BusinessRule,
    CampaignStatus,
    Recommendation,
    RuleCondition,
    RuleType,
    TestCampaign,
    TestPerformanceSummary,
    TestResult,
    Variant,
    VariantComparison,
    VariantPerformance,
    WinnerSelectionResult,
    ZTestResult,
)
from .significance import z_test

logger = structlog.get_logger()

NO_SIGNIFICANT_VARIANT = "No variant shows statistically significant improvement"
TEMPLATE_FIELDS = ("subject", "content", "channel")


def default_business_rules(config: ExperimentConfig = default_config) -> list[BusinessRule]:
    return [
        BusinessRule(
            rule_id="min_improvement",
            type=RuleType.MINIMUM_IMPROVEMENT,
            condition=RuleCondition.GREATER_THAN,
            value=config.winner.default_min_improvement_pct,
            description=f"Minimum {config.winner.default_min_improvement_pct:g}% improvement required",
        ),
        BusinessRule(
            rule_id="min_sample_size",
            type=RuleType.MINIMUM_SAMPLE_SIZE,
            condition=RuleCondition.GREATER_THAN,
            value=config.winner.default_min_sample_size,
            description=f"Minimum {config.winner.default_min_sample_size} samples required",
        ),
    ]


def elapsed_hours(campaign: TestCampaign, now: datetime) -> float:
    start = campaign.started_at or campaign.created_at
    end = campaign.completed_at or now
    return max(0.0, (end - start).total_seconds() / 3600)


def select_best_variant(comparisons: Sequence[VariantComparison]) -> VariantComparison | None:
    """Largest ``improvement * confidence`` among significant positive lifts."""
    qualifying = [
        c for c in comparisons if c.significance.is_significant and c.significance.improvement > 0
    ]
    if not qualifying:
        return None
    return max(
        qualifying, key=lambda c: c.significance.improvement * c.significance.confidence
    )


def _rule_holds(rule: BusinessRule, actual: float) -> bool:
    if rule.condition == RuleCondition.GREATER_THAN:
        return actual > rule.value
    if rule.condition == RuleCondition.LESS_THAN:
        return actual < rule.value
    if rule.condition == RuleCondition.EQUALS:
        return abs(actual - rule.value) < 0.001
    return True


def evaluate_business_rules(
    rules: Sequence[BusinessRule],
    significance: ZTestResult,
    duration_hours: float,
) -> list[BusinessRule]:
    """Return the rules the candidate winner fails."""
    failed = []
    for rule in rules:
        if rule.type == RuleType.MINIMUM_IMPROVEMENT:
            actual = abs(significance.improvement)
        elif rule.type == RuleType.MINIMUM_SAMPLE_SIZE:
            actual = float(significance.sample_size)
        elif rule.type == RuleType.MINIMUM_DURATION:
            actual = duration_hours
        elif rule.type == RuleType.COST_THRESHOLD:
            # Send cost is not tracked per variant yet
            actual = 0.0
        else:
            continue
        if not _rule_holds(rule, actual):
            failed.append(rule)
    return failed


def decide_recommendation(
    significance: ZTestResult,
    failed_rules: Sequence[BusinessRule],
    force_selection: bool = False,
    config: ExperimentConfig = default_config,
) -> Recommendation:
    if force_selection and significance.is_significant:
        return Recommendation.IMPLEMENT_WINNER

    if not significance.is_significant:
        if significance.confidence < config.winner.inconclusive_confidence:
            return Recommendation.CONTINUE_TEST
        return Recommendation.INCONCLUSIVE

    if failed_rules:
        if any(rule.type == RuleType.MINIMUM_SAMPLE_SIZE for rule in failed_rules):
            return Recommendation.CONTINUE_TEST
        return Recommendation.MANUAL_REVIEW

    return Recommendation.IMPLEMENT_WINNER


async def load_variant_performances(store, variants: Sequence[Variant]) -> list[VariantPerformance]:
    """Aggregate every variant's daily snapshots into a performance record."""
    performances = []
    for variant in variants:
        snapshots = await store.list_snapshots(variant.variant_id)
        performances.append(to_performance(variant, aggregate_snapshots(snapshots)))
    return performances


def compare_to_control(
    variants: Sequence[Variant],
    performances: Sequence[VariantPerformance],
    confidence_level: int,
    config: ExperimentConfig = default_config,
) -> tuple[VariantPerformance | None, list[VariantComparison]]:
    """Run the z-test for each non-control variant against the control arm."""
    control = resolve_control(list(variants))
    if control is None:
        return None, []

    by_id = {p.variant_id: p for p in performances}
    control_perf = by_id[control.variant_id]

    comparisons = []
    for variant in variants:
        if variant.variant_id == control.variant_id:
            continue
        perf = by_id[variant.variant_id]
        comparisons.append(
            VariantComparison(
                performance=perf,
                significance=z_test(
                    control_perf.counts,
                    perf.counts,
                    confidence_level,
                    variant_name=variant.name,
                    config=config,
                ),
            )
        )
    return control_perf, comparisons


class WinnerSelector:
    def __init__(
        self,
        store,
        audit: ActionLogger | None = None,
        config: ExperimentConfig = default_config,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._audit = audit or ActionLogger(store, clock)
        self._config = config
        self._clock = clock

    async def analyze_and_select_winner(
        self,
        campaign_id: str,
        confidence_level: int = 95,
        business_rules: Sequence[BusinessRule] | None = None,
        force_selection: bool = False,
    ) -> WinnerSelectionResult:
        """Analyze a campaign and commit the winner when rules and settings allow.

        Never raises: failures come back as ``success=False`` with a
        ``manual_review`` recommendation, since scheduled jobs call this.
        """
        try:
            return await self._analyze(campaign_id, confidence_level, business_rules, force_selection)
        except Exception as exc:
            logger.exception("winner_analysis_failed", campaign_id=campaign_id)
            return WinnerSelectionResult(
                success=False,
                rationale=f"Analysis failed: {exc}",
                recommendation=Recommendation.MANUAL_REVIEW,
            )

    async def _analyze(
        self,
        campaign_id: str,
        confidence_level: int,
        business_rules: Sequence[BusinessRule] | None,
        force_selection: bool,
    ) -> WinnerSelectionResult:
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is None:
            return WinnerSelectionResult(
                success=False,
                rationale="Test campaign not found",
                recommendation=Recommendation.MANUAL_REVIEW,
            )

        variants = await self._store.list_variants(campaign_id)
        if len(variants) < 2:
            return WinnerSelectionResult(
                success=False,
                rationale="At least two variants are required for winner analysis",
                recommendation=Recommendation.MANUAL_REVIEW,
            )

        performances = await load_variant_performances(self._store, variants)
        control_perf, comparisons = compare_to_control(
            variants, performances, confidence_level, self._config
        )
        duration = elapsed_hours(campaign, self._clock())

        best = select_best_variant(comparisons)
        if best is None:
            logger.info(
                "winner_analysis_no_significant_variant",
                campaign_id=campaign_id,
                variants=len(variants),
            )
            return WinnerSelectionResult(
                success=False,
                sample_size=control_perf.counts.participant_count if control_perf else 0,
                test_duration_hours=duration,
                rationale=NO_SIGNIFICANT_VARIANT,
                recommendation=Recommendation.CONTINUE_TEST,
            )

        rules = list(business_rules) if business_rules else default_business_rules(self._config)
        failed = evaluate_business_rules(rules, best.significance, duration)
        recommendation = decide_recommendation(
            best.significance, failed, force_selection, self._config
        )

        result = WinnerSelectionResult(
            success=True,
            winner_variant_id=best.performance.variant_id,
            winner_variant_name=best.performance.variant_name,
            confidence=best.significance.confidence,
            improvement=best.significance.improvement,
            statistical_significance=best.significance.confidence,
            p_value=best.significance.p_value,
            sample_size=best.significance.sample_size,
            test_duration_hours=duration,
            rationale=best.significance.rationale,
            business_rules_passed=not failed,
            failed_rules=[rule.description for rule in failed],
            recommendation=recommendation,
        )

        logger.info(
            "winner_analysis_completed",
            campaign_id=campaign_id,
            winner_variant_id=result.winner_variant_id,
            improvement=round(result.improvement, 2),
            confidence=round(result.confidence, 4),
            recommendation=recommendation.value,
            failed_rules=result.failed_rules,
        )

        if recommendation == Recommendation.IMPLEMENT_WINNER:
            automation = await self._store.get_automation_config(campaign.salon_id)
            if automation is not None and automation.enable_auto_winner_selection:
                winner = next(v for v in variants if v.variant_id == best.performance.variant_id)
                test_result = await self._implement_winner(
                    campaign,
                    winner,
                    best.significance,
                    confidence_level,
                    comparisons,
                    action_taken=ActionTaken.AUTO_WINNER,
                    notes=f"Automatically selected: {best.significance.rationale}",
                )
                result.committed = test_result is not None

        await self._audit.log(
            campaign.salon_id,
            "winner_analysis",
            f"Winner analysis for {campaign.name}: {recommendation.value}",
            {
                "winner_variant_id": result.winner_variant_id,
                "improvement": result.improvement,
                "confidence": result.confidence,
                "failed_rules": result.failed_rules,
                "committed": result.committed,
            },
            campaign_id=campaign_id,
        )
        return result

    async def _implement_winner(
        self,
        campaign: TestCampaign,
        winner: Variant,
        significance: ZTestResult | None,
        confidence_level: int,
        comparisons: Sequence[VariantComparison],
        *,
        action_taken: ActionTaken,
        notes: str,
        triggered_by: str = "system",
    ) -> TestResult | None:
        now = self._clock()
        result = TestResult(
            result_id=str(uuid.uuid4()),
            campaign_id=campaign.campaign_id,
            winner_variant_id=winner.variant_id,
            completed_at=now,
            statistical_significance=significance.confidence if significance else None,
            confidence_level=confidence_level,
            p_value=significance.p_value if significance else None,
            performance_improvement=significance.improvement / 100 if significance else None,
            result_summary={
                "winner_variant": winner.name,
                "rationale": significance.rationale if significance else notes,
                "variants": [
                    {
                        "variant_id": c.performance.variant_id,
                        "name": c.performance.variant_name,
                        "conversion_rate": c.performance.conversion_rate,
                        "improvement": c.significance.improvement,
                        "confidence": c.significance.confidence,
                    }
                    for c in comparisons
                ],
            },
            action_taken=action_taken,
            implemented_at=now,
            notes=notes,
        )

        committed = await self._store.commit_winner(campaign.campaign_id, winner.variant_id, result)
        if not committed:
            logger.warning(
                "winner_commit_rejected",
                campaign_id=campaign.campaign_id,
                variant_id=winner.variant_id,
                reason="campaign_not_running",
            )
            return None

        await self._apply_to_base_template(campaign, winner)
        logger.info(
            "winner_implemented",
            campaign_id=campaign.campaign_id,
            variant_id=winner.variant_id,
            action_taken=action_taken.value,
        )
        await self._audit.log(
            campaign.salon_id,
            "winner_selected" if action_taken == ActionTaken.AUTO_WINNER else "manual_winner_selected",
            f"Winner '{winner.name}' selected for {campaign.name}",
            {"variant_id": winner.variant_id, "result_id": result.result_id},
            campaign_id=campaign.campaign_id,
            triggered_by=triggered_by,
        )
        return result

    async def _apply_to_base_template(self, campaign: TestCampaign, winner: Variant) -> None:
        if not campaign.base_template_id:
            return
        changes = {
            name: winner.template_overrides[name]
            for name in TEMPLATE_FIELDS
            if name in winner.template_overrides
        }
        if "channel" not in changes and winner.channel_override is not None:
            changes["channel"] = winner.channel_override.value
        if not changes:
            return
        try:
            await self._store.update_template(campaign.base_template_id, changes)
        except Exception:
            # The campaign is already completed; the template can be fixed by hand
            logger.exception(
                "winner_template_update_failed",
                campaign_id=campaign.campaign_id,
                template_id=campaign.base_template_id,
            )

    async def select_winner_manually(
        self,
        campaign_id: str,
        variant_id: str,
        user_id: str,
        notes: str = "",
    ) -> TestResult:
        """Complete a running campaign with an operator-chosen winner."""
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        if campaign.status != CampaignStatus.RUNNING:
            raise InvalidSelectionError(
                f"Campaign {campaign_id} is {campaign.status.value}, not running"
            )

        variants = await self._store.list_variants(campaign_id)
        winner = next((v for v in variants if v.variant_id == variant_id), None)
        if winner is None:
            raise VariantNotFoundError(variant_id)

        performances = await load_variant_performances(self._store, variants)
        _, comparisons = compare_to_control(
            variants, performances, campaign.confidence_level, self._config
        )
        chosen = next(
            (c for c in comparisons if c.performance.variant_id == variant_id), None
        )
        significance = chosen.significance if chosen else None

        result = await self._implement_winner(
            campaign,
            winner,
            significance,
            campaign.confidence_level,
            comparisons,
            action_taken=ActionTaken.MANUAL_SELECTION,
            notes=notes or f"Manually selected by {user_id}",
            triggered_by=user_id,
        )
        if result is None:
            raise InvalidSelectionError(f"Campaign {campaign_id} was completed concurrently")

        logger.info(
            "manual_winner_selected",
            campaign_id=campaign_id,
            variant_id=variant_id,
            user_id=user_id,
        )
        return result

    async def get_test_performance_summary(self, campaign_id: str) -> TestPerformanceSummary:
        campaign = await self._store.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        variants = await self._store.list_variants(campaign_id)
        performances = await load_variant_performances(self._store, variants)
        _, comparisons = compare_to_control(variants, performances, 95, self._config)
        best = select_best_variant(comparisons)

        if best is not None:
            recommendation = decide_recommendation(best.significance, [], False, self._config)
        else:
            recommendation = Recommendation.CONTINUE_TEST

        return TestPerformanceSummary(
            campaign_id=campaign_id,
            campaign_name=campaign.name,
            status=campaign.status,
            test_duration_hours=elapsed_hours(campaign, self._clock()),
            total_participants=sum(p.counts.participant_count for p in performances),
            variants=performances,
            best_variant_id=best.performance.variant_id if best else None,
            best_variant_significance=best.significance if best else None,
            recommendation=recommendation,
        )

    async def run_automatic_winner_analysis(self, salon_id: str) -> list[WinnerSelectionResult]:
        """Analyze every running campaign that has run long enough.

        Never raises; a failed lookup is logged and yields no results.
        """
        try:
            automation = await self._store.get_automation_config(salon_id)
            if automation is None or not automation.enable_auto_winner_selection:
                logger.debug("auto_winner_disabled", salon_id=salon_id)
                return []
            campaigns = await self._store.list_campaigns(salon_id, status=CampaignStatus.RUNNING)
        except Exception:
            logger.exception("auto_winner_lookup_failed", salon_id=salon_id)
            return []

        now = self._clock()
        results = []
        for campaign in campaigns:
            if elapsed_hours(campaign, now) < automation.minimum_test_duration_hours:
                continue
            result = await self.analyze_and_select_winner(
                campaign.campaign_id, automation.auto_winner_confidence_level
            )
            results.append(result)

        logger.info(
            "auto_winner_analysis_completed",
            salon_id=salon_id,
            running=len(campaigns),
            analyzed=len(results),
            committed=sum(1 for r in results if r.committed),
        )
        return results
