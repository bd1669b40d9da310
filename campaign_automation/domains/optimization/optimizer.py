"""Campaign optimizer: turns historical engagement into ranked recommendations.

Runs independently of the experiment engine on a daily cadence. Each
optimization type is analyzed in isolation; one type failing never stops
the others.
"""

import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

import structlog

from campaign_automation.domains.experiments.audit import ActionLogger, utc_now

from .config import OptimizationConfig, default_optimization_config
from .features import (
    analyze_audience,
    analyze_content,
    analyze_send_time,
    impact_score,
    priority_for,
    template_features,
)
from .models import (
    CampaignOptimizationInsight,
    OptimizationAnalysis,
    OptimizationContext,
    OptimizationRecommendation,
    OptimizationType,
    Timeframe,
)

logger = structlog.get_logger()

MIN_CONFIDENCE = 0.6

TIMEFRAME_DAYS = {
    Timeframe.LAST_7_DAYS: 7,
    Timeframe.LAST_30_DAYS: 30,
    Timeframe.LAST_90_DAYS: 90,
    Timeframe.ALL_TIME: 365,
}

# title, description prefix, complexity, effort hours, implementation steps
_PRESENTATION = {
    OptimizationType.SEND_TIME: (
        "Optimize Send Time for {improvement:.1f}% Better Engagement",
        "Send your campaigns at {recommended_time} to maximize engagement.",
        "low",
        0.25,
        [
            "Update campaign send time to recommended time",
            "Apply to all future campaigns",
            "Monitor performance for 2 weeks",
        ],
    ),
    OptimizationType.AUDIENCE: (
        "Target High-Performing Segments for {improvement:.1f}% Better Results",
        "Focus your campaigns on segments: {segments}.",
        "medium",
        1.0,
        [
            "Create refined audience segments",
            "Update campaign targeting",
            "Monitor segment performance",
        ],
    ),
    OptimizationType.CONTENT: (
        "Optimize Content Elements for {improvement:.1f}% Better Performance",
        "Apply proven content improvements to boost engagement.",
        "medium",
        2.0,
        [
            "Update template with recommended changes",
            "Test new content with A/B test",
            "Apply to future campaigns",
        ],
    ),
    OptimizationType.CHANNEL: (
        "Optimize Channel Mix for {improvement:.1f}% Better ROI",
        "Shift volume toward the better performing channel.",
        "low",
        0.5,
        ["Adjust channel allocation", "Update campaign preferences", "Monitor channel performance"],
    ),
    OptimizationType.FREQUENCY: (
        "Optimize Send Frequency for {improvement:.1f}% Better Engagement",
        "Adjust communication frequency to reduce fatigue and improve engagement.",
        "medium",
        1.5,
        [
            "Update campaign frequency settings",
            "Implement frequency capping",
            "Monitor engagement changes",
        ],
    ),
}


class CampaignOptimizer:
    def __init__(
        self,
        store,
        audit: ActionLogger | None = None,
        config: OptimizationConfig = default_optimization_config,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._audit = audit or ActionLogger(store, clock)
        self._config = config
        self._clock = clock

    async def _optimization_enabled(self, salon_id: str) -> bool:
        try:
            automation = await self._store.get_automation_config(salon_id)
        except Exception:
            logger.exception("automation_config_lookup_failed", salon_id=salon_id)
            return False
        return automation is not None and automation.enable_campaign_optimization

    async def generate_optimizations(
        self,
        salon_id: str,
        timeframe: Timeframe = Timeframe.LAST_30_DAYS,
        optimization_types: Sequence[OptimizationType] | None = None,
        campaign_id: str | None = None,
        test_campaign_id: str | None = None,
    ) -> list[OptimizationRecommendation]:
        """Analyze the salon's history and persist one recommendation per qualifying type.

        Returns recommendations sorted by ``impact_score * confidence_score``,
        highest first. Returns ``[]`` when optimization is disabled.
        """
        if not await self._optimization_enabled(salon_id):
            logger.info("campaign_optimization_disabled", salon_id=salon_id)
            return []

        context = OptimizationContext(
            salon_id=salon_id,
            timeframe=timeframe,
            optimization_types=list(optimization_types or OptimizationType),
            campaign_id=campaign_id,
            test_campaign_id=test_campaign_id,
        )

        recommendations = []
        for optimization_type in context.optimization_types:
            try:
                analysis = await self.analyze(context, optimization_type)
                if analysis is None or analysis.confidence < MIN_CONFIDENCE:
                    continue
                recommendation = await self._store.insert_recommendation(
                    self._to_recommendation(context, analysis)
                )
                recommendations.append(recommendation)
            except Exception:
                logger.exception(
                    "optimization_type_failed",
                    salon_id=salon_id,
                    optimization_type=optimization_type.value,
                )

        recommendations.sort(key=lambda r: r.impact_score * r.confidence_score, reverse=True)

        logger.info(
            "optimizations_generated",
            salon_id=salon_id,
            count=len(recommendations),
            timeframe=timeframe.value,
        )
        await self._audit.log(
            salon_id,
            "optimization_generated",
            f"Campaign optimization: {len(recommendations)} recommendation(s)",
            {
                "recommendation_count": len(recommendations),
                "optimization_types": [t.value for t in context.optimization_types],
                "timeframe": timeframe.value,
            },
        )
        return recommendations

    async def analyze(
        self, context: OptimizationContext, optimization_type: OptimizationType
    ) -> OptimizationAnalysis | None:
        start, end = self._window(context.timeframe)

        if optimization_type == OptimizationType.SEND_TIME:
            history = await self._store.list_delivery_history(
                salon_id=context.salon_id, start=start, end=end
            )
            return analyze_send_time(history, self._config)

        if optimization_type == OptimizationType.AUDIENCE:
            segments = await self._store.list_segments(context.salon_id)
            segment_history = []
            for segment in segments:
                records = await self._store.list_delivery_history(
                    salon_id=context.salon_id,
                    segment_id=segment.segment_id,
                    start=start,
                    end=end,
                )
                segment_history.append((segment, records))
            return analyze_audience(segment_history, self._config)

        if optimization_type == OptimizationType.CONTENT:
            templates = await self._store.list_templates(context.salon_id)
            features = []
            for template in templates:
                records = await self._store.list_delivery_history(
                    salon_id=context.salon_id,
                    template_id=template.template_id,
                    start=start,
                    end=end,
                )
                features.append(template_features(template, records))
            return analyze_content(features, self._config)

        # Channel and frequency analyses are extension points with no model yet
        logger.debug(
            "optimization_type_not_modelled",
            salon_id=context.salon_id,
            optimization_type=optimization_type.value,
        )
        return None

    def _window(self, timeframe: Timeframe) -> tuple[datetime, datetime]:
        end = self._clock()
        return end - timedelta(days=TIMEFRAME_DAYS[timeframe]), end

    def _to_recommendation(
        self, context: OptimizationContext, analysis: OptimizationAnalysis
    ) -> OptimizationRecommendation:
        kind = analysis.optimization_type
        title, description, complexity, effort, steps = _PRESENTATION[kind]
        improvement = analysis.expected_improvement
        details = analysis.implementation_data
        now = self._clock()

        return OptimizationRecommendation(
            recommendation_id=str(uuid.uuid4()),
            salon_id=context.salon_id,
            campaign_id=context.campaign_id,
            test_campaign_id=context.test_campaign_id,
            recommendation_type=kind,
            title=title.format(improvement=improvement),
            description=" ".join(
                [
                    description.format(
                        recommended_time=details.get("recommended_time", ""),
                        segments=", ".join(details.get("recommended_segments", [])),
                    ),
                    analysis.rationale,
                ]
            ),
            confidence_score=analysis.confidence,
            expected_improvement=improvement / 100,
            impact_score=impact_score(improvement, kind, self._config),
            priority=priority_for(improvement, analysis.confidence, self._config),
            implementation_data={
                **details,
                "supporting_data": analysis.supporting_data,
                "implementation_steps": steps,
            },
            implementation_complexity=complexity,
            estimated_effort_hours=effort,
            model_version=f"{kind.value}_{self._config.model_version_suffix}",
            based_on_data_points=analysis.data_points,
            created_at=now,
            expires_at=now + timedelta(days=self._config.expiry_days[kind.value]),
        )

    async def run_daily_optimization_job(self, salon_id: str) -> list[OptimizationRecommendation]:
        recommendations = await self.generate_optimizations(
            salon_id, Timeframe.LAST_30_DAYS, list(OptimizationType)
        )
        logger.info(
            "daily_optimization_completed", salon_id=salon_id, recommendations=len(recommendations)
        )
        return recommendations

    async def generate_insights(self, salon_id: str) -> list[CampaignOptimizationInsight]:
        """Persist send-time and audience insights from the last 30 days."""
        if not await self._optimization_enabled(salon_id):
            return []

        context = OptimizationContext(salon_id=salon_id, timeframe=Timeframe.LAST_30_DAYS)
        insights = []

        for optimization_type in (OptimizationType.SEND_TIME, OptimizationType.AUDIENCE):
            try:
                analysis = await self.analyze(context, optimization_type)
                if analysis is None:
                    continue
                insight = await self._store.insert_insight(self._to_insight(salon_id, analysis))
                insights.append(insight)
            except Exception:
                logger.exception(
                    "insight_generation_failed",
                    salon_id=salon_id,
                    optimization_type=optimization_type.value,
                )
        return insights

    def _to_insight(self, salon_id: str, analysis: OptimizationAnalysis) -> CampaignOptimizationInsight:
        now = self._clock()
        details = analysis.implementation_data
        if analysis.optimization_type == OptimizationType.SEND_TIME:
            insight_type = "send_time_patterns"
            title = "Optimal Send Time Patterns Identified"
            description = (
                f"Your audience is most engaged at {details['recommended_time']}. "
                "Consider scheduling campaigns around this time."
            )
            actions = [
                "Update default campaign send time",
                "Schedule future campaigns at optimal time",
                "Test send time variations",
            ]
        else:
            insight_type = "audience_preferences"
            title = "High-Performing Audience Segments Identified"
            description = (
                f"Segments {', '.join(details['recommended_segments'])} show "
                f"{analysis.expected_improvement:.1f}% better engagement."
            )
            actions = [
                "Focus campaigns on high-performing segments",
                "Analyze characteristics of top segments",
                "Create similar audience segments",
            ]

        return CampaignOptimizationInsight(
            insight_id=str(uuid.uuid4()),
            salon_id=salon_id,
            insight_type=insight_type,
            title=title,
            description=description,
            confidence=analysis.confidence,
            sample_size=analysis.data_points,
            data=analysis.supporting_data,
            supporting_metrics={
                **details,
                "expected_improvement": analysis.expected_improvement,
                "confidence": analysis.confidence,
            },
            recommended_actions=actions,
            created_at=now,
            valid_until=now
            + timedelta(days=self._config.expiry_days[analysis.optimization_type.value]),
        )
