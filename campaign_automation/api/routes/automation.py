"""Job-trigger routes for the campaign automation engine.

These endpoints are called by the external scheduler and by operators; they
carry no product routing or authentication of their own.
"""

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from campaign_automation.domains.experiments.errors import TemplateNotFoundError
from campaign_automation.domains.experiments.models import TestType
from campaign_automation.domains.optimization.models import OptimizationType, Timeframe
from campaign_automation.engine import AutomationEngine

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/automation", tags=["automation"])


def get_engine(request: Request) -> AutomationEngine:
    return request.app.state.engine


class AnalyzeWinnerRequest(BaseModel):
    confidence_level: int = Field(95, description="One of 90, 95 or 99")
    force_selection: bool = False


class SelectWinnerRequest(BaseModel):
    variant_id: str
    user_id: str
    notes: str = ""


class GenerateVariantsRequest(BaseModel):
    template_id: str
    test_type: TestType


class OptimizationRequest(BaseModel):
    timeframe: Timeframe = Timeframe.LAST_30_DAYS
    optimization_types: list[OptimizationType] | None = None
    campaign_id: str | None = None
    test_campaign_id: str | None = None


# -- monitoring ---------------------------------------------------------------


@router.post("/monitoring/{campaign_id}/start")
async def start_monitoring_endpoint(
    campaign_id: str, engine: AutomationEngine = Depends(get_engine)
) -> dict:
    """Start the periodic monitoring timer for a running campaign."""
    started = await engine.monitor.start_monitoring(campaign_id)
    return {"campaign_id": campaign_id, "monitoring": started}


@router.post("/monitoring/{campaign_id}/stop")
async def stop_monitoring_endpoint(
    campaign_id: str, engine: AutomationEngine = Depends(get_engine)
) -> dict:
    stopped = await engine.monitor.stop_monitoring(campaign_id)
    return {"campaign_id": campaign_id, "stopped": stopped}


@router.post("/monitoring/{campaign_id}/check")
async def monitoring_check_endpoint(
    campaign_id: str, engine: AutomationEngine = Depends(get_engine)
) -> dict:
    """Run one monitoring check immediately and return the raised alerts."""
    alerts = await engine.monitor.perform_monitoring_check(campaign_id)
    return {
        "campaign_id": campaign_id,
        "alerts": [a.model_dump(mode="json") for a in alerts],
        "count": len(alerts),
    }


# -- winners ------------------------------------------------------------------


@router.post("/winners/{campaign_id}/analyze")
async def analyze_winner_endpoint(
    campaign_id: str,
    request: AnalyzeWinnerRequest | None = None,
    engine: AutomationEngine = Depends(get_engine),
) -> dict:
    request = request or AnalyzeWinnerRequest()
    result = await engine.winner_selector.analyze_and_select_winner(
        campaign_id,
        confidence_level=request.confidence_level,
        force_selection=request.force_selection,
    )
    return result.model_dump(mode="json")


@router.post("/winners/{campaign_id}/select")
async def select_winner_endpoint(
    campaign_id: str,
    request: SelectWinnerRequest,
    engine: AutomationEngine = Depends(get_engine),
) -> dict:
    """Record an operator's winner choice. Unknown ids map to 404, a closed test to 400."""
    result = await engine.winner_selector.select_winner_manually(
        campaign_id, request.variant_id, request.user_id, request.notes
    )
    return result.model_dump(mode="json")


@router.get("/campaigns/{campaign_id}/summary")
async def campaign_summary_endpoint(
    campaign_id: str, engine: AutomationEngine = Depends(get_engine)
) -> dict:
    summary = await engine.winner_selector.get_test_performance_summary(campaign_id)
    return summary.model_dump(mode="json")


@router.post("/campaigns/{campaign_id}/variants")
async def generate_variants_endpoint(
    campaign_id: str,
    request: GenerateVariantsRequest,
    engine: AutomationEngine = Depends(get_engine),
) -> dict:
    template = await engine.store.get_template(request.template_id)
    if template is None:
        raise TemplateNotFoundError(request.template_id)
    variants = await engine.variant_generator.generate_variants(
        campaign_id, template, request.test_type
    )
    return {
        "campaign_id": campaign_id,
        "variants": [v.model_dump(mode="json") for v in variants],
        "count": len(variants),
    }


# -- salon-level runs ---------------------------------------------------------


@router.post("/salons/{salon_id}/winner-analysis")
async def salon_winner_analysis_endpoint(
    salon_id: str, engine: AutomationEngine = Depends(get_engine)
) -> dict:
    results = await engine.winner_selector.run_automatic_winner_analysis(salon_id)
    return {
        "salon_id": salon_id,
        "results": [r.model_dump(mode="json") for r in results],
        "winners_committed": sum(1 for r in results if r.committed),
    }


@router.post("/salons/{salon_id}/optimizations")
async def salon_optimizations_endpoint(
    salon_id: str,
    request: OptimizationRequest | None = None,
    engine: AutomationEngine = Depends(get_engine),
) -> dict:
    request = request or OptimizationRequest()
    recommendations = await engine.optimizer.generate_optimizations(
        salon_id,
        timeframe=request.timeframe,
        optimization_types=request.optimization_types,
        campaign_id=request.campaign_id,
        test_campaign_id=request.test_campaign_id,
    )
    return {
        "salon_id": salon_id,
        "recommendations": [r.model_dump(mode="json") for r in recommendations],
        "count": len(recommendations),
    }


@router.post("/salons/{salon_id}/insights")
async def salon_insights_endpoint(
    salon_id: str, engine: AutomationEngine = Depends(get_engine)
) -> dict:
    insights = await engine.optimizer.generate_insights(salon_id)
    return {
        "salon_id": salon_id,
        "insights": [i.model_dump(mode="json") for i in insights],
        "count": len(insights),
    }


# -- batch jobs ---------------------------------------------------------------

_JOBS = {
    "performance-collection": "run_performance_collection_job",
    "winner-analysis": "run_winner_analysis_job",
    "campaign-optimization": "run_campaign_optimization_job",
    "weekly-report": "run_weekly_report_job",
}


@router.post("/jobs/{job_name}")
async def run_job_endpoint(job_name: str, engine: AutomationEngine = Depends(get_engine)) -> dict:
    """Trigger one of the scheduled batch jobs across all enabled salons."""
    method = _JOBS.get(job_name)
    if method is None:
        raise LookupError(f"Unknown job: {job_name}")
    report = await getattr(engine.jobs, method)()
    return report.model_dump(mode="json")
