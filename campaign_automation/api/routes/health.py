"""Health and readiness endpoints."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from campaign_automation.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    from campaign_automation.main import get_uptime

    engine = getattr(request.app.state, "engine", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "uptime_seconds": get_uptime(),
        "monitored_campaigns": len(engine.registry.monitored_campaigns()) if engine else 0,
    }


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    from campaign_automation.db.database import check_db

    db_ok = await check_db()
    kafka_ok = getattr(request.app.state, "kafka_producer", None) is not None

    # Readiness depends on the database only; a missing producer reports degraded
    status_code = 200 if db_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if db_ok and kafka_ok else "degraded",
            "database": db_ok,
            "kafka": kafka_ok,
        },
    )
