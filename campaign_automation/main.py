"""FastAPI application entry point for the campaign automation engine."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from campaign_automation.api.middleware.error_handler import global_exception_handler
from campaign_automation.api.middleware.logging import StructuredLoggingMiddleware
from campaign_automation.api.routes.automation import router as automation_router
from campaign_automation.api.routes.health import router as health_router
from campaign_automation.config import settings
from campaign_automation.dispatch.kafka import KafkaMessageDispatcher, create_producer
from campaign_automation.engine import build_engine
from campaign_automation.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level)

    logger.info(
        "campaign_automation_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    from campaign_automation.db.database import async_session_factory, init_db
    from campaign_automation.store.sql import SqlRecordStore

    try:
        await init_db()
    except Exception:
        logger.warning("database_init_failed", exc_info=True)

    # Alerts are dropped while Kafka is unreachable; everything else keeps working
    producer = None
    try:
        producer = await create_producer()
    except Exception:
        logger.warning("kafka_producer_failed_to_start", exc_info=True)

    app.state.kafka_producer = producer
    app.state.engine = build_engine(
        SqlRecordStore(async_session_factory), KafkaMessageDispatcher(producer)
    )

    yield

    stopped = await app.state.engine.monitor.stop_all_monitoring()
    if producer is not None:
        await producer.stop()
    logger.info("campaign_automation_shutting_down", monitors_stopped=stopped)


app = FastAPI(
    title="Campaign Automation",
    description="A/B test monitoring, winner selection and campaign optimization for salon messaging",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(StructuredLoggingMiddleware)

# Typed errors are answered inside the router; anything else reaches the catch-all
for exc_class in (ValueError, PermissionError, LookupError, Exception):
    app.add_exception_handler(exc_class, global_exception_handler)

app.include_router(health_router)
app.include_router(automation_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)
