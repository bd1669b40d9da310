"""Write-only action log for state-changing automation steps."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from .models import ActionLogEntry

logger = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(UTC)


class ActionLogger:
    """Records automation actions in the store and mirrors them to the log.

    A failed write is logged and dropped; the audit trail never blocks the
    action it describes.
    """

    def __init__(self, store, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def log(
        self,
        salon_id: str,
        action_type: str,
        description: str,
        data: dict[str, Any] | None = None,
        *,
        campaign_id: str | None = None,
        triggered_by: str = "system",
        status: str = "completed",
    ) -> None:
        entry = ActionLogEntry(
            salon_id=salon_id,
            action_type=action_type,
            description=description,
            data=data or {},
            triggered_by=triggered_by,
            status=status,
            campaign_id=campaign_id,
            created_at=self._clock(),
        )
        logger.info(
            "automation_action",
            salon_id=salon_id,
            action_type=action_type,
            campaign_id=campaign_id,
            triggered_by=triggered_by,
            status=status,
        )
        try:
            await self._store.insert_action_log(entry)
        except Exception:
            logger.exception("action_log_write_failed", salon_id=salon_id, action_type=action_type)
