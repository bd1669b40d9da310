"""Process-local state owned by the performance monitor.

Holds the per-campaign timer tasks, the set of checks currently in flight,
and the last-dispatch time per alert channel. A threading lock guards every
mutation so the registry stays consistent if checks are driven from worker
threads as well as the event loop.
"""

import asyncio
import threading
from datetime import datetime, timedelta

ChannelKey = tuple[str, str]  # (salon_id, channel config id)


class MonitorRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: dict[str, asyncio.Task] = {}
        self._in_flight: set[str] = set()
        self._last_sent: dict[ChannelKey, datetime] = {}

    # Timers

    def register(self, campaign_id: str, task: asyncio.Task) -> asyncio.Task | None:
        """Store the timer for a campaign, returning any timer it replaces."""
        with self._lock:
            previous = self._timers.get(campaign_id)
            self._timers[campaign_id] = task
            return previous

    def unregister(self, campaign_id: str) -> asyncio.Task | None:
        with self._lock:
            return self._timers.pop(campaign_id, None)

    def unregister_all(self) -> dict[str, asyncio.Task]:
        with self._lock:
            timers, self._timers = self._timers, {}
            return timers

    def is_monitoring(self, campaign_id: str) -> bool:
        with self._lock:
            return campaign_id in self._timers

    def monitored_campaigns(self) -> list[str]:
        with self._lock:
            return list(self._timers)

    # Checks in flight

    def begin_check(self, campaign_id: str) -> bool:
        """Claim the campaign for one check. False if a check is already running."""
        with self._lock:
            if campaign_id in self._in_flight:
                return False
            self._in_flight.add(campaign_id)
            return True

    def end_check(self, campaign_id: str) -> None:
        with self._lock:
            self._in_flight.discard(campaign_id)

    # Alert cooldown

    def claim_channel(self, key: ChannelKey, now: datetime, cooldown: timedelta) -> bool:
        """Reserve a dispatch slot on a channel unless it is still cooling down."""
        with self._lock:
            last = self._last_sent.get(key)
            if last is not None and now - last < cooldown:
                return False
            self._last_sent[key] = now
            return True

    def last_sent(self, key: ChannelKey) -> datetime | None:
        with self._lock:
            return self._last_sent.get(key)
