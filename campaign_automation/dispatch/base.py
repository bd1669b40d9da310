"""Outbound message dispatch interface."""

from typing import Any, Protocol

from campaign_automation.domains.experiments.models import Channel


class MessageDispatcher(Protocol):
    async def send(self, destination: str, channel: Channel, content: dict[str, Any]) -> bool:
        """Hand one message to the sending service. True when it was accepted."""
        ...
