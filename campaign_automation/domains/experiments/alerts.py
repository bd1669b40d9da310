"""Monitoring alert delivery with per-channel cooldown."""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

import structlog

from .audit import utc_now
from .models import Channel, MonitoringChannelConfig, PerformanceAlert, TestCampaign
from .registry import MonitorRegistry
from .templates import alert_subject, render_alert_email, render_alert_sms

logger = structlog.get_logger()


class AlertNotifier:
    """Sends a check's alerts to every active monitoring channel of a salon.

    All alerts from one check go out as a single message per recipient. A
    channel that received alerts less than ``alert_cooldown_minutes`` ago is
    skipped; other channels are unaffected.
    """

    def __init__(
        self,
        store,
        dispatcher,
        registry: MonitorRegistry,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._registry = registry
        self._clock = clock

    async def dispatch(self, campaign: TestCampaign, alerts: Sequence[PerformanceAlert]) -> int:
        """Deliver alerts and return how many channels received them."""
        if not alerts:
            return 0

        channels = await self._store.list_monitoring_channels(campaign.salon_id)
        now = self._clock()
        delivered = 0

        for channel in channels:
            if not channel.is_active:
                continue
            key = (campaign.salon_id, channel.config_id)
            cooldown = timedelta(minutes=channel.alert_cooldown_minutes)
            if not self._registry.claim_channel(key, now, cooldown):
                logger.info(
                    "alert_suppressed_cooldown",
                    salon_id=campaign.salon_id,
                    channel_config_id=channel.config_id,
                    campaign_id=campaign.campaign_id,
                    alerts=len(alerts),
                )
                continue
            await self._send_to_channel(campaign, channel, alerts)
            delivered += 1

        return delivered

    async def _send_to_channel(
        self,
        campaign: TestCampaign,
        channel: MonitoringChannelConfig,
        alerts: Sequence[PerformanceAlert],
    ) -> None:
        email = {
            "subject": alert_subject(alerts),
            "body": render_alert_email(campaign.name, alerts),
        }
        sms = {"body": render_alert_sms(alerts)}

        for recipient in channel.alert_recipients:
            if channel.enable_email_alerts:
                await self._deliver(recipient, Channel.EMAIL, email, campaign)
            if channel.enable_sms_alerts:
                await self._deliver(recipient, Channel.SMS, sms, campaign)

    async def _deliver(
        self, recipient: str, channel: Channel, content: dict, campaign: TestCampaign
    ) -> None:
        try:
            ok = await self._dispatcher.send(recipient, channel, content)
        except Exception:
            logger.exception(
                "alert_delivery_failed",
                campaign_id=campaign.campaign_id,
                channel=channel.value,
            )
            return
        if ok:
            logger.info("alert_sent", campaign_id=campaign.campaign_id, channel=channel.value)
        else:
            logger.warning(
                "alert_delivery_rejected", campaign_id=campaign.campaign_id, channel=channel.value
            )
