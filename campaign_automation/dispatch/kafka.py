"""Dispatch alert and report messages through a Kafka notifications topic."""

import json
import uuid
from datetime import UTC, datetime
from typing import Any

import structlog
from aiokafka import AIOKafkaProducer

from campaign_automation.config import settings
from campaign_automation.domains.experiments.models import Channel

logger = structlog.get_logger()


async def create_producer(bootstrap_servers: str | None = None) -> AIOKafkaProducer:
    servers = bootstrap_servers or settings.kafka_bootstrap_servers
    producer = AIOKafkaProducer(bootstrap_servers=servers)
    await producer.start()
    logger.info("kafka_producer_started", bootstrap_servers=servers)
    return producer


class KafkaMessageDispatcher:
    """Publishes send requests for the email/SMS service to consume.

    Failures are logged and reported as ``False``; retries belong to the
    sending service.
    """

    def __init__(self, producer: AIOKafkaProducer | None, topic: str | None = None) -> None:
        self._producer = producer
        self._topic = topic or settings.notifications_topic

    async def send(self, destination: str, channel: Channel, content: dict[str, Any]) -> bool:
        if self._producer is None:
            logger.warning("kafka_producer_not_available", destination=destination)
            return False

        message_id = str(uuid.uuid4())
        payload = {
            "message_id": message_id,
            "channel": channel.value,
            "destination": destination,
            "sender_name": settings.alert_sender_name,
            "content": content,
            "requested_at": datetime.now(UTC).isoformat(),
        }

        try:
            await self._producer.send_and_wait(
                self._topic,
                value=json.dumps(payload).encode("utf-8"),
                key=destination.encode("utf-8"),
            )
        except Exception:
            logger.exception(
                "notification_publish_failed",
                message_id=message_id,
                channel=channel.value,
                topic=self._topic,
            )
            return False

        logger.info(
            "notification_published",
            message_id=message_id,
            channel=channel.value,
            topic=self._topic,
        )
        return True
