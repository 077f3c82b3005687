"""
Async Kafka producer.

Publishes one event type:
  share-emails — emitted by RecipeService.share when a recipe is shared by
                 email. Consumed by the outbound mail relay, which owns the
                 SMTP credentials and delivery retries.
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from recipeshare.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


async def init_kafka() -> None:
    global _producer
    if not settings.kafka_enabled:
        logger.info("Kafka disabled; share emails will not be delivered")
        return
    _producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )


async def stop_kafka() -> None:
    global _producer
    if _producer:
        await _producer.stop()
        _producer = None


def get_producer() -> AIOKafkaProducer:
    if _producer is None:
        raise RuntimeError("Kafka producer not initialised")
    return _producer


async def publish_share_email(to: str, subject: str, html: str) -> None:
    """
    Emit a ShareEmail event to the 'share-emails' Kafka topic.

    Schema:
      { from, to, subject, html }
    """
    producer = get_producer()
    payload = {"from": settings.mail_from, "to": to, "subject": subject, "html": html}
    await producer.send_and_wait(settings.kafka_topic_share_emails, payload)
    logger.debug("Published ShareEmail event to %s", to)
