"""Real-time certificate notifications over Redis Pub/Sub."""

import json

import redis.asyncio as redis
import structlog

from src.core.redis import notification_channel

from .models import Certificate


logger = structlog.get_logger(__name__)


class RedisCertificatePublisher:
    """Publishes ``certificate_issued`` messages on the user's channel.

    Register with ``CertificateIssuer.add_listener``.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def __call__(self, certificate: Certificate) -> None:
        channel = notification_channel(str(certificate.user_id))
        message = {
            "type": "certificate_issued",
            "data": certificate.to_dict(),
        }
        await self.redis.publish(channel, json.dumps(message))
        logger.debug(
            "certificate_notification_published",
            channel=channel,
            certificate_id=certificate.certificate_id,
        )
