# ruff: noqa: PLW0603
"""Optional async Redis client.

Redis is not required to run the gating engine. When connected it backs:
- distributed enrollment and prerequisite graph locks (``lock_backend=redis``)
- ``certificate_issued`` Pub/Sub notifications
"""

import redis.asyncio as redis

from src.config import Settings, get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis(settings: Settings | None = None) -> redis.Redis:
    """Create the client and verify it with a PING.

    Raises:
        redis.ConnectionError: Server unreachable (the client is discarded)
    """
    global _redis_client

    settings = settings or get_settings()
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )
    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        raise

    _redis_client = client
    logger.info("redis_connected", url=settings.redis_url)
    return client


async def shutdown_redis() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_disconnected")


def get_redis() -> redis.Redis | None:
    return _redis_client


def notification_channel(user_id: str) -> str:
    """Pub/Sub channel carrying one user's notifications."""
    return f"notifications:user:{user_id}"


def enrollment_lock_key(user_id: str, course_id: str) -> str:
    """Lock key guarding one enrollment's progress recompute."""
    return f"locks:enrollment:{user_id}:{course_id}"


def prerequisite_lock_key(scope: str) -> str:
    """Lock key guarding prerequisite graph mutations in one scope."""
    return f"locks:prerequisites:{scope}"
