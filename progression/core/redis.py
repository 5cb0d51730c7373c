# ruff: noqa: PLW0603
"""Redis connection management.

Provides the async Redis client used to publish CourseCompleted events
to the certificate issuer over pub/sub.
"""

import redis.asyncio as redis

from progression.config import Settings, get_settings
from progression.core.logging import get_logger


logger = get_logger(__name__)

# Global Redis client
_redis_client: redis.Redis | None = None


async def init_redis(settings: Settings | None = None) -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = settings or get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    # Test connection
    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None
