"""Wiring for a production ProgressService.

Order: logging, Redis (non-critical: completions are then only logged),
Cassandra (critical), then the service itself.
"""

from pathlib import Path

import redis.asyncio as redis

from progression.config.settings import Settings, get_settings
from progression.core.database import init_cassandra, shutdown_cassandra
from progression.core.logging import configure_structlog, get_logger
from progression.core.redis import init_redis, shutdown_redis
from progression.progress.events import RedisCourseCompletedPublisher
from progression.progress.service import ProgressService
from progression.store.cassandra import CassandraEntityStore


logger = get_logger(__name__)


async def create_progress_service(settings: Settings | None = None) -> ProgressService:
    """Connect to Cassandra and Redis and build a ProgressService."""
    settings = settings or get_settings()
    configure_structlog(settings, log_dir=Path(settings.log_dir))

    logger.info(
        "engine_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    redis_client = None
    try:
        redis_client = await init_redis(settings)
        logger.info("redis_initialized")
    except redis.RedisError as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - CourseCompleted events are only logged",
        )

    session = await init_cassandra(settings)
    store = CassandraEntityStore(session=session, keyspace=settings.cassandra_keyspace)
    publisher = RedisCourseCompletedPublisher(
        redis_client, settings.course_completed_channel
    )

    service = ProgressService(store, publisher, settings)
    logger.info("progress_service_initialized", redis_enabled=redis_client is not None)
    return service


async def shutdown_progress_service() -> None:
    """Release Cassandra and Redis connections."""
    await shutdown_redis()
    await shutdown_cassandra()
    logger.info("engine_stopped")
