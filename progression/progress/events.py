"""Outbound CourseCompleted signal.

The engine emits one CourseCompleted event per enrollment, after the
completion flag has been written. Delivery is best effort: a failed publish
is logged and never rolls the flag back.

Publishers:
- RedisCourseCompletedPublisher: JSON message on a Redis pub/sub channel
- CallbackCourseCompletedPublisher: in-process async handlers
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol
from uuid import UUID

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, Field


logger = structlog.get_logger(__name__)


class CourseCompleted(BaseModel):
    """Enrollment reached full completion."""

    learner_id: UUID = Field(..., description="Learner UUID")
    course_id: UUID = Field(..., description="Course UUID")
    completed_at: datetime = Field(..., description="Completion transition time")

    def to_message(self) -> dict:
        return {
            "type": "course_completed",
            "data": {
                "learner_id": str(self.learner_id),
                "course_id": str(self.course_id),
                "completed_at": self.completed_at.isoformat(),
            },
        }


class CourseCompletedPublisher(Protocol):
    async def publish(self, event: CourseCompleted) -> None: ...


class RedisCourseCompletedPublisher:
    """Publish completion events to a Redis pub/sub channel."""

    def __init__(self, client: redis.Redis | None, channel: str):
        self.redis = client
        self.channel = channel

    async def publish(self, event: CourseCompleted) -> None:
        if not self.redis:
            logger.warning(
                "course_completed_not_published",
                reason="redis_unavailable",
                learner_id=str(event.learner_id),
                course_id=str(event.course_id),
            )
            return

        try:
            await self.redis.publish(self.channel, json.dumps(event.to_message()))
        except redis.RedisError as e:
            logger.error(
                "course_completed_publish_failed",
                channel=self.channel,
                learner_id=str(event.learner_id),
                course_id=str(event.course_id),
                error=str(e),
            )


CourseCompletedHandler = Callable[[CourseCompleted], Awaitable[None]]


class CallbackCourseCompletedPublisher:
    """Fan completion events out to in-process async handlers."""

    def __init__(self, *handlers: CourseCompletedHandler):
        self._handlers: list[CourseCompletedHandler] = list(handlers)

    async def publish(self, event: CourseCompleted) -> None:
        handlers = list(self._handlers)
        results = await asyncio.gather(
            *(handler(event) for handler in handlers), return_exceptions=True
        )
        for handler, result in zip(handlers, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    "course_completed_handler_failed",
                    handler=getattr(handler, "__name__", repr(handler)),
                    learner_id=str(event.learner_id),
                    course_id=str(event.course_id),
                    error=str(result),
                )
