"""Enrollment Finalizer.

Persists aggregate results onto the enrollment row and performs the single
completed=false -> true transition. Both writes are conditional at the
store: progress only ever rises, and only one caller wins the completion
flip, so CourseCompleted is emitted at most once per enrollment.
"""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from progression.courses.outline import CourseOutline
from progression.progress.aggregator import AggregateResult, CourseProgressAggregator
from progression.progress.events import CourseCompleted, CourseCompletedPublisher
from progression.progress.models import Enrollment
from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)


class EnrollmentFinalizer:
    def __init__(self, store: EntityStore, publisher: CourseCompletedPublisher):
        self.store = store
        self.publisher = publisher

    async def ensure_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment:
        """Get the enrollment, creating it on first interaction."""
        enrollment = await self.store.get_enrollment(learner_id, course_id)
        if enrollment is not None:
            return enrollment

        candidate = Enrollment(course_id=course_id, learner_id=learner_id)
        if await self.store.create_enrollment_if_absent(candidate):
            logger.info(
                "learner_enrolled", learner_id=str(learner_id), course_id=str(course_id)
            )
            return candidate

        # A concurrent first interaction created it
        return await self.store.get_enrollment(learner_id, course_id) or candidate

    async def apply(self, enrollment: Enrollment, result: AggregateResult) -> Enrollment:
        """Write an aggregate result onto an enrollment.

        Args:
            enrollment: Current enrollment row
            result: Freshly recomputed aggregate for the same (learner, course)

        Returns:
            Enrollment as stored after the writes
        """
        if enrollment.completed:
            return enrollment

        learner_id, course_id = enrollment.learner_id, enrollment.course_id
        now = datetime.now(UTC)

        if result.progress_percent > enrollment.progress_percent:
            raised = await self.store.raise_enrollment_progress(
                learner_id,
                course_id,
                result.progress_percent,
                result.completed_lessons,
                result.total_lessons,
                now,
            )
            if raised:
                logger.info(
                    "enrollment_progress_updated",
                    learner_id=str(learner_id),
                    course_id=str(course_id),
                    progress_percent=result.progress_percent,
                )

        if result.is_complete:
            if await self.store.mark_enrollment_completed(learner_id, course_id, now):
                logger.info(
                    "course_completed",
                    learner_id=str(learner_id),
                    course_id=str(course_id),
                )
                await self.publisher.publish(
                    CourseCompleted(
                        learner_id=learner_id, course_id=course_id, completed_at=now
                    )
                )
        elif result.progress_percent == 100:
            logger.info(
                "course_completion_deferred",
                learner_id=str(learner_id),
                course_id=str(course_id),
                blockers=[blocker.value for blocker in result.blockers],
            )

        stored = await self.store.get_enrollment(learner_id, course_id)
        return stored or enrollment


async def propagate_progress(
    aggregator: CourseProgressAggregator,
    finalizer: EnrollmentFinalizer,
    learner_id: UUID,
    course_id: UUID,
    outline: CourseOutline | None = None,
) -> tuple[AggregateResult, Enrollment]:
    """Recompute course progress and persist it onto the enrollment."""
    enrollment = await finalizer.ensure_enrollment(learner_id, course_id)
    result = await aggregator.recompute(course_id, learner_id, outline=outline)
    enrollment = await finalizer.apply(enrollment, result)
    return result, enrollment
