"""Reading Completion Tracker.

Records reading completions and cascades: when the last missing reading
makes its lesson completable, the lesson is completed automatically and
course progress is recomputed.
"""

from uuid import UUID

import structlog

from progression.errors import InvalidScopeError, ReadingNotFoundError
from progression.progress.aggregator import CourseProgressAggregator
from progression.progress.evaluator import LessonCompletionEvaluator
from progression.progress.finalizer import EnrollmentFinalizer, propagate_progress
from progression.progress.models import ReadingProgress
from progression.progress.schemas import ReadingCompletionResult
from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)


class ReadingCompletionTracker:
    def __init__(
        self,
        store: EntityStore,
        evaluator: LessonCompletionEvaluator,
        aggregator: CourseProgressAggregator,
        finalizer: EnrollmentFinalizer,
    ):
        self.store = store
        self.evaluator = evaluator
        self.aggregator = aggregator
        self.finalizer = finalizer

    async def mark_reading_complete(
        self, reading_id: UUID, learner_id: UUID
    ) -> ReadingCompletionResult:
        """Mark a reading completed and auto-complete its lesson if possible.

        Repeating the call keeps the first completed_at. It still re-checks
        the lesson, so a reading completed before another gate opened (for
        example the video confirmation) completes the lesson on a later
        call; this is the recovery path for a missed auto-completion.

        Raises:
            ReadingNotFoundError: If reading doesn't exist
            InvalidScopeError: If the reading's lesson is missing or not part
                of its course
        """
        reading = await self.store.get_reading(reading_id)
        if reading is None:
            raise ReadingNotFoundError(reading_id)

        lesson = await self.store.get_lesson(reading.lesson_id)
        if lesson is None:
            logger.error(
                "reading_scope_invalid",
                reading_id=str(reading_id),
                lesson_id=str(reading.lesson_id),
            )
            raise InvalidScopeError(
                f"Reading {reading_id} references missing lesson {reading.lesson_id}"
            )

        outline = await self.aggregator.load_outline(lesson.course_id)
        node = outline.lesson(lesson.id)
        if node is None or reading_id not in node.reading_ids:
            logger.error(
                "reading_scope_invalid",
                reading_id=str(reading_id),
                lesson_id=str(lesson.id),
                course_id=str(lesson.course_id),
            )
            raise InvalidScopeError(
                f"Reading {reading_id} is not part of course {lesson.course_id}"
            )

        newly_completed = await self.store.insert_reading_progress(
            ReadingProgress(
                learner_id=learner_id, lesson_id=lesson.id, reading_id=reading_id
            )
        )
        if newly_completed:
            logger.info(
                "reading_completed",
                reading_id=str(reading_id),
                lesson_id=str(lesson.id),
                learner_id=str(learner_id),
            )
        await self.finalizer.ensure_enrollment(learner_id, lesson.course_id)

        state = await self.evaluator.load_state(node, learner_id)
        lesson_completed = state.completed
        auto_completed = False
        if not state.completed and self.evaluator.can_complete(node, state):
            completion = await self.evaluator.complete(node, learner_id, state=state)
            lesson_completed = True
            auto_completed = completion.newly_completed

        if auto_completed:
            logger.info(
                "lesson_auto_completed",
                lesson_id=str(lesson.id),
                learner_id=str(learner_id),
            )
            await propagate_progress(
                self.aggregator, self.finalizer, learner_id, lesson.course_id, outline
            )

        return ReadingCompletionResult(
            reading_id=reading_id,
            lesson_id=lesson.id,
            reading_newly_completed=newly_completed,
            lesson_completed=lesson_completed,
            lesson_auto_completed=auto_completed,
        )
