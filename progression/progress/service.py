"""Progress service layer.

Public entry points of the engine, invoked by the hosting application:
- Reading completion with lesson auto-completion
- Exam result submission and annulment
- Gated manual lesson completion
- Video watch confirmation (signal and position heuristic)
- Course progress queries, recovery recomputation and resume lookup

Every write path ends the same way: recompute course progress from the
authoritative rows and let the finalizer persist it.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import structlog

from progression.config.settings import Settings, get_settings
from progression.core.context import bind_learner_context
from progression.courses.models import Requirement
from progression.courses.outline import CourseOutline, LessonNode
from progression.errors import (
    CourseNotFoundError,
    InvalidScopeError,
    LessonNotFoundError,
)
from progression.exams.ledger import ExamAttemptLedger
from progression.exams.models import AttemptResult, ExamAttempt
from progression.progress.aggregator import CourseProgressAggregator
from progression.progress.evaluator import LessonCompletionEvaluator, evaluate, lesson_state
from progression.progress.events import CourseCompletedPublisher
from progression.progress.finalizer import EnrollmentFinalizer, propagate_progress
from progression.progress.models import LessonProgress, LessonState, VideoPosition
from progression.progress.readings import ReadingCompletionTracker
from progression.progress.schemas import (
    CourseProgressSummary,
    LessonStatus,
    ReadingCompletionResult,
    VideoPositionResult,
)
from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)


class ProgressService:
    """Service for learner progress operations."""

    def __init__(
        self,
        store: EntityStore,
        publisher: CourseCompletedPublisher,
        settings: Settings | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.ledger = ExamAttemptLedger(store, self.settings)
        self.evaluator = LessonCompletionEvaluator(store, self.ledger)
        self.aggregator = CourseProgressAggregator(store, self.ledger, self.settings)
        self.finalizer = EnrollmentFinalizer(store, publisher)
        self.readings = ReadingCompletionTracker(
            store, self.evaluator, self.aggregator, self.finalizer
        )

    async def _load_lesson(self, lesson_id: UUID) -> tuple[CourseOutline, LessonNode]:
        lesson = await self.store.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)

        outline = await self.aggregator.load_outline(lesson.course_id)
        node = outline.lesson(lesson_id)
        if node is None:
            logger.error(
                "lesson_scope_invalid",
                lesson_id=str(lesson_id),
                course_id=str(lesson.course_id),
            )
            raise InvalidScopeError(
                f"Lesson {lesson_id} is not part of course {lesson.course_id}"
            )
        return outline, node

    async def _propagate(
        self, learner_id: UUID, course_id: UUID, outline: CourseOutline | None = None
    ) -> CourseProgressSummary:
        result, enrollment = await propagate_progress(
            self.aggregator, self.finalizer, learner_id, course_id, outline
        )
        return CourseProgressSummary.from_entity(enrollment, list(result.blockers))

    # ==========================================================================
    # Readings
    # ==========================================================================

    async def complete_reading(
        self, learner_id: UUID, reading_id: UUID
    ) -> ReadingCompletionResult:
        """Mark a reading completed; may auto-complete its lesson."""
        with bind_learner_context(learner_id):
            return await self.readings.mark_reading_complete(reading_id, learner_id)

    # ==========================================================================
    # Exams
    # ==========================================================================

    async def submit_exam_result(
        self,
        learner_id: UUID,
        exam_id: UUID,
        score_numeric: Decimal | int | float,
        score_percent: Decimal | int | float,
        passed: bool,
        annulled: bool = False,
        course_id: UUID | None = None,
        started_at: datetime | None = None,
        submitted_at: datetime | None = None,
    ) -> ExamAttempt:
        """Record a graded attempt from the assessment subsystem.

        Args:
            learner_id: Learner UUID
            exam_id: Exam UUID
            score_numeric: Raw score
            score_percent: 0-100 percentage
            passed: Grader's pass flag
            annulled: Integrity violation detected at submission
            course_id: Course the caller believes the exam belongs to
            started_at: When the attempt was opened
            submitted_at: When it was submitted (defaults to now)

        Returns:
            Stored ExamAttempt with its allocated attempt_number

        Raises:
            ExamNotFoundError: If exam doesn't exist
            InvalidScopeError: If the exam is out of scope
            AttemptsExhaustedError: If no attempts are left
            ExamAlreadyPassedError: If the learner already passed
        """
        exam = await self.ledger.get_exam(exam_id)
        with bind_learner_context(learner_id, exam.course_id):
            result = AttemptResult(
                score_numeric=Decimal(str(score_numeric)),
                score_percent=Decimal(str(score_percent)),
                passed=passed,
                annulled=annulled,
                started_at=started_at,
                submitted_at=submitted_at or datetime.now(UTC),
            )
            attempt = await self.ledger.record_attempt(
                exam_id, learner_id, result, course_id=course_id
            )
            await self._propagate(learner_id, exam.course_id)
            return attempt

    async def annul_attempt(
        self, learner_id: UUID, exam_id: UUID, attempt_number: int
    ) -> ExamAttempt:
        """Annul an attempt and recompute course progress.

        Lessons already completed stay completed.
        """
        exam = await self.ledger.get_exam(exam_id)
        with bind_learner_context(learner_id, exam.course_id):
            attempt = await self.ledger.annul_attempt(exam_id, learner_id, attempt_number)
            await self._propagate(learner_id, exam.course_id)
            return attempt

    # ==========================================================================
    # Lessons
    # ==========================================================================

    async def complete_lesson(self, learner_id: UUID, lesson_id: UUID) -> LessonProgress:
        """Manually complete a lesson after checking its gating requirements.

        Raises:
            LessonNotFoundError: If lesson doesn't exist
            GatingFailedError: If a requirement is unmet
        """
        outline, node = await self._load_lesson(lesson_id)
        with bind_learner_context(learner_id, node.course_id):
            await self.finalizer.ensure_enrollment(learner_id, node.course_id)
            completion = await self.evaluator.complete(node, learner_id)
            await self._propagate(learner_id, node.course_id, outline)
            return completion.progress

    async def get_lesson_status(self, learner_id: UUID, lesson_id: UUID) -> LessonStatus:
        """Lesson state for a learner with the requirements still unmet."""
        _, node = await self._load_lesson(lesson_id)
        state = await self.evaluator.load_state(node, learner_id)
        progress = None
        if state.completed:
            progress = await self.store.get_lesson_progress(
                learner_id, node.course_id, node.id
            )

        current = lesson_state(node, state)
        return LessonStatus(
            lesson_id=node.id,
            course_id=node.course_id,
            state=current,
            unmet=[] if current == LessonState.COMPLETED else list(evaluate(node, state).unmet),
            completed_at=progress.completed_at if progress else None,
        )

    # ==========================================================================
    # Videos
    # ==========================================================================

    async def confirm_video_watched(self, learner_id: UUID, lesson_id: UUID) -> bool:
        """Record the playback surface's watch confirmation.

        Returns:
            True if this call recorded the confirmation

        Raises:
            InvalidScopeError: If the lesson has no video
        """
        outline, node = await self._load_lesson(lesson_id)
        if Requirement.WATCH_CONFIRMATION not in node.requirements:
            logger.error(
                "lesson_scope_invalid",
                lesson_id=str(lesson_id),
                course_id=str(node.course_id),
            )
            raise InvalidScopeError(f"Lesson {lesson_id} has no video to confirm")

        with bind_learner_context(learner_id, node.course_id):
            confirmed = await self.store.confirm_video_watch(
                learner_id, node.course_id, node.id, datetime.now(UTC)
            )
            if confirmed:
                logger.info("video_watch_confirmed", lesson_id=str(lesson_id))
            await self._propagate(learner_id, node.course_id, outline)
            return confirmed

    async def report_video_position(
        self,
        learner_id: UUID,
        lesson_id: UUID,
        position_seconds: float,
        duration_seconds: float,
    ) -> VideoPositionResult:
        """Track playback and confirm the watch once the threshold is reached.

        Only the furthest position counts; seeking backwards never lowers it.
        """
        if duration_seconds <= 0 or position_seconds < 0:
            raise ValueError("position must be >= 0 and duration > 0")

        _, node = await self._load_lesson(lesson_id)
        if Requirement.WATCH_CONFIRMATION not in node.requirements:
            logger.error(
                "lesson_scope_invalid",
                lesson_id=str(lesson_id),
                course_id=str(node.course_id),
            )
            raise InvalidScopeError(f"Lesson {lesson_id} has no video to track")

        # Convert float to int for Cassandra storage (INT columns)
        position = int(position_seconds)
        duration = int(duration_seconds) or 1

        video = VideoPosition(
            learner_id=learner_id,
            lesson_id=lesson_id,
            furthest_position_seconds=min(position, duration),
            duration_seconds=duration,
        )
        # Conditional write: a concurrent lower report cannot overwrite a higher one
        await self.store.raise_video_position(video)
        video = await self.store.get_video_position(learner_id, lesson_id) or video

        watched = video.watched_percent()
        confirmed = await self.store.has_video_confirmation(
            learner_id, node.course_id, node.id
        )
        if not confirmed and watched >= self.settings.video_watch_threshold_percent:
            await self.confirm_video_watched(learner_id, lesson_id)
            confirmed = True

        return VideoPositionResult(
            lesson_id=lesson_id,
            furthest_position_seconds=video.furthest_position_seconds,
            watched_percent=watched,
            confirmed=confirmed,
        )

    # ==========================================================================
    # Course Progress
    # ==========================================================================

    async def get_course_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> CourseProgressSummary:
        """Stored progress for a learner; zeros if never enrolled.

        A 100% enrollment that is still open (e.g. waiting for the live
        session) is re-finalized on read.
        """
        if await self.store.get_course(course_id) is None:
            raise CourseNotFoundError(course_id)

        enrollment = await self.store.get_enrollment(learner_id, course_id)
        if enrollment is None:
            return CourseProgressSummary(learner_id=learner_id, course_id=course_id)

        if enrollment.progress_percent == 100 and not enrollment.completed:
            with bind_learner_context(learner_id, course_id):
                return await self._propagate(learner_id, course_id)

        return CourseProgressSummary.from_entity(enrollment)

    async def refresh_course_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> CourseProgressSummary:
        """Full recomputation and finalization (recovery path)."""
        with bind_learner_context(learner_id, course_id):
            summary = await self._propagate(learner_id, course_id)
            logger.info(
                "course_progress_refreshed", progress_percent=summary.progress_percent
            )
            return summary

    async def next_lesson(
        self, learner_id: UUID, course_id: UUID, now: datetime | None = None
    ) -> UUID | None:
        """First lesson to resume: not completed, in an open section.

        Falls back to the first available lesson when everything open is
        already completed; None when no section is open.
        """
        now = now or datetime.now(UTC)
        outline = await self.aggregator.load_outline(course_id)
        rows = await self.store.list_lesson_progress(learner_id, course_id)
        completed = {row.lesson_id for row in rows if row.completed}

        available = [
            lesson.id
            for section in outline.sections
            if section.section.is_available(now)
            for lesson in section.lessons
        ]
        for lesson_id in available:
            if lesson_id not in completed:
                return lesson_id
        return available[0] if available else None
