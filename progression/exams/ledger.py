"""Exam Attempt Ledger.

Appends graded attempts with store-allocated attempt numbers and answers
best-attempt queries. Attempt numbers are proposed as max + 1 and inserted
with a uniqueness check; a concurrent submission that took the same number
makes the ledger re-read and retry.
"""

from uuid import UUID

import structlog

from progression.config.settings import Settings, get_settings
from progression.courses.models import Exam
from progression.errors import (
    AttemptNotFoundError,
    AttemptNumberConflictError,
    AttemptsExhaustedError,
    DuplicateAttemptNumberError,
    ExamAlreadyPassedError,
    ExamNotFoundError,
    InvalidScopeError,
)
from progression.exams.models import AttemptResult, ExamAttempt, select_best_attempt
from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)


class ExamAttemptLedger:
    """Append-only record of exam attempts per (exam, learner)."""

    def __init__(self, store: EntityStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    async def get_exam(self, exam_id: UUID) -> Exam:
        exam = await self.store.get_exam(exam_id)
        if exam is None:
            raise ExamNotFoundError(exam_id)
        return exam

    async def check_scope(self, exam: Exam, course_id: UUID | None = None) -> None:
        """Verify the exam sits where it claims to.

        Raises:
            InvalidScopeError: If the exam is outside ``course_id`` or its
                bound lesson belongs to another course
        """
        if course_id is not None and exam.course_id != course_id:
            logger.error(
                "exam_scope_invalid",
                exam_id=str(exam.id),
                exam_course_id=str(exam.course_id),
                course_id=str(course_id),
            )
            raise InvalidScopeError(f"Exam {exam.id} does not belong to course {course_id}")

        if exam.lesson_id is not None:
            lesson = await self.store.get_lesson(exam.lesson_id)
            if lesson is None or lesson.course_id != exam.course_id:
                logger.error(
                    "exam_scope_invalid",
                    exam_id=str(exam.id),
                    lesson_id=str(exam.lesson_id),
                )
                raise InvalidScopeError(
                    f"Exam {exam.id} is bound to lesson {exam.lesson_id} "
                    f"outside course {exam.course_id}"
                )

    async def record_attempt(
        self,
        exam_id: UUID,
        learner_id: UUID,
        result: AttemptResult,
        course_id: UUID | None = None,
    ) -> ExamAttempt:
        """Append a graded attempt with the next attempt number.

        Args:
            exam_id: Exam UUID
            learner_id: Learner UUID
            result: Graded outcome from the assessment subsystem
            course_id: Course the caller believes the exam belongs to

        Returns:
            Stored ExamAttempt

        Raises:
            ExamNotFoundError: If exam doesn't exist
            InvalidScopeError: If the exam is out of scope
            AttemptsExhaustedError: If max_attempts is already used up
            ExamAlreadyPassedError: If a non-annulled attempt already passed
            AttemptNumberConflictError: If no number could be allocated
        """
        exam = await self.get_exam(exam_id)
        await self.check_scope(exam, course_id)

        retries = self.settings.attempt_insert_max_retries
        for _ in range(retries + 1):
            existing = await self.store.list_attempts(exam_id, learner_id)
            if exam.max_attempts is not None and len(existing) >= exam.max_attempts:
                logger.info(
                    "attempts_exhausted",
                    exam_id=str(exam_id),
                    learner_id=str(learner_id),
                    max_attempts=exam.max_attempts,
                )
                raise AttemptsExhaustedError(exam_id, exam.max_attempts)

            best = select_best_attempt(existing)
            if best is not None and best.counts_as_pass(exam):
                logger.info(
                    "exam_already_passed",
                    exam_id=str(exam_id),
                    learner_id=str(learner_id),
                    attempt_number=best.attempt_number,
                )
                raise ExamAlreadyPassedError(exam_id)

            next_number = max((a.attempt_number for a in existing), default=0) + 1
            attempt = ExamAttempt.create(exam_id, learner_id, next_number, result)
            try:
                await self.store.insert_attempt(attempt)
            except DuplicateAttemptNumberError:
                logger.debug(
                    "attempt_number_taken",
                    exam_id=str(exam_id),
                    learner_id=str(learner_id),
                    attempt_number=next_number,
                )
                continue

            logger.info(
                "attempt_recorded",
                exam_id=str(exam_id),
                learner_id=str(learner_id),
                attempt_number=next_number,
                score_percent=str(attempt.score_percent),
                passed=attempt.passed,
                annulled=attempt.annulled,
            )
            return attempt

        logger.error(
            "attempt_number_conflict",
            exam_id=str(exam_id),
            learner_id=str(learner_id),
            retries=retries,
        )
        raise AttemptNumberConflictError(exam_id, retries)

    async def list_attempts(self, exam_id: UUID, learner_id: UUID) -> list[ExamAttempt]:
        attempts = await self.store.list_attempts(exam_id, learner_id)
        return sorted(attempts, key=lambda a: a.attempt_number)

    async def best_attempt(self, exam_id: UUID, learner_id: UUID) -> ExamAttempt | None:
        """Highest-scoring non-annulled attempt, or None."""
        return select_best_attempt(await self.store.list_attempts(exam_id, learner_id))

    async def has_passed(self, exam: Exam, learner_id: UUID) -> bool:
        best = await self.best_attempt(exam.id, learner_id)
        return best is not None and best.counts_as_pass(exam)

    async def annul_attempt(
        self, exam_id: UUID, learner_id: UUID, attempt_number: int
    ) -> ExamAttempt:
        """Exclude an attempt from scoring while keeping it in history.

        Raises:
            AttemptNotFoundError: If the attempt doesn't exist
        """
        attempt = await self.store.set_attempt_annulled(
            exam_id, learner_id, attempt_number, True
        )
        if attempt is None:
            raise AttemptNotFoundError(exam_id, attempt_number)

        logger.warning(
            "attempt_annulled",
            exam_id=str(exam_id),
            learner_id=str(learner_id),
            attempt_number=attempt_number,
        )
        return attempt
