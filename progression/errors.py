"""Engine exceptions.

Every error carries a stable ``code`` so that the hosting application can
map it to a response without matching on classes. Two families matter:

- user guidance (``gating_failed``, ``attempts_exhausted``): the learner has
  more to do; surface the message, do not alert.
- content integrity (``invalid_scope``): the authored content graph is
  malformed; log and fail hard.
"""

from enum import Enum
from uuid import UUID


class GatingReason(str, Enum):
    """Why a lesson cannot be completed yet."""

    VIDEO_NOT_WATCHED = "video_not_watched"
    READINGS_INCOMPLETE = "readings_incomplete"
    EXAM_NOT_PASSED = "exam_not_passed"


class ProgressError(Exception):
    """Base progression error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class GatingFailedError(ProgressError):
    """Lesson requirements are not met yet."""

    def __init__(self, lesson_id: UUID, reasons: tuple[GatingReason, ...]):
        self.lesson_id = lesson_id
        self.reasons = reasons
        labels = ", ".join(reason.value for reason in reasons)
        super().__init__(
            f"Lesson {lesson_id} cannot be completed yet: {labels}", "gating_failed"
        )

    @property
    def reason(self) -> GatingReason:
        """First unmet requirement (video, then readings, then exam)."""
        return self.reasons[0]


class InvalidScopeError(ProgressError):
    """An entity references a lesson or course it does not belong to."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_scope")


class AttemptsExhaustedError(ProgressError):
    """Learner already used every attempt the exam allows."""

    def __init__(self, exam_id: UUID, max_attempts: int):
        self.exam_id = exam_id
        self.max_attempts = max_attempts
        super().__init__(
            f"Exam {exam_id} allows {max_attempts} attempts", "attempts_exhausted"
        )


class ExamAlreadyPassedError(ProgressError):
    """Learner already holds a passing attempt; retakes are closed."""

    def __init__(self, exam_id: UUID):
        self.exam_id = exam_id
        super().__init__(f"Exam {exam_id} is already passed", "exam_already_passed")


class DuplicateAttemptNumberError(ProgressError):
    """Another submission took this attempt number first."""

    def __init__(self, exam_id: UUID, learner_id: UUID, attempt_number: int):
        self.exam_id = exam_id
        self.learner_id = learner_id
        self.attempt_number = attempt_number
        super().__init__(
            f"Attempt {attempt_number} already exists for exam {exam_id}",
            "duplicate_attempt_number",
        )


class AttemptNumberConflictError(ProgressError):
    """Attempt number could not be allocated within the retry budget."""

    def __init__(self, exam_id: UUID, retries: int):
        super().__init__(
            f"Could not allocate an attempt number for exam {exam_id} "
            f"after {retries} retries",
            "attempt_number_conflict",
        )


class CourseNotFoundError(ProgressError):
    """Course does not exist."""

    def __init__(self, course_id: UUID):
        super().__init__(f"Course {course_id} not found", "course_not_found")


class LessonNotFoundError(ProgressError):
    """Lesson does not exist."""

    def __init__(self, lesson_id: UUID):
        super().__init__(f"Lesson {lesson_id} not found", "lesson_not_found")


class ReadingNotFoundError(ProgressError):
    """Reading does not exist."""

    def __init__(self, reading_id: UUID):
        super().__init__(f"Reading {reading_id} not found", "reading_not_found")


class ExamNotFoundError(ProgressError):
    """Exam does not exist."""

    def __init__(self, exam_id: UUID):
        super().__init__(f"Exam {exam_id} not found", "exam_not_found")


class AttemptNotFoundError(ProgressError):
    """Exam attempt does not exist."""

    def __init__(self, exam_id: UUID, attempt_number: int):
        super().__init__(
            f"Attempt {attempt_number} of exam {exam_id} not found",
            "attempt_not_found",
        )
