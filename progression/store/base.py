"""Entity store protocol.

The engine talks to persistence only through this interface. Conditional
writes (``insert_*``, ``create_enrollment_if_absent``,
``raise_enrollment_progress``, ``raise_video_position``,
``mark_enrollment_completed``) must be atomic per row and report whether
they applied; everything else is a plain keyed read.
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from progression.courses.models import Course, Exam, Lesson, Reading, Section
from progression.exams.models import ExamAttempt
from progression.progress.models import (
    Enrollment,
    LessonProgress,
    ReadingProgress,
    VideoPosition,
)


class EntityStore(Protocol):
    # Content graph (read-only)
    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def list_sections(self, course_id: UUID) -> list[Section]: ...
    async def list_lessons(self, course_id: UUID) -> list[Lesson]: ...
    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def list_readings(self, lesson_id: UUID) -> list[Reading]: ...
    async def get_reading(self, reading_id: UUID) -> Reading | None: ...
    async def get_exam(self, exam_id: UUID) -> Exam | None: ...
    async def list_exams(self, course_id: UUID) -> list[Exam]: ...

    # Lesson progress
    async def get_lesson_progress(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None: ...
    async def list_lesson_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> list[LessonProgress]: ...
    async def insert_lesson_progress(self, progress: LessonProgress) -> bool: ...

    # Reading progress
    async def insert_reading_progress(self, progress: ReadingProgress) -> bool: ...
    async def list_reading_progress(
        self, learner_id: UUID, lesson_id: UUID
    ) -> list[ReadingProgress]: ...

    # Video watch signal
    async def confirm_video_watch(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID, confirmed_at: datetime
    ) -> bool: ...
    async def has_video_confirmation(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> bool: ...
    async def list_video_confirmations(
        self, learner_id: UUID, course_id: UUID
    ) -> frozenset[UUID]: ...
    async def get_video_position(
        self, learner_id: UUID, lesson_id: UUID
    ) -> VideoPosition | None: ...
    async def raise_video_position(self, position: VideoPosition) -> bool: ...

    # Exam attempts
    async def list_attempts(
        self, exam_id: UUID, learner_id: UUID
    ) -> list[ExamAttempt]: ...
    async def insert_attempt(self, attempt: ExamAttempt) -> None: ...
    async def set_attempt_annulled(
        self, exam_id: UUID, learner_id: UUID, attempt_number: int, annulled: bool
    ) -> ExamAttempt | None: ...

    # Enrollments
    async def get_enrollment(
        self, learner_id: UUID, course_id: UUID
    ) -> Enrollment | None: ...
    async def create_enrollment_if_absent(self, enrollment: Enrollment) -> bool: ...
    async def raise_enrollment_progress(
        self,
        learner_id: UUID,
        course_id: UUID,
        progress_percent: int,
        lessons_completed: int,
        lessons_total: int,
        updated_at: datetime,
    ) -> bool: ...
    async def mark_enrollment_completed(
        self, learner_id: UUID, course_id: UUID, completed_at: datetime
    ) -> bool: ...
