"""Cassandra implementation of the entity store.

Uses prepared statements executed through cassandra-asyncio-driver's
``aexecute()``. Conditional writes are lightweight transactions; their
``was_applied`` flag is what the engine sees as "this caller won":

- lesson/reading progress, video confirmations, enrollments:
  INSERT ... IF NOT EXISTS
- exam attempts: INSERT ... IF NOT EXISTS on (exam, learner, number)
- enrollment progress: UPDATE ... IF progress_percent < ?
- video position: INSERT ... IF NOT EXISTS, then
  UPDATE ... IF furthest_position_seconds < ?
- enrollment completion: UPDATE ... IF completed = false
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from progression.courses.models import Course, Exam, Lesson, Reading, Section
from progression.errors import DuplicateAttemptNumberError
from progression.exams.models import ExamAttempt
from progression.progress.models import (
    Enrollment,
    LessonProgress,
    ReadingProgress,
    VideoPosition,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CassandraEntityStore:
    """Entity store backed by a Cassandra keyspace."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Content graph
        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE id = ?
        """)

        self._list_sections = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_sections WHERE course_id = ?
        """)

        self._list_lessons = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lessons_by_course WHERE course_id = ?
        """)

        self._get_lesson = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lessons WHERE id = ?
        """)

        self._list_readings = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.readings_by_lesson WHERE lesson_id = ?
        """)

        self._get_reading = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.readings WHERE id = ?
        """)

        self._get_exam = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.exams WHERE id = ?
        """)

        self._list_exams = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.exams_by_course WHERE course_id = ?
        """)

        # Lesson progress
        self._get_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE learner_id = ? AND course_id = ? AND lesson_id = ?
        """)

        self._list_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE learner_id = ? AND course_id = ?
        """)

        self._insert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (learner_id, course_id, lesson_id, completed, completed_at)
            VALUES (?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        # Reading progress
        self._insert_reading_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.reading_progress
            (learner_id, lesson_id, reading_id, completed, completed_at)
            VALUES (?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._list_reading_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.reading_progress
            WHERE learner_id = ? AND lesson_id = ?
        """)

        # Video watch signal
        self._insert_video_confirmation = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.video_confirmations
            (learner_id, course_id, lesson_id, confirmed_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._get_video_confirmation = self.session.prepare(f"""
            SELECT lesson_id FROM {self.keyspace}.video_confirmations
            WHERE learner_id = ? AND course_id = ? AND lesson_id = ?
        """)

        self._list_video_confirmations = self.session.prepare(f"""
            SELECT lesson_id FROM {self.keyspace}.video_confirmations
            WHERE learner_id = ? AND course_id = ?
        """)

        self._get_video_position = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.video_positions
            WHERE learner_id = ? AND lesson_id = ?
        """)

        self._insert_video_position = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.video_positions
            (learner_id, lesson_id, furthest_position_seconds, duration_seconds,
             updated_at)
            VALUES (?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._raise_video_position = self.session.prepare(f"""
            UPDATE {self.keyspace}.video_positions
            SET furthest_position_seconds = ?, duration_seconds = ?, updated_at = ?
            WHERE learner_id = ? AND lesson_id = ?
            IF furthest_position_seconds < ?
        """)

        # Exam attempts
        self._list_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.exam_attempts
            WHERE exam_id = ? AND learner_id = ?
        """)

        self._get_attempt = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.exam_attempts
            WHERE exam_id = ? AND learner_id = ? AND attempt_number = ?
        """)

        self._insert_attempt = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.exam_attempts
            (exam_id, learner_id, attempt_number, id, score_numeric, score_percent,
             passed, annulled, started_at, submitted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._set_attempt_annulled = self.session.prepare(f"""
            UPDATE {self.keyspace}.exam_attempts SET annulled = ?
            WHERE exam_id = ? AND learner_id = ? AND attempt_number = ?
            IF EXISTS
        """)

        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND learner_id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, learner_id, progress_percent, lessons_completed,
             lessons_total, completed, enrolled_at, updated_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._raise_enrollment_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET progress_percent = ?, lessons_completed = ?, lessons_total = ?,
                updated_at = ?
            WHERE course_id = ? AND learner_id = ?
            IF progress_percent < ?
        """)

        self._mark_enrollment_completed = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET completed = true, completed_at = ?, updated_at = ?
            WHERE course_id = ? AND learner_id = ?
            IF completed = false
        """)

    # ==========================================================================
    # Content Graph
    # ==========================================================================

    async def get_course(self, course_id: UUID) -> Course | None:
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def list_sections(self, course_id: UUID) -> list[Section]:
        rows = await self.session.aexecute(self._list_sections, [course_id])
        return [Section.from_row(row) for row in rows]

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        rows = await self.session.aexecute(self._list_lessons, [course_id])
        return [Lesson.from_row(row) for row in rows]

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        result = await self.session.aexecute(self._get_lesson, [lesson_id])
        row = result.one()
        return Lesson.from_row(row) if row else None

    async def list_readings(self, lesson_id: UUID) -> list[Reading]:
        rows = await self.session.aexecute(self._list_readings, [lesson_id])
        return [Reading.from_row(row) for row in rows]

    async def get_reading(self, reading_id: UUID) -> Reading | None:
        result = await self.session.aexecute(self._get_reading, [reading_id])
        row = result.one()
        return Reading.from_row(row) if row else None

    async def get_exam(self, exam_id: UUID) -> Exam | None:
        result = await self.session.aexecute(self._get_exam, [exam_id])
        row = result.one()
        return Exam.from_row(row) if row else None

    async def list_exams(self, course_id: UUID) -> list[Exam]:
        rows = await self.session.aexecute(self._list_exams, [course_id])
        return [Exam.from_row(row) for row in rows]

    # ==========================================================================
    # Lesson Progress
    # ==========================================================================

    async def get_lesson_progress(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        result = await self.session.aexecute(
            self._get_lesson_progress, [learner_id, course_id, lesson_id]
        )
        row = result.one()
        return LessonProgress.from_row(row) if row else None

    async def list_lesson_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        rows = await self.session.aexecute(
            self._list_lesson_progress, [learner_id, course_id]
        )
        return [LessonProgress.from_row(row) for row in rows]

    async def insert_lesson_progress(self, progress: LessonProgress) -> bool:
        result = await self.session.aexecute(
            self._insert_lesson_progress,
            [
                progress.learner_id,
                progress.course_id,
                progress.lesson_id,
                progress.completed,
                progress.completed_at,
            ],
        )
        return bool(result.was_applied)

    # ==========================================================================
    # Reading Progress
    # ==========================================================================

    async def insert_reading_progress(self, progress: ReadingProgress) -> bool:
        result = await self.session.aexecute(
            self._insert_reading_progress,
            [
                progress.learner_id,
                progress.lesson_id,
                progress.reading_id,
                progress.completed,
                progress.completed_at,
            ],
        )
        return bool(result.was_applied)

    async def list_reading_progress(
        self, learner_id: UUID, lesson_id: UUID
    ) -> list[ReadingProgress]:
        rows = await self.session.aexecute(
            self._list_reading_progress, [learner_id, lesson_id]
        )
        return [ReadingProgress.from_row(row) for row in rows]

    # ==========================================================================
    # Video Watch Signal
    # ==========================================================================

    async def confirm_video_watch(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID, confirmed_at: datetime
    ) -> bool:
        result = await self.session.aexecute(
            self._insert_video_confirmation,
            [learner_id, course_id, lesson_id, confirmed_at],
        )
        return bool(result.was_applied)

    async def has_video_confirmation(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> bool:
        result = await self.session.aexecute(
            self._get_video_confirmation, [learner_id, course_id, lesson_id]
        )
        return result.one() is not None

    async def list_video_confirmations(
        self, learner_id: UUID, course_id: UUID
    ) -> frozenset[UUID]:
        rows = await self.session.aexecute(
            self._list_video_confirmations, [learner_id, course_id]
        )
        return frozenset(row.lesson_id for row in rows)

    async def get_video_position(
        self, learner_id: UUID, lesson_id: UUID
    ) -> VideoPosition | None:
        result = await self.session.aexecute(
            self._get_video_position, [learner_id, lesson_id]
        )
        row = result.one()
        return VideoPosition.from_row(row) if row else None

    async def raise_video_position(self, position: VideoPosition) -> bool:
        """Store the position if it is further than the stored one."""
        result = await self.session.aexecute(
            self._insert_video_position,
            [
                position.learner_id,
                position.lesson_id,
                position.furthest_position_seconds,
                position.duration_seconds,
                position.updated_at,
            ],
        )
        if result.was_applied:
            return True

        result = await self.session.aexecute(
            self._raise_video_position,
            [
                position.furthest_position_seconds,
                position.duration_seconds,
                position.updated_at,
                position.learner_id,
                position.lesson_id,
                position.furthest_position_seconds,
            ],
        )
        return bool(result.was_applied)

    # ==========================================================================
    # Exam Attempts
    # ==========================================================================

    async def list_attempts(self, exam_id: UUID, learner_id: UUID) -> list[ExamAttempt]:
        rows = await self.session.aexecute(self._list_attempts, [exam_id, learner_id])
        return [ExamAttempt.from_row(row) for row in rows]

    async def insert_attempt(self, attempt: ExamAttempt) -> None:
        """Insert an attempt.

        Raises:
            DuplicateAttemptNumberError: If the attempt number is taken
        """
        result = await self.session.aexecute(
            self._insert_attempt,
            [
                attempt.exam_id,
                attempt.learner_id,
                attempt.attempt_number,
                attempt.id,
                attempt.score_numeric,
                attempt.score_percent,
                attempt.passed,
                attempt.annulled,
                attempt.started_at,
                attempt.submitted_at,
            ],
        )
        if not result.was_applied:
            raise DuplicateAttemptNumberError(
                attempt.exam_id, attempt.learner_id, attempt.attempt_number
            )

    async def set_attempt_annulled(
        self, exam_id: UUID, learner_id: UUID, attempt_number: int, annulled: bool
    ) -> ExamAttempt | None:
        result = await self.session.aexecute(
            self._set_attempt_annulled, [annulled, exam_id, learner_id, attempt_number]
        )
        if not result.was_applied:
            return None

        result = await self.session.aexecute(
            self._get_attempt, [exam_id, learner_id, attempt_number]
        )
        row = result.one()
        return ExamAttempt.from_row(row) if row else None

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def get_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        result = await self.session.aexecute(self._get_enrollment, [course_id, learner_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def create_enrollment_if_absent(self, enrollment: Enrollment) -> bool:
        result = await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.course_id,
                enrollment.learner_id,
                enrollment.progress_percent,
                enrollment.lessons_completed,
                enrollment.lessons_total,
                enrollment.completed,
                enrollment.enrolled_at,
                enrollment.updated_at,
                enrollment.completed_at,
            ],
        )
        return bool(result.was_applied)

    async def raise_enrollment_progress(
        self,
        learner_id: UUID,
        course_id: UUID,
        progress_percent: int,
        lessons_completed: int,
        lessons_total: int,
        updated_at: datetime,
    ) -> bool:
        result = await self.session.aexecute(
            self._raise_enrollment_progress,
            [
                progress_percent,
                lessons_completed,
                lessons_total,
                updated_at,
                course_id,
                learner_id,
                progress_percent,
            ],
        )
        if not result.was_applied:
            logger.debug(
                "enrollment_progress_not_raised",
                learner_id=str(learner_id),
                course_id=str(course_id),
                progress_percent=progress_percent,
            )
        return bool(result.was_applied)

    async def mark_enrollment_completed(
        self, learner_id: UUID, course_id: UUID, completed_at: datetime
    ) -> bool:
        result = await self.session.aexecute(
            self._mark_enrollment_completed,
            [completed_at, completed_at, course_id, learner_id],
        )
        return bool(result.was_applied)
