"""In-process entity store.

Implements ``EntityStore`` over plain dicts for embedding and tests. Every
operation first yields to the event loop (standing in for a network round
trip) and then runs its check-and-write without awaiting, so conditional
writes stay atomic while concurrent callers still interleave between their
own reads and writes.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from progression.courses.models import Course, Exam, Lesson, Reading, Section
from progression.errors import DuplicateAttemptNumberError
from progression.exams.models import ExamAttempt
from progression.progress.models import (
    Enrollment,
    LessonProgress,
    ReadingProgress,
    VideoPosition,
)


class InMemoryEntityStore:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._sections: dict[UUID, Section] = {}
        self._lessons: dict[UUID, Lesson] = {}
        self._readings: dict[UUID, Reading] = {}
        self._exams: dict[UUID, Exam] = {}

        self._lesson_progress: dict[tuple[UUID, UUID], LessonProgress] = {}
        self._reading_progress: dict[tuple[UUID, UUID], ReadingProgress] = {}
        self._video_confirmations: dict[tuple[UUID, UUID], tuple[UUID, datetime]] = {}
        self._video_positions: dict[tuple[UUID, UUID], VideoPosition] = {}
        self._attempts: dict[tuple[UUID, UUID, int], ExamAttempt] = {}
        self._enrollments: dict[tuple[UUID, UUID], Enrollment] = {}

    # ==========================================================================
    # Seeding (content is authored outside the engine)
    # ==========================================================================

    def add_course(self, course: Course) -> Course:
        self._courses[course.id] = course
        return course

    def add_section(self, section: Section) -> Section:
        self._sections[section.id] = section
        return section

    def add_lesson(self, lesson: Lesson) -> Lesson:
        self._lessons[lesson.id] = lesson
        return lesson

    def add_reading(self, reading: Reading) -> Reading:
        self._readings[reading.id] = reading
        return reading

    def add_exam(self, exam: Exam) -> Exam:
        self._exams[exam.id] = exam
        if exam.lesson_id is not None and exam.lesson_id in self._lessons:
            lesson = self._lessons[exam.lesson_id]
            if lesson.exam_id is None:
                self._lessons[lesson.id] = replace(lesson, exam_id=exam.id)
        return exam

    # ==========================================================================
    # Content graph
    # ==========================================================================

    async def get_course(self, course_id: UUID) -> Course | None:
        await asyncio.sleep(0)
        return self._courses.get(course_id)

    async def list_sections(self, course_id: UUID) -> list[Section]:
        await asyncio.sleep(0)
        return sorted(
            (s for s in self._sections.values() if s.course_id == course_id),
            key=lambda s: s.order_index,
        )

    async def list_lessons(self, course_id: UUID) -> list[Lesson]:
        await asyncio.sleep(0)
        return [lesson for lesson in self._lessons.values() if lesson.course_id == course_id]

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        await asyncio.sleep(0)
        return self._lessons.get(lesson_id)

    async def list_readings(self, lesson_id: UUID) -> list[Reading]:
        await asyncio.sleep(0)
        return [r for r in self._readings.values() if r.lesson_id == lesson_id]

    async def get_reading(self, reading_id: UUID) -> Reading | None:
        await asyncio.sleep(0)
        return self._readings.get(reading_id)

    async def get_exam(self, exam_id: UUID) -> Exam | None:
        await asyncio.sleep(0)
        return self._exams.get(exam_id)

    async def list_exams(self, course_id: UUID) -> list[Exam]:
        await asyncio.sleep(0)
        return [e for e in self._exams.values() if e.course_id == course_id]

    # ==========================================================================
    # Lesson progress
    # ==========================================================================

    async def get_lesson_progress(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        await asyncio.sleep(0)
        progress = self._lesson_progress.get((learner_id, lesson_id))
        if progress is None or progress.course_id != course_id:
            return None
        return progress

    async def list_lesson_progress(
        self, learner_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        await asyncio.sleep(0)
        return [
            p
            for (learner, _), p in self._lesson_progress.items()
            if learner == learner_id and p.course_id == course_id
        ]

    async def insert_lesson_progress(self, progress: LessonProgress) -> bool:
        await asyncio.sleep(0)
        if progress.key in self._lesson_progress:
            return False
        self._lesson_progress[progress.key] = progress
        return True

    # ==========================================================================
    # Reading progress
    # ==========================================================================

    async def insert_reading_progress(self, progress: ReadingProgress) -> bool:
        await asyncio.sleep(0)
        if progress.key in self._reading_progress:
            return False
        self._reading_progress[progress.key] = progress
        return True

    async def list_reading_progress(
        self, learner_id: UUID, lesson_id: UUID
    ) -> list[ReadingProgress]:
        await asyncio.sleep(0)
        return [
            p
            for (learner, _), p in self._reading_progress.items()
            if learner == learner_id and p.lesson_id == lesson_id
        ]

    # ==========================================================================
    # Video watch signal
    # ==========================================================================

    async def confirm_video_watch(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID, confirmed_at: datetime
    ) -> bool:
        await asyncio.sleep(0)
        key = (learner_id, lesson_id)
        if key in self._video_confirmations:
            return False
        self._video_confirmations[key] = (course_id, confirmed_at)
        return True

    async def has_video_confirmation(
        self, learner_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> bool:
        await asyncio.sleep(0)
        confirmation = self._video_confirmations.get((learner_id, lesson_id))
        return confirmation is not None and confirmation[0] == course_id

    async def list_video_confirmations(
        self, learner_id: UUID, course_id: UUID
    ) -> frozenset[UUID]:
        await asyncio.sleep(0)
        return frozenset(
            lesson_id
            for (learner, lesson_id), (course, _) in self._video_confirmations.items()
            if learner == learner_id and course == course_id
        )

    async def get_video_position(
        self, learner_id: UUID, lesson_id: UUID
    ) -> VideoPosition | None:
        await asyncio.sleep(0)
        return self._video_positions.get((learner_id, lesson_id))

    async def raise_video_position(self, position: VideoPosition) -> bool:
        await asyncio.sleep(0)
        key = (position.learner_id, position.lesson_id)
        current = self._video_positions.get(key)
        if (
            current is not None
            and current.furthest_position_seconds >= position.furthest_position_seconds
        ):
            return False
        self._video_positions[key] = position
        return True

    # ==========================================================================
    # Exam attempts
    # ==========================================================================

    async def list_attempts(self, exam_id: UUID, learner_id: UUID) -> list[ExamAttempt]:
        await asyncio.sleep(0)
        return sorted(
            (
                a
                for (exam, learner, _), a in self._attempts.items()
                if exam == exam_id and learner == learner_id
            ),
            key=lambda a: a.attempt_number,
        )

    async def insert_attempt(self, attempt: ExamAttempt) -> None:
        await asyncio.sleep(0)
        key = (attempt.exam_id, attempt.learner_id, attempt.attempt_number)
        if key in self._attempts:
            raise DuplicateAttemptNumberError(
                attempt.exam_id, attempt.learner_id, attempt.attempt_number
            )
        self._attempts[key] = attempt

    async def set_attempt_annulled(
        self, exam_id: UUID, learner_id: UUID, attempt_number: int, annulled: bool
    ) -> ExamAttempt | None:
        await asyncio.sleep(0)
        key = (exam_id, learner_id, attempt_number)
        attempt = self._attempts.get(key)
        if attempt is None:
            return None
        updated = attempt.with_annulled(annulled)
        self._attempts[key] = updated
        return updated

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def get_enrollment(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        await asyncio.sleep(0)
        enrollment = self._enrollments.get((learner_id, course_id))
        return Enrollment(**enrollment.to_dict()) if enrollment else None

    async def create_enrollment_if_absent(self, enrollment: Enrollment) -> bool:
        await asyncio.sleep(0)
        key = (enrollment.learner_id, enrollment.course_id)
        if key in self._enrollments:
            return False
        self._enrollments[key] = Enrollment(**enrollment.to_dict())
        return True

    async def raise_enrollment_progress(
        self,
        learner_id: UUID,
        course_id: UUID,
        progress_percent: int,
        lessons_completed: int,
        lessons_total: int,
        updated_at: datetime,
    ) -> bool:
        await asyncio.sleep(0)
        enrollment = self._enrollments.get((learner_id, course_id))
        if enrollment is None or enrollment.progress_percent >= progress_percent:
            return False
        enrollment.progress_percent = progress_percent
        enrollment.lessons_completed = lessons_completed
        enrollment.lessons_total = lessons_total
        enrollment.updated_at = updated_at
        return True

    async def mark_enrollment_completed(
        self, learner_id: UUID, course_id: UUID, completed_at: datetime
    ) -> bool:
        await asyncio.sleep(0)
        enrollment = self._enrollments.get((learner_id, course_id))
        if enrollment is None or enrollment.completed:
            return False
        enrollment.completed = True
        enrollment.completed_at = completed_at
        enrollment.updated_at = completed_at
        return True
