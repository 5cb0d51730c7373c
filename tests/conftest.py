"""Shared fixtures: in-memory store, wired service and a content builder."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from progression.config.settings import Settings
from progression.courses.models import ContentType, Course, Exam, Lesson, Reading, Section
from progression.progress.events import CallbackCourseCompletedPublisher, CourseCompleted
from progression.progress.service import ProgressService
from progression.store.memory import InMemoryEntityStore


class CourseBuilder:
    """Seeds one course's content graph into an in-memory store."""

    def __init__(self, store: InMemoryEntityStore, live_session_at: datetime | None = None):
        self.store = store
        self.course = store.add_course(
            Course(id=uuid4(), title="Farmacologia Basica", live_session_at=live_session_at)
        )
        self._section_order = 0
        self._lesson_order: dict[UUID | None, int] = {}

    @property
    def course_id(self) -> UUID:
        return self.course.id

    def section(
        self,
        title: str = "Modulo",
        available_from: datetime | None = None,
        available_until: datetime | None = None,
    ) -> Section:
        section = Section(
            id=uuid4(),
            course_id=self.course.id,
            order_index=self._section_order,
            title=title,
            available_from=available_from,
            available_until=available_until,
        )
        self._section_order += 1
        return self.store.add_section(section)

    def lesson(
        self,
        section: Section | None = None,
        video: bool = False,
        content_type: ContentType | None = None,
        title: str = "Aula",
    ) -> Lesson:
        section_id = section.id if section else None
        order = self._lesson_order.get(section_id, 0)
        self._lesson_order[section_id] = order + 1
        lesson = Lesson(
            id=uuid4(),
            course_id=self.course.id,
            section_id=section_id,
            order_index=order,
            title=title,
            content_type=content_type or (ContentType.VIDEO if video else ContentType.TEXT),
            video_reference=f"videos/{uuid4()}.mp4" if video else None,
        )
        return self.store.add_lesson(lesson)

    def reading(self, lesson: Lesson, order_index: int = 0) -> Reading:
        return self.store.add_reading(
            Reading(id=uuid4(), lesson_id=lesson.id, order_index=order_index)
        )

    def exam(
        self,
        lesson: Lesson | None = None,
        threshold: int | str = 70,
        max_attempts: int | None = None,
    ) -> Exam:
        return self.store.add_exam(
            Exam(
                id=uuid4(),
                course_id=self.course.id,
                lesson_id=lesson.id if lesson else None,
                passing_threshold_percent=Decimal(threshold),
                max_attempts=max_attempts,
            )
        )


@pytest.fixture
def settings() -> Settings:
    """Engine settings for tests (no log files)."""
    return Settings(environment="testing", log_to_file=False)


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def completed_events() -> list[CourseCompleted]:
    """CourseCompleted events captured by the test publisher."""
    return []


@pytest.fixture
def publisher(completed_events: list[CourseCompleted]) -> CallbackCourseCompletedPublisher:
    async def capture(event: CourseCompleted) -> None:
        completed_events.append(event)

    return CallbackCourseCompletedPublisher(capture)


@pytest.fixture
def service(
    store: InMemoryEntityStore,
    publisher: CallbackCourseCompletedPublisher,
    settings: Settings,
) -> ProgressService:
    return ProgressService(store, publisher, settings)


@pytest.fixture
def builder(store: InMemoryEntityStore) -> CourseBuilder:
    return CourseBuilder(store)


@pytest.fixture
def make_builder(store: InMemoryEntityStore):
    """Factory for extra courses (e.g. with a live session)."""

    def make(live_session_at: datetime | None = None) -> CourseBuilder:
        return CourseBuilder(store, live_session_at=live_session_at)

    return make


@pytest.fixture
def learner_id() -> UUID:
    """Test learner ID."""
    return uuid4()
