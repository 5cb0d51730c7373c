"""Normalized, immutable view of a course's content graph.

Lessons without a section are moved into a synthetic section with the fixed
id ``UNSECTIONED_SECTION_ID`` so that ordering, counting and iteration never
special-case a null section. The synthetic section goes after the authored
ones unless the outline is built with ``unsectioned_position="first"``.
"""

import asyncio
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal
from uuid import UUID

import structlog

from progression.courses.models import Course, Exam, Lesson, Reading, Requirement, Section
from progression.errors import CourseNotFoundError, InvalidScopeError


if TYPE_CHECKING:
    from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)

UNSECTIONED_SECTION_ID = UUID(int=0)


@dataclass(frozen=True)
class LessonNode:
    """A lesson together with the sub-units that gate its completion."""

    lesson: Lesson
    readings: tuple[Reading, ...] = ()
    exam: Exam | None = None

    @property
    def id(self) -> UUID:
        return self.lesson.id

    @property
    def course_id(self) -> UUID:
        return self.lesson.course_id

    @property
    def reading_ids(self) -> frozenset[UUID]:
        return frozenset(reading.id for reading in self.readings)

    @property
    def requirements(self) -> frozenset[Requirement]:
        """Prerequisites this lesson carries (empty = completable at once)."""
        return frozenset(
            requirement
            for requirement, carried in REQUIREMENT_SOURCES.items()
            if carried(self)
        )

    @classmethod
    def build(
        cls,
        lesson: Lesson,
        readings: Iterable[Reading] = (),
        exam: Exam | None = None,
    ) -> "LessonNode":
        """Attach readings and exam to a lesson, checking they belong to it.

        Raises:
            InvalidScopeError: If a reading or the exam points elsewhere
        """
        ordered = tuple(sorted(readings, key=lambda r: (r.order_index, str(r.id))))
        for reading in ordered:
            if reading.lesson_id != lesson.id:
                raise InvalidScopeError(
                    f"Reading {reading.id} belongs to lesson {reading.lesson_id}, "
                    f"not {lesson.id}"
                )

        if exam is not None:
            if exam.course_id != lesson.course_id:
                raise InvalidScopeError(
                    f"Exam {exam.id} belongs to course {exam.course_id}, "
                    f"not to lesson {lesson.id}'s course {lesson.course_id}"
                )
            if exam.lesson_id is not None and exam.lesson_id != lesson.id:
                raise InvalidScopeError(
                    f"Exam {exam.id} is bound to lesson {exam.lesson_id}, not {lesson.id}"
                )

        return cls(lesson=lesson, readings=ordered, exam=exam)


# Requirement -> does this lesson carry it. Consumed uniformly by the evaluator.
REQUIREMENT_SOURCES: dict[Requirement, Callable[[LessonNode], bool]] = {
    Requirement.WATCH_CONFIRMATION: lambda node: node.lesson.has_video,
    Requirement.READINGS_COMPLETE: lambda node: bool(node.readings),
    Requirement.EXAM_PASSED: lambda node: node.exam is not None,
}


@dataclass(frozen=True)
class SectionNode:
    """A section (real or synthetic) with its ordered lessons."""

    section: Section
    lessons: tuple[LessonNode, ...] = ()

    @property
    def id(self) -> UUID:
        return self.section.id

    @property
    def is_unsectioned(self) -> bool:
        return self.section.id == UNSECTIONED_SECTION_ID


@dataclass(frozen=True)
class CourseOutline:
    """Immutable snapshot of a course: sections, lessons, readings, exams."""

    course: Course
    sections: tuple[SectionNode, ...] = ()
    standalone_exams: tuple[Exam, ...] = ()
    _by_lesson_id: dict[UUID, LessonNode] = field(
        default_factory=dict, repr=False, compare=False
    )
    _section_by_lesson_id: dict[UUID, SectionNode] = field(
        default_factory=dict, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for section_node in self.sections:
            for lesson_node in section_node.lessons:
                self._by_lesson_id[lesson_node.id] = lesson_node
                self._section_by_lesson_id[lesson_node.id] = section_node

    @property
    def course_id(self) -> UUID:
        return self.course.id

    @property
    def section_ids(self) -> list[UUID]:
        """Authored sections in order (the synthetic section is excluded)."""
        return [s.id for s in self.sections if not s.is_unsectioned]

    @property
    def lessons(self) -> list[LessonNode]:
        """Every lesson in outline order."""
        return [lesson for section in self.sections for lesson in section.lessons]

    @property
    def lesson_ids(self) -> frozenset[UUID]:
        return frozenset(self._by_lesson_id)

    @property
    def total_lessons(self) -> int:
        return len(self._by_lesson_id)

    @property
    def video_lessons(self) -> list[LessonNode]:
        """Lessons that require a watch confirmation."""
        return [
            lesson
            for lesson in self.lessons
            if Requirement.WATCH_CONFIRMATION in lesson.requirements
        ]

    def __iter__(self) -> Iterator[LessonNode]:
        return iter(self.lessons)

    def __contains__(self, lesson_id: object) -> bool:
        return lesson_id in self._by_lesson_id

    def lesson(self, lesson_id: UUID) -> LessonNode | None:
        return self._by_lesson_id.get(lesson_id)

    def section_of(self, lesson_id: UUID) -> SectionNode | None:
        return self._section_by_lesson_id.get(lesson_id)

    @classmethod
    def build(
        cls,
        course: Course,
        sections: Iterable[Section],
        lessons: Iterable[Lesson],
        readings: Iterable[Reading] = (),
        exams: Iterable[Exam] = (),
        unsectioned_position: Literal["first", "last"] = "last",
    ) -> "CourseOutline":
        """Normalize raw content rows into an outline.

        Raises:
            InvalidScopeError: If any entity points outside the course, or
                two lessons share an order_index in the same section
        """
        sections = sorted(sections, key=lambda s: s.order_index)
        section_ids = set()
        seen_section_orders: set[int] = set()
        for section in sections:
            if section.course_id != course.id:
                raise _scope_error(
                    f"Section {section.id} belongs to course {section.course_id}",
                    course.id,
                )
            if section.order_index in seen_section_orders:
                raise _scope_error(
                    f"Duplicate section order_index {section.order_index}", course.id
                )
            seen_section_orders.add(section.order_index)
            section_ids.add(section.id)

        lessons = list(lessons)
        lesson_ids = {lesson.id for lesson in lessons}

        readings_by_lesson: dict[UUID, list[Reading]] = {}
        for reading in readings:
            if reading.lesson_id not in lesson_ids:
                raise _scope_error(
                    f"Reading {reading.id} references lesson {reading.lesson_id} "
                    "outside the course",
                    course.id,
                )
            readings_by_lesson.setdefault(reading.lesson_id, []).append(reading)

        exams_by_id: dict[UUID, Exam] = {}
        exam_by_lesson: dict[UUID, Exam] = {}
        standalone: list[Exam] = []
        for exam in exams:
            if exam.course_id != course.id:
                raise _scope_error(
                    f"Exam {exam.id} belongs to course {exam.course_id}", course.id
                )
            exams_by_id[exam.id] = exam
            if exam.lesson_id is None:
                standalone.append(exam)
                continue
            if exam.lesson_id not in lesson_ids:
                raise _scope_error(
                    f"Exam {exam.id} is bound to lesson {exam.lesson_id} "
                    "outside the course",
                    course.id,
                )
            if exam.lesson_id in exam_by_lesson:
                raise _scope_error(
                    f"Lesson {exam.lesson_id} has more than one gating exam",
                    course.id,
                )
            exam_by_lesson[exam.lesson_id] = exam

        grouped: dict[UUID, list[LessonNode]] = {}
        seen_lesson_orders: set[tuple[UUID, int]] = set()
        for lesson in lessons:
            if lesson.course_id != course.id:
                raise _scope_error(
                    f"Lesson {lesson.id} belongs to course {lesson.course_id}",
                    course.id,
                )
            if lesson.section_id is not None and lesson.section_id not in section_ids:
                raise _scope_error(
                    f"Lesson {lesson.id} references section {lesson.section_id} "
                    "outside the course",
                    course.id,
                )
            bucket = lesson.section_id or UNSECTIONED_SECTION_ID
            if (bucket, lesson.order_index) in seen_lesson_orders:
                raise _scope_error(
                    f"Duplicate lesson order_index {lesson.order_index} "
                    f"in section {bucket}",
                    course.id,
                )
            seen_lesson_orders.add((bucket, lesson.order_index))

            exam = exam_by_lesson.get(lesson.id)
            if lesson.exam_id is not None:
                declared = exams_by_id.get(lesson.exam_id)
                if declared is None or declared.lesson_id != lesson.id:
                    raise _scope_error(
                        f"Lesson {lesson.id} references exam {lesson.exam_id} "
                        "that is not bound to it",
                        course.id,
                    )

            grouped.setdefault(bucket, []).append(
                LessonNode.build(lesson, readings_by_lesson.get(lesson.id, ()), exam)
            )

        section_nodes = [
            SectionNode(
                section=section,
                lessons=_ordered(grouped.get(section.id, [])),
            )
            for section in sections
        ]

        unsectioned = grouped.get(UNSECTIONED_SECTION_ID)
        if unsectioned:
            synthetic = SectionNode(
                section=Section(
                    id=UNSECTIONED_SECTION_ID,
                    course_id=course.id,
                    order_index=-1 if unsectioned_position == "first" else len(sections),
                ),
                lessons=_ordered(unsectioned),
            )
            if unsectioned_position == "first":
                section_nodes.insert(0, synthetic)
            else:
                section_nodes.append(synthetic)

        return cls(
            course=course,
            sections=tuple(section_nodes),
            standalone_exams=tuple(sorted(standalone, key=lambda e: str(e.id))),
        )

    @classmethod
    async def load(
        cls,
        store: "EntityStore",
        course_id: UUID,
        unsectioned_position: Literal["first", "last"] = "last",
    ) -> "CourseOutline":
        """Read a course's content graph from the store and normalize it.

        Raises:
            CourseNotFoundError: If the course doesn't exist
            InvalidScopeError: If the content graph is malformed
        """
        course = await store.get_course(course_id)
        if course is None:
            raise CourseNotFoundError(course_id)

        sections, lessons, exams = await asyncio.gather(
            store.list_sections(course_id),
            store.list_lessons(course_id),
            store.list_exams(course_id),
        )
        reading_lists = await asyncio.gather(
            *(store.list_readings(lesson.id) for lesson in lessons)
        )

        return cls.build(
            course,
            sections,
            lessons,
            readings=[reading for batch in reading_lists for reading in batch],
            exams=exams,
            unsectioned_position=unsectioned_position,
        )


def _ordered(nodes: list[LessonNode]) -> tuple[LessonNode, ...]:
    return tuple(sorted(nodes, key=lambda n: n.lesson.order_index))


def _scope_error(message: str, course_id: UUID) -> InvalidScopeError:
    logger.error("content_graph_invalid", course_id=str(course_id), detail=message)
    return InvalidScopeError(message)
