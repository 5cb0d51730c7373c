"""Course content graph (read-only from the engine's perspective).

Provides:
- Course, section, lesson, reading and exam entities
- Cassandra table definitions for the content tables
- Normalized course outline with the synthetic unsectioned section
"""

from .models import (
    COURSES_TABLES_CQL,
    ContentType,
    Course,
    Exam,
    Lesson,
    Reading,
    ReadingKind,
    Requirement,
    Section,
)
from .outline import UNSECTIONED_SECTION_ID, CourseOutline, LessonNode, SectionNode


__all__ = [
    "COURSES_TABLES_CQL",
    "UNSECTIONED_SECTION_ID",
    "ContentType",
    "Course",
    "CourseOutline",
    "Exam",
    "Lesson",
    "LessonNode",
    "Reading",
    "ReadingKind",
    "Requirement",
    "Section",
    "SectionNode",
]
