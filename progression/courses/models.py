"""Content graph entities and Cassandra table definitions.

Courses, sections, lessons, readings and exams are authored outside the
engine; it only reads them. Tables:
- courses / course_sections: course header and its ordered sections
- lessons / lessons_by_course: lesson lookup by id and by course
- readings / readings_by_lesson: reading lookup by id and by lesson
- exams / exams_by_course: exam lookup by id and by course

Architecture: dual tables (by id + by parent) so that both single-entity
reads and whole-course snapshot reads hit one partition.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ContentType(str, Enum):
    """Lesson content type."""

    VIDEO = "video"
    TEXT = "text"
    LIVE_SESSION = "live_session"


class ReadingKind(str, Enum):
    """Reading material kind."""

    INLINE_TEXT = "inline_text"
    FILE = "file"


class Requirement(str, Enum):
    """Completion prerequisite a lesson may carry."""

    WATCH_CONFIRMATION = "watch_confirmation"
    READINGS_COMPLETE = "readings_complete"
    EXAM_PASSED = "exam_passed"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    live_session_at TIMESTAMP,
    created_at TIMESTAMP
)
"""

# Clustering on order_index makes the order unique per course
COURSE_SECTIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_sections (
    course_id UUID,
    order_index INT,
    section_id UUID,
    title TEXT,
    available_from TIMESTAMP,
    available_until TIMESTAMP,
    PRIMARY KEY (course_id, order_index)
) WITH CLUSTERING ORDER BY (order_index ASC)
"""

LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    course_id UUID,
    section_id UUID,
    order_index INT,
    title TEXT,
    content_type TEXT,
    duration_hours DECIMAL,
    video_reference TEXT,
    exam_id UUID
)
"""

LESSONS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_course (
    course_id UUID,
    lesson_id UUID,
    section_id UUID,
    order_index INT,
    title TEXT,
    content_type TEXT,
    duration_hours DECIMAL,
    video_reference TEXT,
    exam_id UUID,
    PRIMARY KEY (course_id, lesson_id)
)
"""

READING_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.readings (
    id UUID PRIMARY KEY,
    lesson_id UUID,
    kind TEXT,
    title TEXT,
    order_index INT
)
"""

READINGS_BY_LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.readings_by_lesson (
    lesson_id UUID,
    reading_id UUID,
    kind TEXT,
    title TEXT,
    order_index INT,
    PRIMARY KEY (lesson_id, reading_id)
)
"""

EXAM_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.exams (
    id UUID PRIMARY KEY,
    course_id UUID,
    lesson_id UUID,
    title TEXT,
    passing_threshold_percent DECIMAL,
    max_attempts INT
)
"""

EXAMS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.exams_by_course (
    course_id UUID,
    exam_id UUID,
    lesson_id UUID,
    title TEXT,
    passing_threshold_percent DECIMAL,
    max_attempts INT,
    PRIMARY KEY (course_id, exam_id)
)
"""

# All CQL statements for table setup
COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSE_SECTIONS_TABLE_CQL,
    LESSON_TABLE_CQL,
    LESSONS_BY_COURSE_TABLE_CQL,
    READING_TABLE_CQL,
    READINGS_BY_LESSON_TABLE_CQL,
    EXAM_TABLE_CQL,
    EXAMS_BY_COURSE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class Course:
    """Course header.

    Attributes:
        id: Course UUID
        title: Course title
        live_session_at: Closing live session; the enrollment cannot complete
            before this instant even when every lesson is done
    """

    id: UUID
    title: str = ""
    live_session_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            live_session_at=ensure_utc_aware(row.live_session_at),
        )


@dataclass(frozen=True)
class Section:
    """Ordered grouping of lessons inside a course (no completion state)."""

    id: UUID
    course_id: UUID
    order_index: int
    title: str = ""
    available_from: datetime | None = None
    available_until: datetime | None = None

    def is_available(self, now: datetime) -> bool:
        """Check whether ``now`` falls inside the section's availability window."""
        if self.available_from and self.available_from > now:
            return False
        return not (self.available_until and self.available_until < now)

    @classmethod
    def from_row(cls, row: Any) -> "Section":
        """Create Section from a course_sections row."""
        return cls(
            id=row.section_id,
            course_id=row.course_id,
            order_index=row.order_index,
            title=row.title or "",
            available_from=ensure_utc_aware(row.available_from),
            available_until=ensure_utc_aware(row.available_until),
        )


@dataclass(frozen=True)
class Lesson:
    """Smallest schedulable unit of course content.

    Attributes:
        id: Lesson UUID
        course_id: Owning course
        section_id: Owning section (None = unsectioned)
        order_index: Position inside its section (or the unsectioned bucket)
        content_type: video, text or live_session
        duration_hours: Informational duration
        video_reference: Playback reference; when set the lesson needs a
            watch confirmation
        exam_id: Gating exam, if any
    """

    id: UUID
    course_id: UUID
    order_index: int
    section_id: UUID | None = None
    title: str = ""
    content_type: ContentType = ContentType.TEXT
    duration_hours: Decimal = Decimal(0)
    video_reference: str | None = None
    exam_id: UUID | None = None

    @property
    def has_video(self) -> bool:
        """Check if the lesson carries a video."""
        return bool(self.video_reference)

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson from a lessons or lessons_by_course row."""
        return cls(
            id=row.id if hasattr(row, "id") else row.lesson_id,
            course_id=row.course_id,
            section_id=row.section_id,
            order_index=row.order_index or 0,
            title=row.title or "",
            content_type=ContentType(row.content_type or ContentType.TEXT.value),
            duration_hours=row.duration_hours or Decimal(0),
            video_reference=row.video_reference,
            exam_id=row.exam_id,
        )


@dataclass(frozen=True)
class Reading:
    """Independently completable reading attached to a lesson."""

    id: UUID
    lesson_id: UUID
    kind: ReadingKind = ReadingKind.INLINE_TEXT
    title: str = ""
    order_index: int = 0

    @classmethod
    def from_row(cls, row: Any) -> "Reading":
        """Create Reading from a readings or readings_by_lesson row."""
        return cls(
            id=row.id if hasattr(row, "id") else row.reading_id,
            lesson_id=row.lesson_id,
            kind=ReadingKind(row.kind or ReadingKind.INLINE_TEXT.value),
            title=row.title or "",
            order_index=row.order_index or 0,
        )


@dataclass(frozen=True)
class Exam:
    """Assessment bound to one lesson, or standalone at course level.

    Attributes:
        id: Exam UUID
        course_id: Owning course
        lesson_id: Gated lesson (None = standalone final exam)
        passing_threshold_percent: Minimum score_percent that counts as a pass
        max_attempts: Attempts allowed per learner (None = unlimited)
    """

    id: UUID
    course_id: UUID
    passing_threshold_percent: Decimal
    lesson_id: UUID | None = None
    title: str = ""
    max_attempts: int | None = None

    @property
    def is_standalone(self) -> bool:
        """Check if the exam sits at course level rather than inside a lesson."""
        return self.lesson_id is None

    @classmethod
    def from_row(cls, row: Any) -> "Exam":
        """Create Exam from an exams or exams_by_course row."""
        return cls(
            id=row.id if hasattr(row, "id") else row.exam_id,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            title=row.title or "",
            passing_threshold_percent=Decimal(row.passing_threshold_percent or 0),
            max_attempts=row.max_attempts,
        )
