"""Database models for learner progress tracking.

Cassandra table definitions for:
- Lesson progress: completion rows per learner and lesson
- Reading progress: completion rows per learner and reading
- Video watches: furthest playback position and watch confirmations
- Enrollments: derived course progress and completion flag

Every progress table is keyed by the natural composite key
(learner, entity), so writes are idempotent upserts and re-delivered
events cannot double count.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from progression.courses.models import ensure_utc_aware


class EnrollmentStatus(str, Enum):
    """Course enrollment status (derived from the stored fields)."""

    ENROLLED = "enrolled"  # No lesson completed yet
    IN_PROGRESS = "in_progress"  # Some lessons completed
    COMPLETED = "completed"  # Completion transition happened


class LessonState(str, Enum):
    """Per-learner lesson state machine."""

    NOT_STARTED = "not_started"  # Requirements still unmet
    COMPLETABLE = "completable"  # Requirements met, not yet completed
    COMPLETED = "completed"  # Terminal


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition key: (learner_id, course_id) so the aggregator reads the whole
# course's completion set from one partition
LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    learner_id UUID,
    course_id UUID,
    lesson_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    PRIMARY KEY ((learner_id, course_id), lesson_id)
)
"""

READING_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.reading_progress (
    learner_id UUID,
    lesson_id UUID,
    reading_id UUID,
    completed BOOLEAN,
    completed_at TIMESTAMP,
    PRIMARY KEY ((learner_id, lesson_id), reading_id)
)
"""

VIDEO_CONFIRMATIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.video_confirmations (
    learner_id UUID,
    course_id UUID,
    lesson_id UUID,
    confirmed_at TIMESTAMP,
    PRIMARY KEY ((learner_id, course_id), lesson_id)
)
"""

VIDEO_POSITIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.video_positions (
    learner_id UUID,
    lesson_id UUID,
    furthest_position_seconds INT,
    duration_seconds INT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((learner_id, lesson_id))
)
"""

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    learner_id UUID,
    progress_percent INT,
    lessons_completed INT,
    lessons_total INT,
    completed BOOLEAN,
    enrolled_at TIMESTAMP,
    updated_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY (course_id, learner_id)
)
"""

# All CQL statements for table setup
PROGRESS_TABLES_CQL = [
    LESSON_PROGRESS_TABLE_CQL,
    READING_PROGRESS_TABLE_CQL,
    VIDEO_CONFIRMATIONS_TABLE_CQL,
    VIDEO_POSITIONS_TABLE_CQL,
    ENROLLMENTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LessonProgress:
    """Lesson completion row for a specific learner.

    Rows are only ever written with ``completed = True``; a lesson whose
    requirements are unmet has no row at all.

    Attributes:
        learner_id: Learner UUID
        course_id: Course UUID (for partition key)
        lesson_id: Lesson UUID
        completed: Completion flag
        completed_at: Completion timestamp
    """

    def __init__(
        self,
        learner_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        completed: bool = True,
        completed_at: datetime | None = None,
    ):
        self.learner_id = learner_id
        self.course_id = course_id
        self.lesson_id = lesson_id
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at) or datetime.now(UTC)

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.learner_id, self.lesson_id)

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            learner_id=row.learner_id,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            completed=bool(row.completed),
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "learner_id": self.learner_id,
            "course_id": self.course_id,
            "lesson_id": self.lesson_id,
            "completed": self.completed,
            "completed_at": self.completed_at,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LessonProgress):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"<LessonProgress learner={self.learner_id} lesson={self.lesson_id} "
            f"completed={self.completed}>"
        )


class ReadingProgress:
    """Reading completion row for a specific learner.

    Attributes:
        learner_id: Learner UUID
        lesson_id: Owning lesson (for partition key)
        reading_id: Reading UUID
        completed: Completion flag
        completed_at: First completion timestamp
    """

    def __init__(
        self,
        learner_id: UUID,
        lesson_id: UUID,
        reading_id: UUID,
        completed: bool = True,
        completed_at: datetime | None = None,
    ):
        self.learner_id = learner_id
        self.lesson_id = lesson_id
        self.reading_id = reading_id
        self.completed = completed
        self.completed_at = ensure_utc_aware(completed_at) or datetime.now(UTC)

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.learner_id, self.reading_id)

    @classmethod
    def from_row(cls, row: Any) -> "ReadingProgress":
        """Create ReadingProgress instance from Cassandra row."""
        return cls(
            learner_id=row.learner_id,
            lesson_id=row.lesson_id,
            reading_id=row.reading_id,
            completed=bool(row.completed),
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "learner_id": self.learner_id,
            "lesson_id": self.lesson_id,
            "reading_id": self.reading_id,
            "completed": self.completed,
            "completed_at": self.completed_at,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReadingProgress):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"<ReadingProgress learner={self.learner_id} reading={self.reading_id} "
            f"completed={self.completed}>"
        )


class VideoPosition:
    """Furthest playback position a learner reached in a lesson's video."""

    def __init__(
        self,
        learner_id: UUID,
        lesson_id: UUID,
        furthest_position_seconds: int = 0,
        duration_seconds: int | None = None,
        updated_at: datetime | None = None,
    ):
        self.learner_id = learner_id
        self.lesson_id = lesson_id
        self.furthest_position_seconds = furthest_position_seconds
        self.duration_seconds = duration_seconds
        self.updated_at = ensure_utc_aware(updated_at) or datetime.now(UTC)

    def watched_percent(self) -> int:
        """Share of the video reached, 0-100."""
        if not self.duration_seconds:
            return 0
        return min(
            100, (self.furthest_position_seconds * 100) // self.duration_seconds
        )

    @classmethod
    def from_row(cls, row: Any) -> "VideoPosition":
        """Create VideoPosition instance from Cassandra row."""
        return cls(
            learner_id=row.learner_id,
            lesson_id=row.lesson_id,
            furthest_position_seconds=row.furthest_position_seconds or 0,
            duration_seconds=row.duration_seconds,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<VideoPosition learner={self.learner_id} lesson={self.lesson_id} "
            f"{self.furthest_position_seconds}/{self.duration_seconds}s>"
        )


class Enrollment:
    """Course enrollment entity (derived state, never hand-edited).

    Attributes:
        course_id: Course UUID
        learner_id: Learner UUID
        progress_percent: round(100 * completed / total), 0-100
        lessons_completed: Completed lessons at last recomputation
        lessons_total: Lessons in the course at last recomputation
        completed: Set once, never cleared
        enrolled_at: First interaction timestamp
        updated_at: Last recomputation timestamp
        completed_at: Completion transition timestamp
    """

    def __init__(
        self,
        course_id: UUID,
        learner_id: UUID,
        progress_percent: int = 0,
        lessons_completed: int = 0,
        lessons_total: int = 0,
        completed: bool = False,
        enrolled_at: datetime | None = None,
        updated_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.learner_id = learner_id
        self.progress_percent = progress_percent
        self.lessons_completed = lessons_completed
        self.lessons_total = lessons_total
        self.completed = completed
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.enrolled_at
        self.completed_at = ensure_utc_aware(completed_at)

    @property
    def status(self) -> EnrollmentStatus:
        if self.completed:
            return EnrollmentStatus.COMPLETED
        if self.lessons_completed > 0:
            return EnrollmentStatus.IN_PROGRESS
        return EnrollmentStatus.ENROLLED

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            course_id=row.course_id,
            learner_id=row.learner_id,
            progress_percent=row.progress_percent or 0,
            lessons_completed=row.lessons_completed or 0,
            lessons_total=row.lessons_total or 0,
            completed=bool(row.completed),
            enrolled_at=row.enrolled_at,
            updated_at=row.updated_at,
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "course_id": self.course_id,
            "learner_id": self.learner_id,
            "progress_percent": self.progress_percent,
            "lessons_completed": self.lessons_completed,
            "lessons_total": self.lessons_total,
            "completed": self.completed,
            "enrolled_at": self.enrolled_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment learner={self.learner_id} course={self.course_id} "
            f"{self.status.value} {self.progress_percent}%>"
        )
