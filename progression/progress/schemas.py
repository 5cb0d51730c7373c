"""Pydantic result models returned by the progress service.

Result models for:
- Reading completion (with auto-completion cascade flag)
- Course progress queries
- Lesson status queries
- Video position reports
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from progression.errors import GatingReason
from progression.progress.aggregator import CompletionBlocker
from progression.progress.models import Enrollment, EnrollmentStatus, LessonState


# ==============================================================================
# Reading Completion Schemas
# ==============================================================================


class ReadingCompletionResult(BaseModel):
    """Outcome of marking a reading completed."""

    reading_id: UUID
    lesson_id: UUID
    reading_newly_completed: bool = Field(
        description="False when the reading was already completed"
    )
    lesson_completed: bool = Field(description="Lesson is completed after this call")
    lesson_auto_completed: bool = Field(
        description="This call created the lesson completion row"
    )


# ==============================================================================
# Course Progress Schemas
# ==============================================================================


class CourseProgressSummary(BaseModel):
    """Learner's progress in one course."""

    model_config = ConfigDict(from_attributes=True)

    learner_id: UUID
    course_id: UUID
    progress_percent: int = Field(default=0, ge=0, le=100, description="0-100")
    completed: bool = False
    status: EnrollmentStatus = EnrollmentStatus.ENROLLED
    lessons_completed: int = 0
    lessons_total: int = 0
    blockers: list[CompletionBlocker] = Field(default_factory=list)
    enrolled_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(
        cls,
        entity: Enrollment,
        blockers: list[CompletionBlocker] | None = None,
    ) -> "CourseProgressSummary":
        """Create summary from an enrollment entity."""
        return cls(
            learner_id=entity.learner_id,
            course_id=entity.course_id,
            progress_percent=entity.progress_percent,
            completed=entity.completed,
            status=entity.status,
            lessons_completed=entity.lessons_completed,
            lessons_total=entity.lessons_total,
            blockers=blockers or [],
            enrolled_at=entity.enrolled_at,
            completed_at=entity.completed_at,
        )


# ==============================================================================
# Lesson Status Schemas
# ==============================================================================


class LessonStatus(BaseModel):
    """Per-learner lesson state with the requirements still unmet."""

    lesson_id: UUID
    course_id: UUID
    state: LessonState
    unmet: list[GatingReason] = Field(default_factory=list)
    completed_at: datetime | None = None


class VideoPositionResult(BaseModel):
    """Outcome of a playback position report."""

    lesson_id: UUID
    furthest_position_seconds: int
    watched_percent: int = Field(ge=0, le=100)
    confirmed: bool = Field(description="Lesson video counts as watched")
