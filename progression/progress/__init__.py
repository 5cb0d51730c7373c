"""Learner progress tracking module.

Provides:
- Reading completion with lesson auto-completion
- Gated lesson completion
- Course progress aggregation (pure recomputation)
- Enrollment finalization and the CourseCompleted signal
"""

from .models import (
    PROGRESS_TABLES_CQL,
    Enrollment,
    EnrollmentStatus,
    LessonProgress,
    LessonState,
    ReadingProgress,
    VideoPosition,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Enrollment",
    "EnrollmentStatus",
    "LessonProgress",
    "LessonState",
    "ReadingProgress",
    "VideoPosition",
]
