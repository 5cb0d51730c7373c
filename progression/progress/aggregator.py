"""Course Progress Aggregator.

Recomputes a learner's course progress from the full set of completion
rows every time, never incrementally, so concurrent updates cannot drift
the stored percentage.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

import structlog

from progression.config.settings import Settings, get_settings
from progression.courses.outline import CourseOutline
from progression.exams.ledger import ExamAttemptLedger
from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)


class CompletionBlocker(str, Enum):
    """What keeps a course at less than full completion."""

    LESSONS_INCOMPLETE = "lessons_incomplete"
    VIDEOS_UNCONFIRMED = "videos_unconfirmed"
    FINAL_EXAM_NOT_PASSED = "final_exam_not_passed"
    LIVE_SESSION_PENDING = "live_session_pending"


@dataclass(frozen=True)
class AggregateResult:
    course_id: UUID
    progress_percent: int
    completed_lessons: int
    total_lessons: int
    all_videos_confirmed: bool
    standalone_exams_passed: bool = True
    live_session_pending: bool = False

    @property
    def blockers(self) -> tuple[CompletionBlocker, ...]:
        blockers = []
        if self.total_lessons == 0 or self.completed_lessons < self.total_lessons:
            blockers.append(CompletionBlocker.LESSONS_INCOMPLETE)
        if not self.all_videos_confirmed:
            blockers.append(CompletionBlocker.VIDEOS_UNCONFIRMED)
        if not self.standalone_exams_passed:
            blockers.append(CompletionBlocker.FINAL_EXAM_NOT_PASSED)
        if self.live_session_pending:
            blockers.append(CompletionBlocker.LIVE_SESSION_PENDING)
        return tuple(blockers)

    @property
    def is_complete(self) -> bool:
        return self.progress_percent == 100 and not self.blockers


def percent_of(completed: int, total: int) -> int:
    """Integer percentage rounded half-up (1 of 8 -> 13); 0 when total is 0."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def aggregate(
    outline: CourseOutline,
    completed_lesson_ids: Iterable[UUID],
    confirmed_video_lesson_ids: Iterable[UUID] = (),
    passed_standalone_exam_ids: Iterable[UUID] = (),
    now: datetime | None = None,
) -> AggregateResult:
    """Derive course progress from an immutable snapshot.

    Completion rows for lessons no longer in the outline are ignored.
    """
    now = now or datetime.now(UTC)
    completed = outline.lesson_ids & frozenset(completed_lesson_ids)
    confirmed = frozenset(confirmed_video_lesson_ids)
    passed_exams = frozenset(passed_standalone_exam_ids)

    live_session_at = outline.course.live_session_at
    return AggregateResult(
        course_id=outline.course_id,
        progress_percent=percent_of(len(completed), outline.total_lessons),
        completed_lessons=len(completed),
        total_lessons=outline.total_lessons,
        all_videos_confirmed=all(
            lesson.id in confirmed for lesson in outline.video_lessons
        ),
        standalone_exams_passed=all(
            exam.id in passed_exams for exam in outline.standalone_exams
        ),
        live_session_pending=live_session_at is not None and live_session_at > now,
    )


class CourseProgressAggregator:
    """Loads the authoritative snapshot for (learner, course) and aggregates it."""

    def __init__(
        self,
        store: EntityStore,
        ledger: ExamAttemptLedger,
        settings: Settings | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.settings = settings or get_settings()

    async def load_outline(self, course_id: UUID) -> CourseOutline:
        return await CourseOutline.load(
            self.store, course_id, self.settings.unsectioned_position
        )

    async def recompute(
        self,
        course_id: UUID,
        learner_id: UUID,
        outline: CourseOutline | None = None,
        now: datetime | None = None,
    ) -> AggregateResult:
        """Recompute progress from the full LessonProgress set.

        Args:
            course_id: Course UUID
            learner_id: Learner UUID
            outline: Already loaded outline (loaded from the store if None)
            now: Reference instant for the live-session check
        """
        if outline is None:
            outline = await self.load_outline(course_id)

        rows, confirmed, passed_flags = await asyncio.gather(
            self.store.list_lesson_progress(learner_id, course_id),
            self.store.list_video_confirmations(learner_id, course_id),
            asyncio.gather(
                *(
                    self.ledger.has_passed(exam, learner_id)
                    for exam in outline.standalone_exams
                )
            ),
        )
        passed_exam_ids = [
            exam.id
            for exam, passed in zip(outline.standalone_exams, passed_flags, strict=True)
            if passed
        ]

        result = aggregate(
            outline,
            completed_lesson_ids=(row.lesson_id for row in rows if row.completed),
            confirmed_video_lesson_ids=confirmed,
            passed_standalone_exam_ids=passed_exam_ids,
            now=now,
        )

        logger.debug(
            "course_progress_recomputed",
            course_id=str(course_id),
            learner_id=str(learner_id),
            progress_percent=result.progress_percent,
            completed_lessons=result.completed_lessons,
            total_lessons=result.total_lessons,
            blockers=[blocker.value for blocker in result.blockers],
        )
        return result
