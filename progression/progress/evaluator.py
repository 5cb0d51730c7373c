"""Lesson Completion Evaluator.

Decides whether a learner may complete a lesson. The decision is a pure
function of the lesson's requirements and the learner's sub-progress
(video confirmation, reading completions, best exam attempt); loading that
state and writing the completion row are separate steps.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import structlog

from progression.courses.models import Requirement
from progression.courses.outline import LessonNode
from progression.errors import GatingFailedError, GatingReason
from progression.exams.ledger import ExamAttemptLedger
from progression.exams.models import ExamAttempt
from progression.progress.models import LessonProgress, LessonState
from progression.store.base import EntityStore


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LearnerLessonState:
    """Snapshot of one learner's sub-progress inside one lesson."""

    learner_id: UUID
    lesson_id: UUID
    video_confirmed: bool = False
    completed_reading_ids: frozenset[UUID] = frozenset()
    best_attempt: ExamAttempt | None = None
    completed: bool = False


@dataclass(frozen=True)
class GatingDecision:
    lesson_id: UUID
    unmet: tuple[GatingReason, ...] = ()

    @property
    def can_complete(self) -> bool:
        return not self.unmet


@dataclass(frozen=True)
class CompletionResult:
    progress: LessonProgress
    newly_completed: bool


def _video_watched(node: LessonNode, state: LearnerLessonState) -> bool:
    return state.video_confirmed


def _readings_done(node: LessonNode, state: LearnerLessonState) -> bool:
    return node.reading_ids <= state.completed_reading_ids


def _exam_passed(node: LessonNode, state: LearnerLessonState) -> bool:
    return (
        node.exam is not None
        and state.best_attempt is not None
        and state.best_attempt.counts_as_pass(node.exam)
    )


# Checked in this order; the first unmet reason is the headline one.
REQUIREMENT_CHECKS: dict[
    Requirement, tuple[GatingReason, Callable[[LessonNode, LearnerLessonState], bool]]
] = {
    Requirement.WATCH_CONFIRMATION: (GatingReason.VIDEO_NOT_WATCHED, _video_watched),
    Requirement.READINGS_COMPLETE: (GatingReason.READINGS_INCOMPLETE, _readings_done),
    Requirement.EXAM_PASSED: (GatingReason.EXAM_NOT_PASSED, _exam_passed),
}


def evaluate(node: LessonNode, state: LearnerLessonState) -> GatingDecision:
    """Check every requirement the lesson carries against the learner state."""
    requirements = node.requirements
    unmet = tuple(
        reason
        for requirement, (reason, satisfied) in REQUIREMENT_CHECKS.items()
        if requirement in requirements and not satisfied(node, state)
    )
    return GatingDecision(lesson_id=node.id, unmet=unmet)


def lesson_state(node: LessonNode, state: LearnerLessonState) -> LessonState:
    if state.completed:
        return LessonState.COMPLETED
    if evaluate(node, state).can_complete:
        return LessonState.COMPLETABLE
    return LessonState.NOT_STARTED


class LessonCompletionEvaluator:
    """Loads learner state for a lesson and performs gated completion."""

    def __init__(self, store: EntityStore, ledger: ExamAttemptLedger):
        self.store = store
        self.ledger = ledger

    def evaluate(self, node: LessonNode, state: LearnerLessonState) -> GatingDecision:
        return evaluate(node, state)

    def can_complete(self, node: LessonNode, state: LearnerLessonState) -> bool:
        return evaluate(node, state).can_complete

    async def load_state(self, node: LessonNode, learner_id: UUID) -> LearnerLessonState:
        """Read the learner's sub-progress for one lesson.

        Only the sources the lesson actually requires are queried.
        """
        requirements = node.requirements

        video_confirmed = False
        if Requirement.WATCH_CONFIRMATION in requirements:
            video_confirmed = await self.store.has_video_confirmation(
                learner_id, node.course_id, node.id
            )

        completed_reading_ids: frozenset[UUID] = frozenset()
        if Requirement.READINGS_COMPLETE in requirements:
            rows = await self.store.list_reading_progress(learner_id, node.id)
            completed_reading_ids = frozenset(
                row.reading_id for row in rows if row.completed
            )

        best_attempt = None
        if node.exam is not None:
            best_attempt = await self.ledger.best_attempt(node.exam.id, learner_id)

        progress = await self.store.get_lesson_progress(
            learner_id, node.course_id, node.id
        )

        return LearnerLessonState(
            learner_id=learner_id,
            lesson_id=node.id,
            video_confirmed=video_confirmed,
            completed_reading_ids=completed_reading_ids,
            best_attempt=best_attempt,
            completed=progress is not None and progress.completed,
        )

    async def complete(
        self,
        node: LessonNode,
        learner_id: UUID,
        state: LearnerLessonState | None = None,
    ) -> CompletionResult:
        """Mark a lesson completed if its gating check passes now.

        Returns:
            CompletionResult; ``newly_completed`` is True only for the call
            that created the row

        Raises:
            GatingFailedError: If any requirement is unmet
        """
        existing = await self.store.get_lesson_progress(
            learner_id, node.course_id, node.id
        )
        if existing is not None and existing.completed:
            return CompletionResult(progress=existing, newly_completed=False)

        if state is None:
            state = await self.load_state(node, learner_id)

        decision = evaluate(node, state)
        if not decision.can_complete:
            logger.info(
                "lesson_gating_failed",
                lesson_id=str(node.id),
                learner_id=str(learner_id),
                reasons=[reason.value for reason in decision.unmet],
            )
            raise GatingFailedError(node.id, decision.unmet)

        progress = LessonProgress(
            learner_id=learner_id,
            course_id=node.course_id,
            lesson_id=node.id,
            completed=True,
            completed_at=datetime.now(UTC),
        )
        created = await self.store.insert_lesson_progress(progress)
        if not created:
            # Lost the race to a concurrent completion; report the stored row
            stored = await self.store.get_lesson_progress(
                learner_id, node.course_id, node.id
            )
            return CompletionResult(progress=stored or progress, newly_completed=False)

        logger.info(
            "lesson_completed",
            lesson_id=str(node.id),
            course_id=str(node.course_id),
            learner_id=str(learner_id),
        )
        return CompletionResult(progress=progress, newly_completed=True)
