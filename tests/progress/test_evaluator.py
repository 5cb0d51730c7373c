"""Tests for the Lesson Completion Evaluator."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from progression.courses.models import Exam, Lesson, Reading
from progression.courses.outline import CourseOutline, LessonNode
from progression.errors import GatingFailedError, GatingReason
from progression.exams.ledger import ExamAttemptLedger
from progression.exams.models import AttemptResult, ExamAttempt
from progression.progress.evaluator import (
    LearnerLessonState,
    LessonCompletionEvaluator,
    evaluate,
    lesson_state,
)
from progression.progress.models import LessonState, ReadingProgress


def _node(video: bool = False, readings: int = 0, threshold: int | None = None) -> LessonNode:
    course_id = uuid4()
    lesson = Lesson(
        id=uuid4(),
        course_id=course_id,
        order_index=0,
        video_reference="videos/a.mp4" if video else None,
    )
    exam = None
    if threshold is not None:
        exam = Exam(
            id=uuid4(),
            course_id=course_id,
            lesson_id=lesson.id,
            passing_threshold_percent=Decimal(threshold),
        )
    return LessonNode.build(
        lesson,
        [Reading(id=uuid4(), lesson_id=lesson.id, order_index=i) for i in range(readings)],
        exam,
    )


def _attempt(node: LessonNode, score: int, passed: bool = True, annulled: bool = False):
    return ExamAttempt(
        exam_id=node.exam.id,
        learner_id=uuid4(),
        attempt_number=1,
        score_numeric=Decimal(score),
        score_percent=Decimal(score),
        passed=passed,
        annulled=annulled,
    )


class TestEvaluate:
    """Tests for the pure gating decision."""

    def test_lesson_without_requirements_is_completable(self):
        node = _node()
        state = LearnerLessonState(learner_id=uuid4(), lesson_id=node.id)

        assert evaluate(node, state).can_complete

    def test_every_unmet_reason_in_order(self):
        """Should report video, readings, then exam."""
        node = _node(video=True, readings=2, threshold=70)
        state = LearnerLessonState(learner_id=uuid4(), lesson_id=node.id)

        decision = evaluate(node, state)

        assert decision.unmet == (
            GatingReason.VIDEO_NOT_WATCHED,
            GatingReason.READINGS_INCOMPLETE,
            GatingReason.EXAM_NOT_PASSED,
        )

    def test_partial_readings_block(self):
        node = _node(readings=2)
        first = node.readings[0].id
        state = LearnerLessonState(
            learner_id=uuid4(), lesson_id=node.id, completed_reading_ids=frozenset({first})
        )

        assert evaluate(node, state).unmet == (GatingReason.READINGS_INCOMPLETE,)

    @pytest.mark.parametrize(
        ("score", "expected"),
        [(69, False), (70, True), (100, True)],
    )
    def test_exam_threshold(self, score: int, expected: bool):
        """Should gate on score_percent >= passing threshold."""
        node = _node(threshold=70)
        state = LearnerLessonState(
            learner_id=uuid4(), lesson_id=node.id, best_attempt=_attempt(node, score)
        )

        assert evaluate(node, state).can_complete is expected

    def test_annulled_best_attempt_does_not_pass(self):
        node = _node(threshold=70)
        state = LearnerLessonState(
            learner_id=uuid4(),
            lesson_id=node.id,
            best_attempt=_attempt(node, 95, annulled=True),
        )

        assert evaluate(node, state).unmet == (GatingReason.EXAM_NOT_PASSED,)

    def test_lesson_state_machine(self):
        node = _node(video=True)
        base = LearnerLessonState(learner_id=uuid4(), lesson_id=node.id)

        assert lesson_state(node, base) == LessonState.NOT_STARTED
        watched = LearnerLessonState(
            learner_id=base.learner_id, lesson_id=node.id, video_confirmed=True
        )
        assert lesson_state(node, watched) == LessonState.COMPLETABLE
        done = LearnerLessonState(
            learner_id=base.learner_id, lesson_id=node.id, completed=True
        )
        assert lesson_state(node, done) == LessonState.COMPLETED


class TestComplete:
    """Tests for gated completion against the store."""

    @pytest.fixture
    def evaluator(self, store, settings) -> LessonCompletionEvaluator:
        return LessonCompletionEvaluator(store, ExamAttemptLedger(store, settings))

    @staticmethod
    async def _node_for(store, course_id, lesson_id) -> LessonNode:
        outline = await CourseOutline.load(store, course_id)
        return outline.lesson(lesson_id)

    @pytest.mark.asyncio
    async def test_gating_failed_lists_reasons(self, evaluator, store, builder, learner_id):
        """Should raise GatingFailedError with the unmet reason."""
        lesson = builder.lesson(video=True)
        node = await self._node_for(store, builder.course_id, lesson.id)

        with pytest.raises(GatingFailedError) as exc_info:
            await evaluator.complete(node, learner_id)

        assert exc_info.value.reason == GatingReason.VIDEO_NOT_WATCHED
        assert exc_info.value.code == "gating_failed"
        assert await store.get_lesson_progress(learner_id, builder.course_id, lesson.id) is None

    @pytest.mark.asyncio
    async def test_completes_after_passing_exam(self, evaluator, store, builder, learner_id):
        """Should fail at 69% and succeed after a 70% attempt."""
        lesson = builder.lesson()
        exam = builder.exam(lesson, threshold=70)
        node = await self._node_for(store, builder.course_id, lesson.id)

        await evaluator.ledger.record_attempt(
            exam.id,
            learner_id,
            AttemptResult(score_numeric=69, score_percent=69, passed=False),
        )
        with pytest.raises(GatingFailedError):
            await evaluator.complete(node, learner_id)

        await evaluator.ledger.record_attempt(
            exam.id,
            learner_id,
            AttemptResult(score_numeric=70, score_percent=70, passed=True),
        )
        result = await evaluator.complete(node, learner_id)

        assert result.newly_completed is True
        assert result.progress.completed is True

    @pytest.mark.asyncio
    async def test_completing_twice_is_noop(self, evaluator, store, builder, learner_id):
        lesson = builder.lesson()
        node = await self._node_for(store, builder.course_id, lesson.id)

        first = await evaluator.complete(node, learner_id)
        second = await evaluator.complete(node, learner_id)

        assert first.newly_completed is True
        assert second.newly_completed is False
        assert second.progress.completed_at == first.progress.completed_at

    @pytest.mark.asyncio
    async def test_concurrent_completion_creates_one_row(
        self, evaluator, store, builder, learner_id
    ):
        lesson = builder.lesson()
        node = await self._node_for(store, builder.course_id, lesson.id)

        results = await asyncio.gather(
            *(evaluator.complete(node, learner_id) for _ in range(3))
        )

        assert sum(r.newly_completed for r in results) == 1
        rows = await store.list_lesson_progress(learner_id, builder.course_id)
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_load_state_reads_sub_progress(self, evaluator, store, builder, learner_id):
        lesson = builder.lesson(video=True)
        reading = builder.reading(lesson)
        node = await self._node_for(store, builder.course_id, lesson.id)
        await store.insert_reading_progress(
            ReadingProgress(learner_id=learner_id, lesson_id=lesson.id, reading_id=reading.id)
        )

        state = await evaluator.load_state(node, learner_id)

        assert state.completed_reading_ids == {reading.id}
        assert state.video_confirmed is False
        assert state.completed is False
