"""Tests for the Course Progress Aggregator."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from progression.courses.models import Course, Exam, Lesson
from progression.courses.outline import CourseOutline
from progression.exams.ledger import ExamAttemptLedger
from progression.exams.models import AttemptResult
from progression.progress.aggregator import (
    CompletionBlocker,
    CourseProgressAggregator,
    aggregate,
    percent_of,
)
from progression.progress.models import LessonProgress


def _outline(lessons: int, videos: int = 0, live_session_at=None, final_exam=False):
    course = Course(id=uuid4(), live_session_at=live_session_at)
    rows = [
        Lesson(
            id=uuid4(),
            course_id=course.id,
            order_index=i,
            video_reference=f"videos/{i}.mp4" if i < videos else None,
        )
        for i in range(lessons)
    ]
    exams = []
    if final_exam:
        exams.append(
            Exam(id=uuid4(), course_id=course.id, passing_threshold_percent=Decimal(60))
        )
    return CourseOutline.build(course, [], rows, exams=exams)


class TestPercentOf:
    @pytest.mark.parametrize(
        ("completed", "total", "expected"),
        [(0, 0, 0), (0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 8, 38), (4, 4, 100)],
    )
    def test_rounds_half_up(self, completed, total, expected):
        assert percent_of(completed, total) == expected


class TestAggregate:
    """Tests for the pure aggregate function."""

    def test_counts_only_lessons_in_outline(self):
        outline = _outline(4)
        ids = [lesson.id for lesson in outline.lessons]

        result = aggregate(outline, [ids[0], uuid4()])

        assert result.completed_lessons == 1
        assert result.progress_percent == 25
        assert not result.is_complete

    def test_full_course_without_videos_is_complete(self):
        outline = _outline(2)

        result = aggregate(outline, outline.lesson_ids)

        assert result.progress_percent == 100
        assert result.all_videos_confirmed
        assert result.is_complete
        assert result.blockers == ()

    def test_video_gate_blocks_completion_at_100(self):
        """Should stay incomplete at 100% until every video is confirmed."""
        outline = _outline(2, videos=2)
        first_video = outline.video_lessons[0].id

        result = aggregate(outline, outline.lesson_ids, [first_video])

        assert result.progress_percent == 100
        assert result.all_videos_confirmed is False
        assert result.blockers == (CompletionBlocker.VIDEOS_UNCONFIRMED,)
        assert not result.is_complete

    def test_final_exam_must_be_passed(self):
        outline = _outline(1, final_exam=True)
        exam_id = outline.standalone_exams[0].id

        blocked = aggregate(outline, outline.lesson_ids)
        passed = aggregate(outline, outline.lesson_ids, passed_standalone_exam_ids=[exam_id])

        assert blocked.blockers == (CompletionBlocker.FINAL_EXAM_NOT_PASSED,)
        assert passed.is_complete

    def test_future_live_session_defers_completion(self):
        now = datetime.now(UTC)
        outline = _outline(1, live_session_at=now + timedelta(days=2))

        before = aggregate(outline, outline.lesson_ids, now=now)
        after = aggregate(outline, outline.lesson_ids, now=now + timedelta(days=3))

        assert before.live_session_pending
        assert not before.is_complete
        assert after.is_complete

    def test_empty_course_never_completes(self):
        outline = _outline(0)

        result = aggregate(outline, [])

        assert result.progress_percent == 0
        assert CompletionBlocker.LESSONS_INCOMPLETE in result.blockers


class TestRecompute:
    """Tests for recomputation against the store."""

    @pytest.mark.asyncio
    async def test_recompute_reads_authoritative_rows(
        self, store, settings, builder, learner_id
    ):
        lessons = [builder.lesson() for _ in range(3)]
        final = builder.exam(threshold=60)
        ledger = ExamAttemptLedger(store, settings)
        aggregator = CourseProgressAggregator(store, ledger, settings)
        for lesson in lessons:
            await store.insert_lesson_progress(
                LessonProgress(learner_id, builder.course_id, lesson.id)
            )

        before_exam = await aggregator.recompute(builder.course_id, learner_id)
        await ledger.record_attempt(
            final.id, learner_id, AttemptResult(score_numeric=61, score_percent=61, passed=True)
        )
        after_exam = await aggregator.recompute(builder.course_id, learner_id)

        assert before_exam.progress_percent == 100
        assert before_exam.standalone_exams_passed is False
        assert after_exam.is_complete
