"""Tests for the Reading Completion Tracker (through ProgressService)."""

import asyncio
from uuid import uuid4

import pytest

from progression.errors import InvalidScopeError, ReadingNotFoundError
from progression.progress.models import LessonProgress


class TestCompleteReading:
    """Tests for complete_reading."""

    @pytest.mark.asyncio
    async def test_last_reading_auto_completes_lesson(
        self, service, store, builder, learner_id
    ):
        """Should auto-complete the lesson when its last reading is done."""
        lesson = builder.lesson()
        first, second = builder.reading(lesson, 0), builder.reading(lesson, 1)

        partial = await service.complete_reading(learner_id, first.id)
        final = await service.complete_reading(learner_id, second.id)

        assert partial.lesson_auto_completed is False
        assert partial.lesson_completed is False
        assert final.lesson_auto_completed is True
        assert final.lesson_completed is True
        summary = await service.get_course_progress(learner_id, builder.course_id)
        assert summary.progress_percent == 100

    @pytest.mark.asyncio
    async def test_is_idempotent(self, service, store, builder, learner_id):
        """Should keep one row with the first completed_at on repeat calls."""
        lesson = builder.lesson()
        reading = builder.reading(lesson)

        first = await service.complete_reading(learner_id, reading.id)
        rows_after_first = await store.list_reading_progress(learner_id, lesson.id)
        second = await service.complete_reading(learner_id, reading.id)
        rows_after_second = await store.list_reading_progress(learner_id, lesson.id)

        assert first.reading_newly_completed is True
        assert second.reading_newly_completed is False
        assert second.lesson_auto_completed is False
        assert second.lesson_completed is True
        assert len(rows_after_second) == 1
        assert rows_after_second[0].completed_at == rows_after_first[0].completed_at

    @pytest.mark.asyncio
    async def test_concurrent_last_readings_cascade_once(
        self, service, store, builder, learner_id
    ):
        """Should create exactly one lesson row when both readings finish together."""
        lesson = builder.lesson()
        first, second = builder.reading(lesson, 0), builder.reading(lesson, 1)

        results = await asyncio.gather(
            service.complete_reading(learner_id, first.id),
            service.complete_reading(learner_id, second.id),
        )

        rows = await store.list_lesson_progress(learner_id, builder.course_id)
        assert len(rows) == 1
        assert sum(r.lesson_auto_completed for r in results) == 1
        summary = await service.refresh_course_progress(learner_id, builder.course_id)
        assert summary.progress_percent == 100

    @pytest.mark.asyncio
    async def test_reading_does_not_bypass_video_gate(
        self, service, builder, learner_id
    ):
        lesson = builder.lesson(video=True)
        reading = builder.reading(lesson)

        result = await service.complete_reading(learner_id, reading.id)

        assert result.lesson_auto_completed is False
        assert result.lesson_completed is False

    @pytest.mark.asyncio
    async def test_repeat_completes_lesson_after_video_confirmation(
        self, service, store, builder, learner_id
    ):
        """Should auto-complete on a repeated call once the video gate opened."""
        lesson = builder.lesson(video=True)
        reading = builder.reading(lesson)

        await service.complete_reading(learner_id, reading.id)
        await service.confirm_video_watched(learner_id, lesson.id)
        result = await service.complete_reading(learner_id, reading.id)

        assert result.reading_newly_completed is False
        assert result.lesson_auto_completed is True
        assert result.lesson_completed is True
        progress = await store.get_lesson_progress(learner_id, builder.course_id, lesson.id)
        assert progress.completed is True

    @pytest.mark.asyncio
    async def test_already_completed_lesson_is_not_recreated(
        self, service, store, builder, learner_id
    ):
        lesson = builder.lesson()
        reading = builder.reading(lesson)
        await store.insert_lesson_progress(
            LessonProgress(learner_id, builder.course_id, lesson.id)
        )

        result = await service.complete_reading(learner_id, reading.id)

        assert result.lesson_auto_completed is False
        assert result.lesson_completed is True

    @pytest.mark.asyncio
    async def test_unknown_reading(self, service, learner_id):
        with pytest.raises(ReadingNotFoundError):
            await service.complete_reading(learner_id, uuid4())

    @pytest.mark.asyncio
    async def test_reading_of_missing_lesson(self, service, store, builder, learner_id):
        """Should raise InvalidScopeError when the reading's lesson is gone."""
        lesson = builder.lesson()
        reading = builder.reading(lesson)
        del store._lessons[lesson.id]

        with pytest.raises(InvalidScopeError):
            await service.complete_reading(learner_id, reading.id)
