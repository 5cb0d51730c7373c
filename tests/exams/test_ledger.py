"""Tests for the Exam Attempt Ledger.

Covers:
- Attempt numbering (sequential and concurrent)
- Best attempt selection with annulment and ties
- Scope checks, max_attempts and retry exhaustion
- Retakes closed once passed
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from progression.errors import (
    AttemptNotFoundError,
    AttemptNumberConflictError,
    AttemptsExhaustedError,
    DuplicateAttemptNumberError,
    ExamAlreadyPassedError,
    ExamNotFoundError,
    InvalidScopeError,
)
from progression.exams.ledger import ExamAttemptLedger
from progression.exams.models import AttemptResult, ExamAttempt, select_best_attempt


@pytest.fixture
def ledger(store, settings) -> ExamAttemptLedger:
    return ExamAttemptLedger(store, settings)


def _result(score: int | str, passed: bool = True, annulled: bool = False) -> AttemptResult:
    return AttemptResult(
        score_numeric=Decimal(score),
        score_percent=Decimal(score),
        passed=passed,
        annulled=annulled,
    )


class TestRecordAttempt:
    """Tests for record_attempt."""

    @pytest.mark.asyncio
    async def test_numbers_attempts_sequentially(self, ledger, builder, learner_id):
        """Should number attempts 1, 2, 3 for the same learner."""
        exam = builder.exam(builder.lesson())

        numbers = [
            (await ledger.record_attempt(exam.id, learner_id, _result(50))).attempt_number
            for _ in range(3)
        ]

        assert numbers == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_numbering_is_per_learner(self, ledger, builder, learner_id):
        exam = builder.exam(builder.lesson())

        await ledger.record_attempt(exam.id, learner_id, _result(50))
        other = await ledger.record_attempt(exam.id, uuid4(), _result(50))

        assert other.attempt_number == 1

    @pytest.mark.asyncio
    async def test_concurrent_submissions_get_distinct_numbers(
        self, ledger, builder, learner_id
    ):
        """Should give two simultaneous submissions numbers 1 and 2."""
        exam = builder.exam(builder.lesson())

        first, second = await asyncio.gather(
            ledger.record_attempt(exam.id, learner_id, _result(40, passed=False)),
            ledger.record_attempt(exam.id, learner_id, _result(80, passed=False)),
        )

        assert sorted([first.attempt_number, second.attempt_number]) == [1, 2]
        stored = await ledger.list_attempts(exam.id, learner_id)
        assert [a.attempt_number for a in stored] == [1, 2]

    @pytest.mark.asyncio
    async def test_unknown_exam(self, ledger, learner_id):
        with pytest.raises(ExamNotFoundError):
            await ledger.record_attempt(uuid4(), learner_id, _result(50))

    @pytest.mark.asyncio
    async def test_exam_outside_given_course(self, ledger, builder, learner_id):
        """Should reject an exam submitted under another course."""
        exam = builder.exam(builder.lesson())

        with pytest.raises(InvalidScopeError):
            await ledger.record_attempt(
                exam.id, learner_id, _result(50), course_id=uuid4()
            )

    @pytest.mark.asyncio
    async def test_exam_bound_to_lesson_of_other_course(
        self, ledger, builder, make_builder, learner_id
    ):
        """Should reject an exam whose lesson lives in another course."""
        foreign_lesson = make_builder().lesson()
        exam = builder.exam(foreign_lesson)

        with pytest.raises(InvalidScopeError):
            await ledger.record_attempt(exam.id, learner_id, _result(50))

    @pytest.mark.asyncio
    async def test_max_attempts_counts_annulled(self, ledger, builder, learner_id):
        """Should refuse a third attempt even when one of two was annulled."""
        exam = builder.exam(builder.lesson(), max_attempts=2)
        await ledger.record_attempt(exam.id, learner_id, _result(30))
        await ledger.record_attempt(exam.id, learner_id, _result(30, annulled=True))

        with pytest.raises(AttemptsExhaustedError) as exc_info:
            await ledger.record_attempt(exam.id, learner_id, _result(90))

        assert exc_info.value.code == "attempts_exhausted"

    @pytest.mark.asyncio
    async def test_no_attempt_after_pass(self, ledger, builder, learner_id):
        """Should refuse a new attempt once the learner holds a pass."""
        exam = builder.exam(builder.lesson(), threshold=70)
        await ledger.record_attempt(exam.id, learner_id, _result(90))

        with pytest.raises(ExamAlreadyPassedError) as exc_info:
            await ledger.record_attempt(exam.id, learner_id, _result(10, passed=False))

        assert exc_info.value.code == "exam_already_passed"
        assert len(await ledger.list_attempts(exam.id, learner_id)) == 1

    @pytest.mark.asyncio
    async def test_retake_allowed_after_failed_attempt(self, ledger, builder, learner_id):
        exam = builder.exam(builder.lesson(), threshold=70)
        await ledger.record_attempt(exam.id, learner_id, _result(90, passed=False))

        attempt = await ledger.record_attempt(exam.id, learner_id, _result(75))

        assert attempt.attempt_number == 2

    @pytest.mark.asyncio
    async def test_retake_allowed_after_annulled_pass(self, ledger, builder, learner_id):
        """Should reopen retakes when the only pass was annulled."""
        exam = builder.exam(builder.lesson(), threshold=70)
        await ledger.record_attempt(exam.id, learner_id, _result(90))
        await ledger.annul_attempt(exam.id, learner_id, 1)

        attempt = await ledger.record_attempt(exam.id, learner_id, _result(80))

        assert attempt.attempt_number == 2
        assert await ledger.has_passed(exam, learner_id) is True

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, store, settings, builder, learner_id):
        """Should raise AttemptNumberConflictError when every insert collides."""
        exam = builder.exam(builder.lesson())
        store.insert_attempt = AsyncMock(
            side_effect=DuplicateAttemptNumberError(exam.id, learner_id, 1)
        )
        ledger = ExamAttemptLedger(store, settings)

        with pytest.raises(AttemptNumberConflictError):
            await ledger.record_attempt(exam.id, learner_id, _result(50))

        assert store.insert_attempt.await_count == settings.attempt_insert_max_retries + 1

    @pytest.mark.asyncio
    async def test_retry_after_single_conflict(self, store, settings, builder, learner_id):
        """Should re-read and retry after one conflict."""
        exam = builder.exam(builder.lesson())
        real_insert = store.insert_attempt
        calls = []

        async def flaky_insert(attempt: ExamAttempt) -> None:
            calls.append(attempt.attempt_number)
            if len(calls) == 1:
                raise DuplicateAttemptNumberError(exam.id, learner_id, attempt.attempt_number)
            await real_insert(attempt)

        store.insert_attempt = flaky_insert
        ledger = ExamAttemptLedger(store, settings)

        attempt = await ledger.record_attempt(exam.id, learner_id, _result(50))

        assert attempt.attempt_number == 1
        assert calls == [1, 1]


class TestBestAttempt:
    """Tests for best attempt selection."""

    @pytest.mark.asyncio
    async def test_best_is_highest_score(self, ledger, builder, learner_id):
        exam = builder.exam(builder.lesson())
        for score in (40, 85, 60):
            await ledger.record_attempt(exam.id, learner_id, _result(score, passed=False))

        best = await ledger.best_attempt(exam.id, learner_id)

        assert best.score_numeric == Decimal(85)
        assert best.attempt_number == 2

    @pytest.mark.asyncio
    async def test_annulled_attempt_is_excluded(self, ledger, builder, learner_id):
        """Should fall back to the next attempt after annulling the best."""
        exam = builder.exam(builder.lesson())
        await ledger.record_attempt(exam.id, learner_id, _result(95, passed=False))
        await ledger.record_attempt(exam.id, learner_id, _result(60, passed=False))

        annulled = await ledger.annul_attempt(exam.id, learner_id, 1)
        best = await ledger.best_attempt(exam.id, learner_id)

        assert annulled.annulled is True
        assert best.attempt_number == 2
        # History is kept
        assert len(await ledger.list_attempts(exam.id, learner_id)) == 2

    @pytest.mark.asyncio
    async def test_no_eligible_attempt(self, ledger, builder, learner_id):
        exam = builder.exam(builder.lesson())
        await ledger.record_attempt(exam.id, learner_id, _result(95, annulled=True))

        assert await ledger.best_attempt(exam.id, learner_id) is None

    @pytest.mark.asyncio
    async def test_annul_missing_attempt(self, ledger, builder, learner_id):
        exam = builder.exam(builder.lesson())

        with pytest.raises(AttemptNotFoundError):
            await ledger.annul_attempt(exam.id, learner_id, 7)

    def test_tie_goes_to_earlier_attempt(self):
        exam_id, learner = uuid4(), uuid4()
        attempts = [
            ExamAttempt(exam_id, learner, n, Decimal(80), Decimal(80), True)
            for n in (2, 1)
        ]

        assert select_best_attempt(attempts).attempt_number == 1


class TestPassRule:
    """Tests for the exam gate pass rule."""

    @pytest.mark.asyncio
    async def test_threshold_boundary(self, ledger, builder, learner_id):
        """Should fail at 69 and pass at 70 against a 70% threshold."""
        exam = builder.exam(builder.lesson(), threshold=70)
        await ledger.record_attempt(exam.id, learner_id, _result(69))
        assert await ledger.has_passed(exam, learner_id) is False

        await ledger.record_attempt(exam.id, learner_id, _result(70))
        assert await ledger.has_passed(exam, learner_id) is True

    @pytest.mark.asyncio
    async def test_grader_flag_must_agree(self, ledger, builder, learner_id):
        """Should not pass when the grader says failed despite the score."""
        exam = builder.exam(builder.lesson(), threshold=70)
        await ledger.record_attempt(exam.id, learner_id, _result(90, passed=False))

        assert await ledger.has_passed(exam, learner_id) is False

    def test_result_validation(self):
        with pytest.raises(ValueError):
            AttemptResult(
                score_numeric=Decimal(1), score_percent=Decimal(101), passed=True
            )
