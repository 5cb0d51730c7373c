"""Exam attempt entities and Cassandra table definitions.

Attempts are append-only. The only field that changes after insertion is
``annulled``, set when the assessment subsystem detects an integrity
violation; annulled attempts stay in history but never count as best.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from progression.courses.models import Exam, ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Primary key makes attempt_number unique per (exam, learner); inserts use
# IF NOT EXISTS so a concurrent duplicate is rejected by the store.
EXAM_ATTEMPTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.exam_attempts (
    exam_id UUID,
    learner_id UUID,
    attempt_number INT,
    id UUID,
    score_numeric DECIMAL,
    score_percent DECIMAL,
    passed BOOLEAN,
    annulled BOOLEAN,
    started_at TIMESTAMP,
    submitted_at TIMESTAMP,
    PRIMARY KEY ((exam_id, learner_id), attempt_number)
) WITH CLUSTERING ORDER BY (attempt_number ASC)
"""

EXAMS_TABLES_CQL = [
    EXAM_ATTEMPTS_TABLE_CQL,
]


# ==============================================================================
# Input Schemas
# ==============================================================================


class AttemptResult(BaseModel):
    """Graded outcome handed over by the assessment subsystem."""

    score_numeric: Decimal = Field(..., ge=0, description="Raw score")
    score_percent: Decimal = Field(..., ge=0, le=100, description="0-100 percentage")
    passed: bool = Field(..., description="Pass flag computed by the grader")
    annulled: bool = Field(default=False, description="Integrity violation detected")
    started_at: datetime | None = None
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("started_at", "submitted_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc_aware(value)


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class ExamAttempt:
    """One submitted attempt of a learner at an exam.

    Attributes:
        exam_id: Exam UUID
        learner_id: Learner UUID
        attempt_number: 1-based, strictly increasing per (exam, learner)
        id: Attempt UUID
        score_numeric: Raw score used to pick the best attempt
        score_percent: 0-100 percentage compared against the exam threshold
        passed: Grader's pass flag
        annulled: Excluded from scoring (kept for audit)
        started_at: When the learner opened the attempt
        submitted_at: When the attempt was submitted
    """

    exam_id: UUID
    learner_id: UUID
    attempt_number: int
    score_numeric: Decimal
    score_percent: Decimal
    passed: bool
    annulled: bool = False
    id: UUID | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.id is None:
            object.__setattr__(self, "id", uuid4())

    @classmethod
    def create(
        cls,
        exam_id: UUID,
        learner_id: UUID,
        attempt_number: int,
        result: AttemptResult,
    ) -> "ExamAttempt":
        """Build a new attempt from a graded result."""
        return cls(
            exam_id=exam_id,
            learner_id=learner_id,
            attempt_number=attempt_number,
            score_numeric=result.score_numeric,
            score_percent=result.score_percent,
            passed=result.passed,
            annulled=result.annulled,
            started_at=result.started_at,
            submitted_at=result.submitted_at,
        )

    def counts_as_pass(self, exam: Exam) -> bool:
        """Check the attempt passes the exam's gate.

        Both the grader's flag and the exam's threshold must agree.
        """
        return (
            not self.annulled
            and self.passed
            and self.score_percent >= exam.passing_threshold_percent
        )

    def with_annulled(self, annulled: bool = True) -> "ExamAttempt":
        return replace(self, annulled=annulled)

    @classmethod
    def from_row(cls, row: Any) -> "ExamAttempt":
        """Create ExamAttempt from Cassandra row."""
        return cls(
            exam_id=row.exam_id,
            learner_id=row.learner_id,
            attempt_number=row.attempt_number,
            id=row.id,
            score_numeric=row.score_numeric or Decimal(0),
            score_percent=row.score_percent or Decimal(0),
            passed=bool(row.passed),
            annulled=bool(row.annulled),
            started_at=ensure_utc_aware(row.started_at),
            submitted_at=ensure_utc_aware(row.submitted_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "exam_id": self.exam_id,
            "learner_id": self.learner_id,
            "attempt_number": self.attempt_number,
            "score_numeric": self.score_numeric,
            "score_percent": self.score_percent,
            "passed": self.passed,
            "annulled": self.annulled,
            "started_at": self.started_at,
            "submitted_at": self.submitted_at,
        }


def select_best_attempt(attempts: Iterable[ExamAttempt]) -> ExamAttempt | None:
    """Highest score_numeric among non-annulled attempts.

    Ties go to the earlier attempt. Returns None when nothing is eligible.
    """
    best: ExamAttempt | None = None
    for attempt in sorted(attempts, key=lambda a: a.attempt_number):
        if attempt.annulled:
            continue
        if best is None or attempt.score_numeric > best.score_numeric:
            best = attempt
    return best
