"""Exam attempts module.

Provides:
- ExamAttempt entity and AttemptResult input schema
- Exam Attempt Ledger (append, best attempt, annulment) in ``ledger``
"""

from .models import EXAMS_TABLES_CQL, AttemptResult, ExamAttempt, select_best_attempt


__all__ = [
    "EXAMS_TABLES_CQL",
    "AttemptResult",
    "ExamAttempt",
    "select_best_attempt",
]
