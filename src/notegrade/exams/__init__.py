"""Exam domain: question variants, answers, attempts.

Grading rules live in ``notegrade.exams.rules`` and are imported
explicitly; they depend on the storage layer, which depends on this
package.
"""

from .base import (
    Answer,
    Attempt,
    AttemptGradingReport,
    AttemptStatus,
    GradeOutcome,
    OutcomeStatus,
    Question,
    QuestionVariant,
)

__all__ = [
    "Answer",
    "Attempt",
    "AttemptGradingReport",
    "AttemptStatus",
    "GradeOutcome",
    "OutcomeStatus",
    "Question",
    "QuestionVariant",
]
