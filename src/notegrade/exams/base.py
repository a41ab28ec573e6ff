"""Exam domain types: question variants, answers, attempts, grade outcomes.

Questions form a closed tagged union keyed by ``QuestionVariant``: every
variant is its own dataclass carrying only the fields its grading rule
needs, and ``Question.from_dict`` picks the class from the ``variant``
key instead of sniffing the payload shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

from ..notation.types import EvaluationResult


class QuestionVariant(Enum):
    """Every kind of exam question.

    Grouped by how they are graded.
    """
    # exact match
    TRUE_FALSE = "TRUE_FALSE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    INTERVAL_DICTATION = "INTERVAL_DICTATION"
    CHORD_DICTATION = "CHORD_DICTATION"
    PROGRESSION_DICTATION = "PROGRESSION_DICTATION"
    # notation diff
    LISTEN_AND_WRITE = "LISTEN_AND_WRITE"
    LISTEN_AND_COMPLETE = "LISTEN_AND_COMPLETE"
    # manual only
    TRANSPOSITION = "TRANSPOSITION"
    ORCHESTRATION = "ORCHESTRATION"
    LISTENING = "LISTENING"
    LISTEN_AND_REPEAT = "LISTEN_AND_REPEAT"


class AttemptStatus(Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    GRADED = "GRADED"


class OutcomeStatus(Enum):
    GRADED = "graded"
    SKIPPED = "skipped"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Questions
# ============================================================================

_QUESTION_TYPES: dict[QuestionVariant, type["Question"]] = {}


def _register_question(cls: type["Question"]) -> type["Question"]:
    _QUESTION_TYPES[cls.variant] = cls
    return cls


@dataclass
class Question:
    """Fields shared by every question variant."""
    id: str
    points: int | float = 0
    text: str = ""

    variant: ClassVar[QuestionVariant]

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Question":
        """Build the concrete question class named by ``d["variant"]``."""
        try:
            variant = QuestionVariant(d["variant"])
        except KeyError:
            raise ValueError("Question dict has no 'variant'") from None
        qcls = _QUESTION_TYPES[variant]
        known = {f.name for f in fields(qcls)}
        return qcls(**{k: v for k, v in d.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d["variant"] = self.variant.value
        return d


@_register_question
@dataclass
class TrueFalseQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.TRUE_FALSE
    correct_answer: bool | None = None


@_register_question
@dataclass
class MultipleChoiceQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.MULTIPLE_CHOICE
    options: list[str] = field(default_factory=list)
    correct_option_index: int | None = None


@_register_question
@dataclass
class IntervalDictationQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.INTERVAL_DICTATION
    intervals: list[str] = field(default_factory=list)  # correct interval per item


@_register_question
@dataclass
class ChordDictationQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.CHORD_DICTATION
    chords: list[str] = field(default_factory=list)  # correct chord per item


@_register_question
@dataclass
class ProgressionDictationQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.PROGRESSION_DICTATION
    correct_progression: list[str] | None = None
    progression_key: str | None = None


@_register_question
@dataclass
class ListenAndWriteQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.LISTEN_AND_WRITE
    reference_score_xml: str | None = None
    reference_score_path: str | None = None
    audio_file_path: str | None = None


@_register_question
@dataclass
class ListenAndCompleteQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.LISTEN_AND_COMPLETE
    complete_score_xml: str | None = None
    complete_score_path: str | None = None
    incomplete_score_path: str | None = None
    audio_file_path: str | None = None


@_register_question
@dataclass
class TranspositionQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.TRANSPOSITION
    source_instrument: str | None = None
    target_instrument: str | None = None
    notation_file_path: str | None = None
    reference_answer_path: str | None = None


@_register_question
@dataclass
class OrchestrationQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.ORCHESTRATION
    piano_score_path: str | None = None
    target_ensemble: str | None = None


@_register_question
@dataclass
class ListeningQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.LISTENING
    audio_file_path: str | None = None


@_register_question
@dataclass
class ListenAndRepeatQuestion(Question):
    variant: ClassVar[QuestionVariant] = QuestionVariant.LISTEN_AND_REPEAT
    audio_file_path: str | None = None
    expected_notes: list[str] = field(default_factory=list)


# ============================================================================
# Answers and attempts
# ============================================================================

@dataclass
class Answer:
    """A student's response to one question within an attempt.

    ``payload`` is the variant-specific response as submitted, e.g.
    ``{"value": true}`` or ``{"selectedProgression": ["I", "V"]}``.
    ``version`` increases on every write and guards concurrent updates.
    """
    id: str
    attempt_id: str
    question_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    submission_file_path: str | None = None
    max_points: int | float = 0
    points_earned: int | float | None = None
    is_graded: bool = False
    feedback: str | None = None
    graded_at: datetime | None = None
    graded_by: str | None = None
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "attempt_id": self.attempt_id,
            "question_id": self.question_id,
            "payload": self.payload,
            "submission_file_path": self.submission_file_path,
            "max_points": self.max_points,
            "points_earned": self.points_earned,
            "is_graded": self.is_graded,
            "feedback": self.feedback,
            "graded_at": self.graded_at.isoformat() if self.graded_at else None,
            "graded_by": self.graded_by,
        }


@dataclass
class Attempt:
    """One student's run through an exam."""
    id: str
    exam_id: str
    student_id: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    score: int | float = 0
    total_points: int | float = 0
    started_at: datetime = field(default_factory=utcnow)
    submitted_at: datetime | None = None
    time_spent_seconds: int | None = None
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "exam_id": self.exam_id,
            "student_id": self.student_id,
            "status": self.status.value,
            "score": self.score,
            "total_points": self.total_points,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "time_spent_seconds": self.time_spent_seconds,
        }


# ============================================================================
# Grade outcomes
# ============================================================================

@dataclass
class GradeOutcome:
    """What happened to one answer during a grading batch."""
    answer_id: str
    status: OutcomeStatus
    points_earned: int | float | None = None
    is_correct: bool | None = None
    method: str = ""  # rule that produced the outcome (exact, notation_diff, manual, ...)
    reason: str | None = None
    evaluation: EvaluationResult | None = None

    @classmethod
    def graded(
        cls,
        answer_id: str,
        points_earned: int | float,
        is_correct: bool,
        method: str,
        evaluation: EvaluationResult | None = None,
    ) -> "GradeOutcome":
        return cls(
            answer_id=answer_id,
            status=OutcomeStatus.GRADED,
            points_earned=points_earned,
            is_correct=is_correct,
            method=method,
            evaluation=evaluation,
        )

    @classmethod
    def skipped(cls, answer_id: str, reason: str, method: str = "") -> "GradeOutcome":
        return cls(answer_id=answer_id, status=OutcomeStatus.SKIPPED, reason=reason, method=method)

    @classmethod
    def failed(cls, answer_id: str, reason: str, method: str = "") -> "GradeOutcome":
        return cls(answer_id=answer_id, status=OutcomeStatus.FAILED, reason=reason, method=method)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "answer_id": self.answer_id,
            "status": self.status.value,
            "method": self.method,
        }
        if self.status is OutcomeStatus.GRADED:
            d["points_earned"] = self.points_earned
            d["is_correct"] = self.is_correct
        if self.reason:
            d["reason"] = self.reason
        if self.evaluation is not None:
            d["evaluation"] = self.evaluation.to_dict()
        return d


@dataclass
class AttemptGradingReport:
    """Result of one ``grade_attempt`` batch."""
    attempt: Attempt
    outcomes: list[GradeOutcome] = field(default_factory=list)

    @property
    def graded(self) -> list[GradeOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.GRADED]

    @property
    def skipped(self) -> list[GradeOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SKIPPED]

    @property
    def failed(self) -> list[GradeOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
