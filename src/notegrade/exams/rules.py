"""Grading rules, one per question variant, looked up in ``RULE_REGISTRY``.

Architecture
============
Every rule is a subclass of ``GradingRule`` and is registered against the
``QuestionVariant`` it handles.  The orchestrator never inspects payload
shapes; it asks the registry for the variant's rule and gets back a
``GradeOutcome``:

* **Exact match** (true/false, multiple choice, interval/chord/progression
  dictation): case-insensitive, trimmed comparison of the submitted
  value(s) against the stored correct value(s).  All or nothing.
* **Notation diff** (listen-and-write, listen-and-complete): runs the
  notation evaluation pipeline against a reference score and converts
  the percentage into points.
* **Manual** (transposition, orchestration, listening, listen-and-repeat):
  always skipped; a human grader writes the points.

Missing inputs produce ``Skipped`` outcomes, never exceptions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..config import GraderConfig
from ..notation.score import evaluate, points_for_percentage
from ..storage.base import ContentFetcher, ContentUnavailableError
from .base import (
    Answer,
    ChordDictationQuestion,
    GradeOutcome,
    IntervalDictationQuestion,
    ListenAndCompleteQuestion,
    ListenAndWriteQuestion,
    MultipleChoiceQuestion,
    ProgressionDictationQuestion,
    Question,
    QuestionVariant,
    TrueFalseQuestion,
)

logger = logging.getLogger(__name__)

# Notation-diff answers at or above this percentage are reported as correct.
CORRECT_THRESHOLD = 90


@dataclass
class GradingContext:
    """Collaborators a rule may need while grading one answer."""
    fetcher: ContentFetcher
    config: GraderConfig

    def load_notation(
        self,
        inline: str | None,
        bucket: str,
        path: str | None,
    ) -> str | bytes | None:
        """Inline content if present, else the stored file, else None.

        Fetch failures are logged and reported as None.
        """
        if inline:
            return inline
        if not path:
            return None
        try:
            return self.fetcher.fetch(bucket, path)
        except ContentUnavailableError as exc:
            logger.warning("Could not load %s/%s: %s", bucket, path, exc)
            return None


# ============================================================================
# Rule ABC and registry
# ============================================================================

class GradingRule(ABC):
    """Base class for all grading rules."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier reported as ``GradeOutcome.method``."""
        ...

    @abstractmethod
    def grade(self, question: Question, answer: Answer, context: GradingContext) -> GradeOutcome:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


RULE_REGISTRY: dict[QuestionVariant, GradingRule] = {}


def register_rule(*variants: QuestionVariant):
    """Class decorator: instantiate the rule and register it for *variants*."""
    def decorator(cls: type[GradingRule]) -> type[GradingRule]:
        instance = cls()
        for variant in variants:
            RULE_REGISTRY[variant] = instance
        return cls
    return decorator


def get_rule(variant: QuestionVariant) -> GradingRule:
    if variant not in RULE_REGISTRY:
        raise ValueError(f"No grading rule for variant {variant.value}")
    return RULE_REGISTRY[variant]


# ============================================================================
# Exact match
# ============================================================================

def normalize_value(value: Any) -> str:
    """Trimmed, lower-cased string form (``True`` → ``"true"``)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip().lower()


def sequences_match(expected: list[Any], submitted: list[Any]) -> bool:
    """Element-wise normalized equality; different lengths never match."""
    if len(expected) != len(submitted):
        return False
    return all(normalize_value(e) == normalize_value(s) for e, s in zip(expected, submitted))


def _indexed_selections(items: Any, index_key: str, value_key: str) -> list[Any]:
    """``[{index_key: i, value_key: v}, ...]`` → values ordered by index."""
    if not isinstance(items, list):
        return []
    entries = [item for item in items if isinstance(item, dict)]
    entries.sort(key=lambda item: item.get(index_key, 0))
    return [item.get(value_key) for item in entries]


class ExactMatchRule(GradingRule):
    """Full points when every submitted value matches, otherwise zero."""

    @property
    def name(self) -> str:
        return "exact"

    @abstractmethod
    def expected_values(self, question: Question) -> list[Any] | None:
        """Correct values in order, or None if the question has none stored."""
        ...

    @abstractmethod
    def submitted_values(self, answer: Answer) -> list[Any]:
        ...

    def grade(self, question: Question, answer: Answer, context: GradingContext) -> GradeOutcome:
        expected = self.expected_values(question)
        if not expected:
            return GradeOutcome.skipped(answer.id, "no correct answer configured", self.name)
        is_correct = sequences_match(expected, self.submitted_values(answer))
        points = answer.max_points if is_correct else 0
        return GradeOutcome.graded(answer.id, points, is_correct, self.name)


@register_rule(QuestionVariant.TRUE_FALSE)
class TrueFalseRule(ExactMatchRule):

    def expected_values(self, question: Question) -> list[Any] | None:
        assert isinstance(question, TrueFalseQuestion)
        if question.correct_answer is None:
            return None
        return [question.correct_answer]

    def submitted_values(self, answer: Answer) -> list[Any]:
        return [answer.payload.get("value")]


@register_rule(QuestionVariant.MULTIPLE_CHOICE)
class MultipleChoiceRule(ExactMatchRule):

    def expected_values(self, question: Question) -> list[Any] | None:
        assert isinstance(question, MultipleChoiceQuestion)
        if question.correct_option_index is None:
            return None
        return [question.correct_option_index]

    def submitted_values(self, answer: Answer) -> list[Any]:
        return [answer.payload.get("selectedIndex")]


@register_rule(QuestionVariant.INTERVAL_DICTATION)
class IntervalDictationRule(ExactMatchRule):

    def expected_values(self, question: Question) -> list[Any] | None:
        assert isinstance(question, IntervalDictationQuestion)
        return list(question.intervals) or None

    def submitted_values(self, answer: Answer) -> list[Any]:
        return _indexed_selections(answer.payload.get("answers"), "intervalIndex", "selectedInterval")


@register_rule(QuestionVariant.CHORD_DICTATION)
class ChordDictationRule(ExactMatchRule):

    def expected_values(self, question: Question) -> list[Any] | None:
        assert isinstance(question, ChordDictationQuestion)
        return list(question.chords) or None

    def submitted_values(self, answer: Answer) -> list[Any]:
        # Single-chord questions submit {"selectedChord": "..."}
        if "answers" in answer.payload:
            return _indexed_selections(answer.payload["answers"], "chordIndex", "selectedChord")
        if "selectedChord" in answer.payload:
            return [answer.payload["selectedChord"]]
        return []


@register_rule(QuestionVariant.PROGRESSION_DICTATION)
class ProgressionDictationRule(ExactMatchRule):

    def expected_values(self, question: Question) -> list[Any] | None:
        assert isinstance(question, ProgressionDictationQuestion)
        return list(question.correct_progression) if question.correct_progression else None

    def submitted_values(self, answer: Answer) -> list[Any]:
        selected = answer.payload.get("selectedProgression")
        return list(selected) if isinstance(selected, list) else []


# ============================================================================
# Notation diff
# ============================================================================

class NotationDiffRule(GradingRule):
    """Score a MusicXML submission against a reference score."""

    @property
    def name(self) -> str:
        return "notation_diff"

    @abstractmethod
    def reference_source(self, question: Question) -> tuple[str | None, str | None]:
        """``(inline_xml, file_path)`` of the reference score."""
        ...

    @abstractmethod
    def student_inline(self, answer: Answer) -> str | None:
        ...

    def grade(self, question: Question, answer: Answer, context: GradingContext) -> GradeOutcome:
        cfg = context.config

        ref_inline, ref_path = self.reference_source(question)
        if not ref_inline and not ref_path:
            return GradeOutcome.skipped(answer.id, "no reference score configured", self.name)

        student_inline = self.student_inline(answer)
        if not student_inline and not answer.submission_file_path:
            return GradeOutcome.skipped(answer.id, "no student submission", self.name)

        reference = context.load_notation(ref_inline, cfg.reference_bucket, ref_path)
        if reference is None:
            return GradeOutcome.skipped(answer.id, "reference score unavailable", self.name)

        student = context.load_notation(
            student_inline, cfg.submission_bucket, answer.submission_file_path,
        )
        if student is None:
            return GradeOutcome.skipped(answer.id, "student submission unavailable", self.name)

        result = evaluate(reference, student, 0, tolerance=cfg.alignment_tolerance)
        points = points_for_percentage(result.percentage, answer.max_points)
        return GradeOutcome.graded(
            answer.id,
            points,
            result.percentage >= CORRECT_THRESHOLD,
            self.name,
            evaluation=result,
        )


@register_rule(QuestionVariant.LISTEN_AND_WRITE)
class ListenAndWriteRule(NotationDiffRule):

    def reference_source(self, question: Question) -> tuple[str | None, str | None]:
        assert isinstance(question, ListenAndWriteQuestion)
        return question.reference_score_xml, question.reference_score_path

    def student_inline(self, answer: Answer) -> str | None:
        return answer.payload.get("musicXML")


@register_rule(QuestionVariant.LISTEN_AND_COMPLETE)
class ListenAndCompleteRule(NotationDiffRule):

    def reference_source(self, question: Question) -> tuple[str | None, str | None]:
        assert isinstance(question, ListenAndCompleteQuestion)
        return question.complete_score_xml, question.complete_score_path

    def student_inline(self, answer: Answer) -> str | None:
        return answer.payload.get("completedScore") or answer.payload.get("musicXML")


# ============================================================================
# Manual
# ============================================================================

@register_rule(
    QuestionVariant.TRANSPOSITION,
    QuestionVariant.ORCHESTRATION,
    QuestionVariant.LISTENING,
    QuestionVariant.LISTEN_AND_REPEAT,
)
class ManualRule(GradingRule):
    """Never auto-graded; the answer waits for a human grader."""

    @property
    def name(self) -> str:
        return "manual"

    def grade(self, question: Question, answer: Answer, context: GradingContext) -> GradeOutcome:
        return GradeOutcome.skipped(answer.id, "manual grading required", self.name)
