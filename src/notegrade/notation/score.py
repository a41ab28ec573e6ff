"""Score aggregation and the end-to-end ``evaluate`` pipeline.

``evaluate`` is pure: it touches neither storage nor the network, so it
can back both the auto-grader and the manual "evaluate this submission"
tools.
"""

from __future__ import annotations

import logging
import math
from fractions import Fraction

from .align import DEFAULT_TOLERANCE, align_notes, as_fraction
from .parser import parse_notes
from .transpose import transpose_notes
from .types import Comparison, ErrorKind, EvaluationResult

logger = logging.getLogger(__name__)

EMPTY_REFERENCE_ERROR = "No notes found in reference MusicXML"


def round_half_up(value: Fraction | int | float) -> int:
    """Round to the nearest integer, halves away from -inf (2.5 → 3)."""
    return math.floor(as_fraction(value) + Fraction(1, 2))


def aggregate(comparisons: list[Comparison], total_notes: int) -> EvaluationResult:
    """Collapse comparisons into counts and a 0–100 percentage.

    *total_notes* is the number of expected notes; with none the score is 0.
    """
    correct = sum(1 for c in comparisons if c.is_correct)
    incorrect = sum(
        1 for c in comparisons
        if not c.is_correct and c.expected is not None and c.actual is not None
    )
    missing = sum(1 for c in comparisons if c.error_kind is ErrorKind.MISSING)
    extra = sum(1 for c in comparisons if c.error_kind is ErrorKind.EXTRA)

    score = round_half_up(Fraction(correct * 100, total_notes)) if total_notes > 0 else 0

    return EvaluationResult(
        score=score,
        total_notes=total_notes,
        correct_notes=correct,
        incorrect_notes=incorrect,
        missing_notes=missing,
        extra_notes=extra,
        details=comparisons,
    )


def points_for_percentage(percentage: int, max_points: int | float) -> int:
    """Convert a percentage into awarded points (round half up)."""
    return round_half_up(Fraction(percentage, 100) * as_fraction(max_points))


def evaluate(
    reference_doc: str | bytes | None,
    student_doc: str | bytes | None,
    semitone_offset: int = 0,
    tolerance: Fraction | float = DEFAULT_TOLERANCE,
) -> EvaluationResult:
    """Compare a student's notation against a reference.

    The reference is transposed by *semitone_offset* before alignment.
    Unparsable documents count as empty; an empty reference short-circuits
    to a zero result with no details.
    """
    reference = parse_notes(reference_doc)
    student = parse_notes(student_doc)

    if not reference:
        logger.warning("No reference notes found; scoring zero")
        return EvaluationResult(
            score=0,
            total_notes=0,
            correct_notes=0,
            incorrect_notes=0,
            missing_notes=0,
            extra_notes=0,
            error=EMPTY_REFERENCE_ERROR,
        )
    if not student:
        logger.info("No student notes found")

    expected = transpose_notes(reference, semitone_offset)
    comparisons = align_notes(expected, student, tolerance)
    result = aggregate(comparisons, total_notes=len(expected))

    logger.debug(
        "Evaluated: %d/%d correct, %d incorrect, %d missing, %d extra → %d%%",
        result.correct_notes, result.total_notes, result.incorrect_notes,
        result.missing_notes, result.extra_notes, result.percentage,
    )
    return result
