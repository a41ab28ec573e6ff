"""Temporal alignment of two note sequences and per-pair classification.

Alignment is greedy in expected order: each expected note takes the
nearest unconsumed actual note within the tolerance window, and whatever
is left over on the actual side is reported as extra.  This is not an
optimal assignment: near-equidistant candidates can be paired
differently than a global matcher would pair them.
"""

from __future__ import annotations

from fractions import Fraction

from .types import Comparison, ErrorKind, NoteEvent

DEFAULT_TOLERANCE = Fraction(1, 4)   # beats
DURATION_TOLERANCE = Fraction(1, 10)  # raw duration units


def as_fraction(value: Fraction | int | float | str) -> Fraction:
    """Exact rational for *value*; floats are read by their decimal repr."""
    if isinstance(value, Fraction):
        return value
    if isinstance(value, float):
        return Fraction(repr(value))
    return Fraction(value)


# ============================================================================
# Discrepancy classification
# ============================================================================

def classify_pair(expected: NoteEvent, actual: NoteEvent) -> tuple[bool, ErrorKind | None]:
    """Decide whether a matched pair is correct.

    Pitch must match exactly; duration may differ by at most 0.1 units.
    Pitch errors take priority over duration errors.  Ties, slurs and
    articulations are not scored.
    """
    if expected.midi != actual.midi:
        return False, ErrorKind.PITCH
    if abs(as_fraction(expected.duration) - as_fraction(actual.duration)) > DURATION_TOLERANCE:
        return False, ErrorKind.DURATION
    return True, None


# ============================================================================
# Alignment
# ============================================================================

def align_notes(
    expected: list[NoteEvent],
    actual: list[NoteEvent],
    tolerance: Fraction | float = DEFAULT_TOLERANCE,
) -> list[Comparison]:
    """Pair *expected* with *actual* notes by position.

    Returns comparisons sorted by position (stable, so a missing note and
    an extra note at the same beat keep expected-first order).
    """
    window = as_fraction(tolerance)
    consumed: set[int] = set()
    comparisons: list[Comparison] = []

    for exp in expected:
        exp_pos = as_fraction(exp.position)
        best_index: int | None = None
        best_distance: Fraction | None = None

        for index, act in enumerate(actual):
            if index in consumed:
                continue
            distance = abs(exp_pos - as_fraction(act.position))
            if distance > window:
                continue
            if best_distance is None or distance < best_distance:
                best_index, best_distance = index, distance

        if best_index is None:
            comparisons.append(Comparison(
                position=exp.position,
                expected=exp,
                actual=None,
                is_correct=False,
                error_kind=ErrorKind.MISSING,
                expected_midi=exp.midi,
            ))
            continue

        consumed.add(best_index)
        match = actual[best_index]
        is_correct, error_kind = classify_pair(exp, match)
        comparisons.append(Comparison(
            position=exp.position,
            expected=exp,
            actual=match,
            is_correct=is_correct,
            error_kind=error_kind,
            expected_midi=exp.midi,
            actual_midi=match.midi,
        ))

    for index, act in enumerate(actual):
        if index not in consumed:
            comparisons.append(Comparison(
                position=act.position,
                expected=None,
                actual=act,
                is_correct=False,
                error_kind=ErrorKind.EXTRA,
                actual_midi=act.midi,
            ))

    comparisons.sort(key=lambda c: as_fraction(c.position))
    return comparisons
