"""Note events, comparisons and evaluation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from typing import Any


class Step(Enum):
    """Diatonic step names."""
    C = "C"
    D = "D"
    E = "E"
    F = "F"
    G = "G"
    A = "A"
    B = "B"


class NoteType(Enum):
    """Notated duration types.  Unknown spellings fall back to QUARTER."""
    WHOLE = "whole"
    HALF = "half"
    QUARTER = "quarter"
    EIGHTH = "eighth"
    SIXTEENTH = "16th"
    THIRTY_SECOND = "32nd"
    SIXTY_FOURTH = "64th"


class Articulation(Enum):
    STACCATO = "staccato"
    ACCENT = "accent"
    TENUTO = "tenuto"
    STACCATISSIMO = "staccatissimo"
    MARCATO = "marcato"


class ErrorKind(Enum):
    """Why a comparison is not correct."""
    PITCH = "pitch"
    DURATION = "duration"
    TIE = "tie"                    # recorded for display only, never assigned
    SLUR = "slur"                  # recorded for display only, never assigned
    ARTICULATION = "articulation"  # recorded for display only, never assigned
    MISSING = "missing"
    EXTRA = "extra"


# Pitch class of each step, C4 = MIDI 60.
STEP_TO_SEMITONE: dict[Step, int] = {
    Step.C: 0,
    Step.D: 2,
    Step.E: 4,
    Step.F: 5,
    Step.G: 7,
    Step.A: 9,
    Step.B: 11,
}


def _number(value: Fraction | int | float) -> int | float:
    """JSON-friendly number: ints stay ints, rationals become floats."""
    if isinstance(value, Fraction) and value.denominator == 1:
        return int(value)
    if isinstance(value, Fraction):
        return float(value)
    return value


@dataclass(frozen=True)
class NoteEvent:
    """A single pitched note with timing and notation attributes.

    ``duration`` is in the document's divisions; ``position`` is in beats
    (quarter notes) from the start of the sequence.
    """
    step: Step
    octave: int
    alter: int = 0
    duration: Fraction = Fraction(4)
    type: NoteType = NoteType.QUARTER
    position: Fraction = Fraction(0)
    tie_start: bool = False
    tie_end: bool = False
    slur_start: bool = False
    slur_end: bool = False
    articulation: Articulation | None = None

    @property
    def midi(self) -> int:
        """MIDI note number (C4 = 60)."""
        return 12 * (self.octave + 1) + STEP_TO_SEMITONE[self.step] + self.alter

    @property
    def name(self) -> str:
        """Scientific pitch name, e.g. ``"C#4"``."""
        accidental = {-2: "bb", -1: "b", 0: "", 1: "#", 2: "##"}.get(self.alter, "")
        return f"{self.step.value}{accidental}{self.octave}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "octave": self.octave,
            "alter": self.alter,
            "duration": _number(self.duration),
            "type": self.type.value,
            "position": _number(self.position),
            "tie_start": self.tie_start,
            "tie_end": self.tie_end,
            "slur_start": self.slur_start,
            "slur_end": self.slur_end,
            "articulation": self.articulation.value if self.articulation else None,
        }


@dataclass
class Comparison:
    """Outcome of aligning one expected and/or one actual note."""
    position: Fraction
    expected: NoteEvent | None
    actual: NoteEvent | None
    is_correct: bool
    error_kind: ErrorKind | None = None
    expected_midi: int | None = None
    actual_midi: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": _number(self.position),
            "expected": self.expected.to_dict() if self.expected else None,
            "actual": self.actual.to_dict() if self.actual else None,
            "is_correct": self.is_correct,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "expected_midi": self.expected_midi,
            "actual_midi": self.actual_midi,
        }


@dataclass
class EvaluationResult:
    """Score and per-note diagnostics for one evaluation."""
    score: int
    total_notes: int
    correct_notes: int
    incorrect_notes: int
    missing_notes: int
    extra_notes: int
    details: list[Comparison] = field(default_factory=list)
    error: str | None = None

    @property
    def percentage(self) -> int:
        return self.score

    def to_dict(self) -> dict[str, Any]:
        data = {
            "score": self.score,
            "percentage": self.percentage,
            "total_notes": self.total_notes,
            "correct_notes": self.correct_notes,
            "incorrect_notes": self.incorrect_notes,
            "missing_notes": self.missing_notes,
            "extra_notes": self.extra_notes,
            "details": [c.to_dict() for c in self.details],
        }
        if self.error:
            data["error"] = self.error
        return data
