"""Notation evaluation: parsing, transposition, alignment and scoring."""

from .types import (
    Step,
    NoteType,
    Articulation,
    ErrorKind,
    NoteEvent,
    Comparison,
    EvaluationResult,
)
from .parser import load_document, parse_notes
from .transpose import note_to_midi, midi_to_pitch, transpose_notes
from .align import DEFAULT_TOLERANCE, align_notes, classify_pair
from .score import aggregate, evaluate, points_for_percentage, round_half_up
from .instruments import INSTRUMENT_TRANSPOSITIONS, transposition_semitones

__all__ = [
    "Step",
    "NoteType",
    "Articulation",
    "ErrorKind",
    "NoteEvent",
    "Comparison",
    "EvaluationResult",
    "load_document",
    "parse_notes",
    "note_to_midi",
    "midi_to_pitch",
    "transpose_notes",
    "DEFAULT_TOLERANCE",
    "align_notes",
    "classify_pair",
    "aggregate",
    "evaluate",
    "points_for_percentage",
    "round_half_up",
    "INSTRUMENT_TRANSPOSITIONS",
    "transposition_semitones",
]
