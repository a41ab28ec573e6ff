"""Pitch transposition by semitones.

Pitches go through MIDI numbers (C4 = 60) and come back out through a
single sharp-preferring spelling table, so a transposed black key is
always written as a sharp (``C#``, never ``Db``).
"""

from __future__ import annotations

from dataclasses import replace

from .types import STEP_TO_SEMITONE, NoteEvent, Step

# Canonical spelling for each pitch class.
SHARP_SPELLING: tuple[tuple[Step, int], ...] = (
    (Step.C, 0),
    (Step.C, 1),
    (Step.D, 0),
    (Step.D, 1),
    (Step.E, 0),
    (Step.F, 0),
    (Step.F, 1),
    (Step.G, 0),
    (Step.G, 1),
    (Step.A, 0),
    (Step.A, 1),
    (Step.B, 0),
)


def note_to_midi(step: Step | str, octave: int, alter: int = 0) -> int:
    """MIDI number for a (step, octave, alter) triple."""
    if isinstance(step, str):
        step = Step(step.strip().upper())
    return 12 * (octave + 1) + STEP_TO_SEMITONE[step] + alter


def midi_to_pitch(midi: int) -> tuple[Step, int, int]:
    """Inverse of :func:`note_to_midi` using sharp spellings.

    Returns ``(step, octave, alter)``.
    """
    octave, pitch_class = divmod(midi, 12)
    step, alter = SHARP_SPELLING[pitch_class]
    return step, octave - 1, alter


def transpose_note(note: NoteEvent, semitones: int) -> NoteEvent:
    step, octave, alter = midi_to_pitch(note.midi + semitones)
    return replace(note, step=step, octave=octave, alter=alter)


def transpose_notes(notes: list[NoteEvent], semitones: int) -> list[NoteEvent]:
    """Shift every note by *semitones* (positive = up).

    Everything except the pitch is passed through untouched.  Even with a
    zero offset the pitches are respelled, so ``Db4`` comes back as ``C#4``.
    """
    return [transpose_note(n, semitones) for n in notes]
