"""Tests for MIDI conversion, transposition and the instrument table.

Covers:
  - note_to_midi / midi_to_pitch conventions (C4 = 60, sharps only)
  - transpose_notes round trip and attribute pass-through
  - transposition_semitones lookups
"""

from fractions import Fraction

import pytest

from notegrade.notation.instruments import transposition_semitones
from notegrade.notation.transpose import midi_to_pitch, note_to_midi, transpose_notes
from notegrade.notation.types import Articulation, NoteEvent, NoteType, Step


def n(step: str, octave: int, alter: int = 0, **kw) -> NoteEvent:
    return NoteEvent(step=Step(step), octave=octave, alter=alter, **kw)


class TestMidi:

    def test_middle_c(self):
        assert note_to_midi(Step.C, 4) == 60
        assert note_to_midi("a", 4) == 69

    def test_midi_to_pitch_prefers_sharps(self):
        assert midi_to_pitch(61) == (Step.C, 4, 1)
        assert midi_to_pitch(70) == (Step.A, 4, 1)
        assert midi_to_pitch(59) == (Step.B, 3, 0)

    def test_low_octaves(self):
        assert midi_to_pitch(0) == (Step.C, -1, 0)
        assert note_to_midi(Step.C, -1) == 0


class TestTranspose:

    def test_octave_up(self):
        [out] = transpose_notes([n("C", 4)], 12)
        assert out.name == "C5"

    def test_semitone_up_is_sharp(self):
        [out] = transpose_notes([n("C", 4)], 1)
        assert out.name == "C#4"
        assert out.step is Step.C and out.alter == 1

    def test_flat_respelled(self):
        [up] = transpose_notes([n("D", 4, -1)], 1)
        assert up.name == "D4"
        [same] = transpose_notes([n("D", 4, -1)], 0)
        assert same.name == "C#4"

    def test_round_trip(self):
        notes = [n("C", 4), n("F", 3, 1), n("B", 5), n("G", 2, 1)]
        for k in (1, 5, 7, 12, -3, 23):
            assert transpose_notes(transpose_notes(notes, k), -k) == notes

    def test_attributes_pass_through(self):
        src = n(
            "E", 4,
            duration=Fraction(2),
            type=NoteType.EIGHTH,
            position=Fraction(3, 2),
            tie_start=True,
            slur_end=True,
            articulation=Articulation.TENUTO,
        )
        [out] = transpose_notes([src], -2)
        assert out.name == "D4"
        assert (out.duration, out.type, out.position) == (src.duration, src.type, src.position)
        assert out.tie_start and out.slur_end
        assert out.articulation is Articulation.TENUTO

    def test_empty(self):
        assert transpose_notes([], 5) == []


class TestInstruments:

    def test_concert_to_clarinet(self):
        assert transposition_semitones("Piano", "Clarinet in Bb") == -2

    def test_horn_to_alto_sax(self):
        assert transposition_semitones("Horn in F", "Alto Saxophone") == -16

    def test_unknown_instrument(self):
        with pytest.raises(KeyError, match="Kazoo"):
            transposition_semitones("Piano", "Kazoo")
