"""Tests for score aggregation and the evaluate() pipeline.

Covers:
  - Identity, empty student, empty reference
  - Transposed references and key-signature accidentals
  - Counts and percentage rounding (half up)
  - points_for_percentage
  - JSON serialization of results
"""

import json
from fractions import Fraction

import pytest

from notegrade.notation.score import evaluate, points_for_percentage, round_half_up

from conftest import build_mxl, build_score


class TestRoundHalfUp:

    @pytest.mark.parametrize("value, expected", [
        (Fraction(5, 2), 3),
        (Fraction(3, 2), 2),
        (Fraction(249, 100), 2),
        (0.5, 1),
        (0, 0),
        (Fraction(200, 3), 67),
    ])
    def test_values(self, value, expected):
        assert round_half_up(value) == expected


class TestPointsForPercentage:

    def test_half_point_rounds_up(self):
        assert points_for_percentage(25, 10) == 3

    def test_full_and_zero(self):
        assert points_for_percentage(100, 15) == 15
        assert points_for_percentage(0, 15) == 0

    def test_fractional_max_points(self):
        assert points_for_percentage(50, 2.5) == 1


class TestEvaluate:

    def test_identity(self, three_notes):
        result = evaluate(three_notes, three_notes, 0)
        assert result.percentage == 100
        assert result.correct_notes == result.total_notes == 3
        assert result.missing_notes == result.extra_notes == 0

    def test_empty_student(self, three_notes):
        result = evaluate(three_notes, build_score([]), 0)
        assert result.percentage == 0
        assert result.missing_notes == 3
        assert result.extra_notes == 0

    def test_empty_reference(self, three_notes):
        result = evaluate(build_score([]), three_notes, 0)
        assert result.total_notes == 0
        assert result.percentage == 0
        assert result.extra_notes == 0
        assert result.details == []
        assert result.error == "No notes found in reference MusicXML"
        assert result.to_dict()["error"] == result.error

    def test_unparsable_reference_scores_zero(self, three_notes):
        result = evaluate("<not xml", three_notes)
        assert result.total_notes == 0 and result.percentage == 0

    def test_key_signature_matches_explicit_accidental(self):
        g_major = "<key><fifths>1</fifths></key>"
        reference = build_score(["G4", "F#4", "E4"], attributes=g_major)
        student = build_score(["G4", "F4", "E4"], attributes=g_major)
        assert evaluate(reference, student).percentage == 100

    def test_transposed_reference(self):
        reference = build_score(["C4", "D4", "E4"])
        student = build_score(["D4", "E4", "F#4"])
        assert evaluate(reference, student, 2).percentage == 100
        assert evaluate(reference, student, 0).percentage == 0

    def test_partial_credit_counts(self):
        reference = build_score(["C4", "D4", "E4"])
        student = build_score(["C4", "D#4", ("E4", 2), "G4"])
        result = evaluate(reference, student)
        assert result.correct_notes == 1
        assert result.incorrect_notes == 2
        assert result.missing_notes == 0
        assert result.extra_notes == 1
        assert result.percentage == 33

    def test_two_of_three_rounds_up(self):
        reference = build_score(["C4", "D4", "E4"])
        student = build_score(["C4", "D4", "F4"])
        assert evaluate(reference, student).percentage == 67

    def test_mxl_against_plain(self, three_notes):
        packed = build_mxl({"score.xml": three_notes})
        assert evaluate(packed, three_notes).percentage == 100

    def test_result_to_dict_is_json(self):
        reference = build_score([("C4", 1), ("D4", 1)], divisions=2)
        result = evaluate(reference, build_score([("C4", 1)], divisions=2))
        data = json.loads(json.dumps(result.to_dict()))
        assert data["percentage"] == 50
        assert data["details"][1]["error_kind"] == "missing"
        assert data["details"][1]["position"] == 0.5
        assert data["details"][0]["expected"]["step"] == "C"
