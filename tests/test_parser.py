"""Tests for MusicXML parsing.

Covers:
  - Plain XML, bytes, namespaced documents
  - Rests advance position without producing notes
  - Divisions and duration handling (explicit, absent, invalid, zero)
  - Key signature accidentals and octave-change transposition
  - Type aliases and fallback to quarter
  - Tie / slur / articulation capture
  - MXL containers: manifest, score.xml, nested score.mxl, first .xml
  - Garbage input never raises
"""

from fractions import Fraction

from notegrade.notation.parser import load_document, parse_notes
from notegrade.notation.types import Articulation, NoteType, Step

from conftest import build_mxl, build_score, note_xml


# ============================================================================
# Basic extraction
# ============================================================================

class TestParseNotes:

    def test_three_quarters(self, three_notes):
        notes = parse_notes(three_notes)
        assert [n.name for n in notes] == ["C4", "E4", "G4"]
        assert [n.position for n in notes] == [0, 1, 2]
        assert all(n.type is NoteType.QUARTER for n in notes)

    def test_bytes_input(self, three_notes):
        assert len(parse_notes(three_notes.encode())) == 3

    def test_alter_and_midi(self):
        notes = parse_notes(build_score(["F#4", "Bb3"]))
        assert notes[0].step is Step.F and notes[0].alter == 1
        assert notes[0].midi == 66
        assert notes[1].midi == 58

    def test_rest_advances_position(self):
        notes = parse_notes(build_score(["C4", "R", "D4"]))
        assert [n.name for n in notes] == ["C4", "D4"]
        assert notes[1].position == 2

    def test_divisions_scale_position(self):
        xml = build_score([("C4", 2, "eighth"), ("D4", 2, "eighth"), ("E4", 4)], divisions=4)
        notes = parse_notes(xml)
        assert [n.position for n in notes] == [0, Fraction(1, 2), 1]
        assert notes[0].duration == 2
        assert notes[0].type is NoteType.EIGHTH

    def test_position_crosses_measures(self):
        xml = (
            "<score-partwise><part id='P1'>"
            "<measure number='1'><attributes><divisions>1</divisions></attributes>"
            + note_xml("C4", 4, "whole") +
            "</measure><measure number='2'>"
            + note_xml("D4", 1) +
            "</measure></part></score-partwise>"
        )
        notes = parse_notes(xml)
        assert notes[1].position == 4

    def test_missing_divisions_defaults_to_four(self):
        xml = "<score-partwise><part><measure>" + note_xml("C4", 4) + note_xml("D4", 4) + "</measure></part></score-partwise>"
        notes = parse_notes(xml)
        assert notes[1].position == 1

    def test_non_positive_divisions_defaults_to_four(self):
        xml = build_score([("C4", 4), ("D4", 4)], divisions=0)
        assert parse_notes(xml)[1].position == 1

    def test_missing_duration_defaults(self):
        xml = (
            "<score-partwise><part><measure><attributes><divisions>4</divisions></attributes>"
            "<note><pitch><step>C</step><octave>4</octave></pitch></note>"
            "<note><pitch><step>D</step><octave>4</octave></pitch></note>"
            "</measure></part></score-partwise>"
        )
        notes = parse_notes(xml)
        assert notes[0].duration == 4
        assert notes[1].position == 1

    def test_zero_duration_kept(self):
        grace = "<note><grace/><pitch><step>B</step><octave>3</octave></pitch><duration>0</duration></note>"
        notes = parse_notes(build_score([grace, "C4", "D4"]))
        assert notes[0].duration == 0
        assert [n.position for n in notes] == [0, 0, 1]

    def test_negative_duration_defaults(self):
        bad = "<note><pitch><step>C</step><octave>4</octave></pitch><duration>-2</duration></note>"
        notes = parse_notes(build_score([bad, "D4"], divisions=4))
        assert notes[0].duration == 4
        assert notes[1].position == 1

    def test_unknown_type_is_quarter(self):
        notes = parse_notes(build_score([("C4", 1, "breve")]))
        assert notes[0].type is NoteType.QUARTER

    def test_type_alias(self):
        notes = parse_notes(build_score([("C4", 1, "8th"), ("D4", 1, "sixteenth")]))
        assert notes[0].type is NoteType.EIGHTH
        assert notes[1].type is NoteType.SIXTEENTH

    def test_invalid_step_dropped_but_advances(self):
        bad = "<note><pitch><step>H</step><octave>4</octave></pitch><duration>1</duration></note>"
        notes = parse_notes(build_score(["C4", bad, "E4"]))
        assert [n.name for n in notes] == ["C4", "E4"]
        assert notes[1].position == 2

    def test_namespaced_document(self):
        xml = (
            '<score-partwise xmlns="http://www.musicxml.org/ns"><part><measure>'
            "<attributes><divisions>1</divisions></attributes>"
            + note_xml("A4") +
            "</measure></part></score-partwise>"
        )
        notes = parse_notes(xml)
        assert len(notes) == 1 and notes[0].midi == 69

    def test_positions_non_decreasing(self):
        notes = parse_notes(build_score(["C4", "R", ("D4", 2), "E4", "R", "F4"]))
        positions = [n.position for n in notes]
        assert positions == sorted(positions)


# ============================================================================
# Key signature and octave transposition
# ============================================================================

class TestPitchNormalisation:

    def test_sharp_key_fills_missing_alter(self):
        notes = parse_notes(build_score(["F4", "C5", "G4"], attributes="<key><fifths>2</fifths></key>"))
        assert [n.name for n in notes] == ["F#4", "C#5", "G4"]

    def test_flat_key_fills_missing_alter(self):
        notes = parse_notes(build_score(["B3", "E4", "A4"], attributes="<key><fifths>-2</fifths></key>"))
        assert [n.alter for n in notes] == [-1, -1, 0]

    def test_explicit_natural_overrides_key(self):
        notes = parse_notes(build_score(["Fn4", "F4"], attributes="<key><fifths>1</fifths></key>"))
        assert [n.alter for n in notes] == [0, 1]

    def test_explicit_alter_kept_in_key(self):
        notes = parse_notes(build_score(["Bb4"], attributes="<key><fifths>1</fifths></key>"))
        assert notes[0].alter == -1

    def test_no_key_means_naturals(self):
        assert parse_notes(build_score(["F4"]))[0].alter == 0

    def test_octave_change_in_attributes(self):
        xml = build_score(
            ["C4", "G4"],
            attributes="<transpose><diatonic>0</diatonic><chromatic>0</chromatic>"
                       "<octave-change>-1</octave-change></transpose>",
        )
        assert [n.name for n in parse_notes(xml)] == ["C3", "G3"]

    def test_octave_change_in_score_part_adds_up(self):
        xml = build_score(
            ["C4"],
            attributes="<transpose><octave-change>1</octave-change></transpose>",
            score_part="<transpose><octave-change>1</octave-change></transpose>",
        )
        assert parse_notes(xml)[0].octave == 6

    def test_key_signature_spelling_matches_explicit_alter(self):
        explicit = build_score(["G4", "F#4", "G4"], attributes="<key><fifths>1</fifths></key>")
        implied = build_score(["G4", "F4", "G4"], attributes="<key><fifths>1</fifths></key>")
        assert [n.midi for n in parse_notes(explicit)] == [n.midi for n in parse_notes(implied)]


# ============================================================================
# Notation attributes
# ============================================================================

class TestNotationAttributes:

    def test_tie_elements(self):
        xml = build_score([
            note_xml("C4", inner='<tie type="start"/>'),
            note_xml("C4", inner='<notations><tied type="stop"/></notations>'),
        ])
        first, second = parse_notes(xml)
        assert first.tie_start and not first.tie_end
        assert second.tie_end and not second.tie_start

    def test_slurs(self):
        xml = build_score([
            note_xml("C4", inner='<notations><slur type="start"/></notations>'),
            note_xml("D4", inner='<notations><slur type="stop"/></notations>'),
        ])
        first, second = parse_notes(xml)
        assert first.slur_start and second.slur_end

    def test_articulation_precedence(self):
        xml = build_score([
            note_xml("C4", inner="<notations><articulations><accent/><staccato/></articulations></notations>"),
            note_xml("D4", inner="<notations><articulations><strong-accent/></articulations></notations>"),
            "E4",
        ])
        notes = parse_notes(xml)
        assert notes[0].articulation is Articulation.STACCATO
        assert notes[1].articulation is Articulation.MARCATO
        assert notes[2].articulation is None


# ============================================================================
# MXL containers
# ============================================================================

MANIFEST = (
    '<?xml version="1.0"?><container><rootfiles>'
    '<rootfile full-path="{path}" media-type="application/vnd.recordare.musicxml+xml"/>'
    "</rootfiles></container>"
)


class TestContainers:

    def test_manifest_rootfile(self, three_notes):
        data = build_mxl({
            "META-INF/container.xml": MANIFEST.format(path="music/piece.xml"),
            "music/piece.xml": three_notes,
            "score.xml": build_score(["A4"]),
        })
        assert len(parse_notes(data)) == 3

    def test_score_xml_fallback(self, three_notes):
        data = build_mxl({"other.xml": build_score(["A4"]), "score.xml": three_notes})
        assert len(parse_notes(data)) == 3

    def test_nested_score_mxl(self, three_notes):
        inner = build_mxl({"score.xml": three_notes})
        data = build_mxl({"readme.txt": "hello", "score.mxl": inner, "other.xml": build_score(["A4"])})
        assert [n.name for n in parse_notes(data)] == ["C4", "E4", "G4"]

    def test_score_xml_preferred_over_nested(self, three_notes):
        inner = build_mxl({"score.xml": build_score(["A4"])})
        data = build_mxl({"score.mxl": inner, "score.xml": three_notes})
        assert len(parse_notes(data)) == 3

    def test_nested_container_that_is_not_a_zip(self):
        assert parse_notes(build_mxl({"score.mxl": "not a zip"})) == []

    def test_first_xml_fallback(self, three_notes):
        data = build_mxl({
            "META-INF/container.xml": MANIFEST.format(path="missing.xml"),
            "readme.txt": "hello",
            "piece.xml": three_notes,
        })
        assert len(parse_notes(data)) == 3

    def test_binary_string_container(self, three_notes):
        data = build_mxl({"score.xml": three_notes})
        assert len(parse_notes(data.decode("latin-1"))) == 3

    def test_container_without_xml(self):
        assert parse_notes(build_mxl({"readme.txt": "nothing"})) == []


# ============================================================================
# Garbage in, empty out
# ============================================================================

class TestNeverRaises:

    def test_none_and_empty(self):
        assert parse_notes(None) == []
        assert parse_notes("") == []
        assert parse_notes("   ") == []

    def test_malformed_xml(self):
        assert parse_notes("<score-partwise><part>") == []

    def test_pdf(self):
        assert load_document(b"%PDF-1.4 ...") is None
        assert parse_notes("%PDF-1.7") == []

    def test_corrupt_zip(self):
        assert parse_notes(b"PK\x03\x04garbage") == []

    def test_no_notes(self):
        assert parse_notes("<score-partwise/>") == []
