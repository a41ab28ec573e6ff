"""MusicXML parsing: raw document to an ordered ``NoteEvent`` list.

Documents arrive either as plain MusicXML text/bytes or as a compressed
``.mxl`` container (a ZIP archive).  The container's real payload is
located through ``META-INF/container.xml``, falling back to a member
named ``score.xml``, then to a nested ``score.mxl`` container and then
to the first ``.xml`` member.

Parsing never raises: anything unreadable (syntax errors, PDFs, empty
archives, bad encodings) logs a warning and yields an empty list.
Callers treat an empty list as "no notes", which scores zero.
"""

from __future__ import annotations

import io
import logging
import xml.etree.ElementTree as ET
import zipfile
from fractions import Fraction
from typing import Iterator

from .types import Articulation, NoteEvent, NoteType, Step

logger = logging.getLogger(__name__)

DEFAULT_DIVISIONS = 4
DEFAULT_DURATION = Fraction(4)
DEFAULT_OCTAVE = 4

CONTAINER_MANIFEST = "META-INF/container.xml"
FALLBACK_SCORE_NAME = "score.xml"
NESTED_CONTAINER_NAME = "score.mxl"
MAX_CONTAINER_NESTING = 3

# Order in which a key signature adds accidentals.
_SHARP_ORDER = "FCGDAEB"
_FLAT_ORDER = "BEADGCF"

# Spellings seen in the wild → canonical type.
_TYPE_ALIASES: dict[str, NoteType] = {
    "whole": NoteType.WHOLE,
    "w": NoteType.WHOLE,
    "half": NoteType.HALF,
    "h": NoteType.HALF,
    "quarter": NoteType.QUARTER,
    "q": NoteType.QUARTER,
    "eighth": NoteType.EIGHTH,
    "8th": NoteType.EIGHTH,
    "8": NoteType.EIGHTH,
    "16th": NoteType.SIXTEENTH,
    "sixteenth": NoteType.SIXTEENTH,
    "16": NoteType.SIXTEENTH,
    "32nd": NoteType.THIRTY_SECOND,
    "thirty-second": NoteType.THIRTY_SECOND,
    "32": NoteType.THIRTY_SECOND,
    "64th": NoteType.SIXTY_FOURTH,
    "sixty-fourth": NoteType.SIXTY_FOURTH,
    "64": NoteType.SIXTY_FOURTH,
}

# Checked in this order; the first present element wins.
_ARTICULATIONS: list[tuple[str, Articulation]] = [
    ("staccato", Articulation.STACCATO),
    ("accent", Articulation.ACCENT),
    ("tenuto", Articulation.TENUTO),
    ("staccatissimo", Articulation.STACCATISSIMO),
    ("strong-accent", Articulation.MARCATO),
    ("marcato", Articulation.MARCATO),
]


# ============================================================================
# Document loading (plain XML or MXL container)
# ============================================================================

def load_document(document: str | bytes | None) -> str | bytes | None:
    """Return the MusicXML payload of *document*, or None if there is none.

    ZIP input (``PK`` signature) is unpacked; text input is stripped.
    A string may carry ZIP bytes one-per-character (a "binary string").
    """
    if document is None:
        return None

    if isinstance(document, str):
        if document[:2] == "PK":
            try:
                raw = document.encode("latin-1")
            except UnicodeEncodeError:
                logger.warning("Document looks like a ZIP but is not a binary string")
                return None
            return _extract_from_container(raw)
        text = document.strip()
        if not text:
            return None
        if text.startswith("%PDF"):
            logger.warning("Document is a PDF, not MusicXML")
            return None
        return text

    if isinstance(document, (bytes, bytearray)):
        data = bytes(document)
        if data[:2] == b"PK":
            return _extract_from_container(data)
        data = data.strip()
        if not data:
            return None
        if data.startswith(b"%PDF"):
            logger.warning("Document is a PDF, not MusicXML")
            return None
        return data

    logger.warning("Unsupported document type: %s", type(document).__name__)
    return None


def _extract_from_container(data: bytes, depth: int = 0) -> bytes | None:
    """Locate the score inside an MXL archive, unwrapping nested containers."""
    if depth > MAX_CONTAINER_NESTING:
        logger.warning("MXL containers nested deeper than %d levels", MAX_CONTAINER_NESTING)
        return None
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = archive.namelist()
            member = _resolve_container_member(archive, names)
            if member is None:
                logger.warning("No score found in MXL container (members: %s)", names)
                return None
            payload = archive.read(member)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, RuntimeError, OSError) as exc:
        logger.warning("Unreadable MXL container: %s", exc)
        return None

    if member == NESTED_CONTAINER_NAME:
        return _extract_from_container(payload, depth + 1)
    return payload


def _resolve_container_member(archive: zipfile.ZipFile, names: list[str]) -> str | None:
    # 1. Manifest
    if CONTAINER_MANIFEST in names:
        try:
            manifest = ET.fromstring(archive.read(CONTAINER_MANIFEST))
        except ET.ParseError as exc:
            logger.warning("Malformed container manifest: %s", exc)
        else:
            for el in _iter_local(manifest, "rootfile"):
                full_path = el.get("full-path")
                if full_path and full_path in names:
                    return full_path
                break

    # 2. Conventional names
    if FALLBACK_SCORE_NAME in names:
        return FALLBACK_SCORE_NAME
    if NESTED_CONTAINER_NAME in names:
        return NESTED_CONTAINER_NAME

    # 3. First XML member outside META-INF
    for name in names:
        if name.endswith(".xml") and not name.startswith("META-INF/"):
            return name
    return None


# ============================================================================
# Note extraction
# ============================================================================

def parse_notes(document: str | bytes | None) -> list[NoteEvent]:
    """Parse a notation document into note events in document order.

    Rests advance the position cursor but produce no event.
    Never raises; unreadable input returns ``[]``.
    """
    try:
        payload = load_document(document)
        if payload is None:
            return []
        root = ET.fromstring(payload)
        return _extract_notes(root)
    except ET.ParseError as exc:
        logger.warning("MusicXML parsing error: %s", exc)
        return []
    except Exception as exc:
        logger.warning("Unexpected error parsing MusicXML: %s", exc)
        return []


def _extract_notes(root: ET.Element) -> list[NoteEvent]:
    attributes = _first_measure_attributes(root)
    divisions = _read_divisions(attributes)
    fifths = _read_key_fifths(attributes)
    octave_change = _read_octave_change(root, attributes)
    notes: list[NoteEvent] = []
    position = Fraction(0)

    for note_el in _iter_local(root, "note"):
        duration = _read_fraction(_child(note_el, "duration"), DEFAULT_DURATION)
        pitch_el = _child(note_el, "pitch")

        if pitch_el is not None:
            note = _build_note(note_el, pitch_el, duration, position, fifths, octave_change)
            if note is not None:
                notes.append(note)

        position += duration / divisions

    logger.debug("Parsed %d notes (divisions=%d, fifths=%d, octave-change=%d)",
                 len(notes), divisions, fifths, octave_change)
    return notes


def _build_note(
    note_el: ET.Element,
    pitch_el: ET.Element,
    duration: Fraction,
    position: Fraction,
    fifths: int = 0,
    octave_change: int = 0,
) -> NoteEvent | None:
    step_text = _text(_child(pitch_el, "step")).upper()
    try:
        step = Step(step_text)
    except ValueError:
        logger.warning("Skipping note with invalid step %r at beat %s", step_text, position)
        return None

    tie_start, tie_end = _read_ties(note_el)
    slur_start, slur_end = _read_slurs(note_el)

    return NoteEvent(
        step=step,
        octave=_read_int(_child(pitch_el, "octave"), DEFAULT_OCTAVE) + octave_change,
        alter=_read_alter(pitch_el, step, fifths),
        duration=duration,
        type=_read_type(_child(note_el, "type")),
        position=position,
        tie_start=tie_start,
        tie_end=tie_end,
        slur_start=slur_start,
        slur_end=slur_end,
        articulation=_read_articulation(note_el),
    )


def _first_measure_attributes(root: ET.Element) -> ET.Element | None:
    first_measure = next(_iter_local(root, "measure"), None)
    if first_measure is None:
        return None
    return next(_iter_local(first_measure, "attributes"), None)


def _read_divisions(attributes: ET.Element | None) -> int:
    """Divisions per quarter note from the first measure's attributes."""
    if attributes is None:
        return DEFAULT_DIVISIONS
    divisions = _read_int(next(_iter_local(attributes, "divisions"), None), DEFAULT_DIVISIONS)
    return divisions if divisions > 0 else DEFAULT_DIVISIONS


def _read_key_fifths(attributes: ET.Element | None) -> int:
    if attributes is None:
        return 0
    key_el = _child(attributes, "key")
    if key_el is None:
        return 0
    return _read_int(_child(key_el, "fifths"), 0)


def _read_octave_change(root: ET.Element, attributes: ET.Element | None) -> int:
    """Octaves added to every written pitch.

    Sums ``<transpose><octave-change>`` from the first measure's attributes
    and from the ``<score-part>`` entry of the first part.
    """
    change = 0
    if attributes is not None:
        change += _transpose_octave_change(_child(attributes, "transpose"))

    first_part = next(_iter_local(root, "part"), None)
    part_id = first_part.get("id") if first_part is not None else None
    if part_id:
        for score_part in _iter_local(root, "score-part"):
            if score_part.get("id") == part_id:
                change += _transpose_octave_change(_child(score_part, "transpose"))
                break
    return change


def _transpose_octave_change(transpose_el: ET.Element | None) -> int:
    if transpose_el is None:
        return 0
    return _read_int(_child(transpose_el, "octave-change"), 0)


def _read_alter(pitch_el: ET.Element, step: Step, fifths: int) -> int:
    """Explicit ``<alter>`` wins (0 is a natural); otherwise the key signature's."""
    alter_el = _child(pitch_el, "alter")
    if alter_el is not None:
        return _read_int(alter_el, 0)
    return key_signature_accidental(step, fifths)


def key_signature_accidental(step: Step, fifths: int) -> int:
    """Alteration the key signature with *fifths* implies for *step*."""
    if fifths > 0 and step.value in _SHARP_ORDER[:fifths]:
        return 1
    if fifths < 0 and step.value in _FLAT_ORDER[:-fifths]:
        return -1
    return 0


def _read_type(el: ET.Element | None) -> NoteType:
    return _TYPE_ALIASES.get(_text(el).lower(), NoteType.QUARTER)


def _read_ties(note_el: ET.Element) -> tuple[bool, bool]:
    start = end = False
    # <tie> sits on the note, <tied> under <notations>
    for el in list(_children(note_el, "tie")) + _notations_children(note_el, "tied"):
        kind = el.get("type")
        if kind == "start":
            start = True
        elif kind == "stop":
            end = True
    return start, end


def _read_slurs(note_el: ET.Element) -> tuple[bool, bool]:
    start = end = False
    for el in _notations_children(note_el, "slur"):
        kind = el.get("type")
        if kind == "start":
            start = True
        elif kind == "stop":
            end = True
    return start, end


def _read_articulation(note_el: ET.Element) -> Articulation | None:
    for notations in _children(note_el, "notations"):
        for articulations in _children(notations, "articulations"):
            present = {_local(child.tag) for child in articulations}
            for tag, articulation in _ARTICULATIONS:
                if tag in present:
                    return articulation
    return None


# ============================================================================
# Namespace-agnostic element helpers
# ============================================================================

def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _iter_local(el: ET.Element, name: str) -> Iterator[ET.Element]:
    return (e for e in el.iter() if _local(e.tag) == name)


def _children(el: ET.Element, name: str) -> Iterator[ET.Element]:
    return (c for c in el if _local(c.tag) == name)


def _child(el: ET.Element, name: str) -> ET.Element | None:
    return next(_children(el, name), None)


def _notations_children(note_el: ET.Element, name: str) -> list[ET.Element]:
    return [
        c
        for notations in _children(note_el, "notations")
        for c in _children(notations, name)
    ]


def _text(el: ET.Element | None) -> str:
    if el is None or el.text is None:
        return ""
    return el.text.strip()


def _read_int(el: ET.Element | None, default: int) -> int:
    text = _text(el)
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        try:
            return int(float(text))
        except ValueError:
            return default


def _read_fraction(el: ET.Element | None, default: Fraction) -> Fraction:
    text = _text(el)
    if not text:
        return default
    try:
        value = Fraction(text)
    except (ValueError, ZeroDivisionError):
        return default
    return value if value >= 0 else default
