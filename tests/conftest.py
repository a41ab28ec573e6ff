"""Shared fixtures: MusicXML builders, in-memory store, fake content."""

import io
import re
import zipfile

import pytest

from notegrade.config import GraderConfig
from notegrade.execution.orchestrator import GradingOrchestrator
from notegrade.storage.base import ContentFetcher, ContentUnavailableError
from notegrade.storage.memory import InMemoryStore

_PITCH = re.compile(r"^([A-G])(#|b|n)?(-?\d+)$")


def note_xml(pitch: str, duration: int = 1, note_type: str = "quarter", inner: str = "") -> str:
    """One <note>; pitch like "C4", "F#3", "Bb5", "Fn4" (explicit natural) or "R" for a rest."""
    if pitch == "R":
        body = "<rest/>"
    else:
        m = _PITCH.match(pitch)
        assert m, pitch
        step, accidental, octave = m.groups()
        alter = {"#": "<alter>1</alter>", "b": "<alter>-1</alter>", "n": "<alter>0</alter>"}.get(accidental or "", "")
        body = f"<pitch><step>{step}</step>{alter}<octave>{octave}</octave></pitch>"
    return (
        f"<note>{body}<duration>{duration}</duration>"
        f"<type>{note_type}</type>{inner}</note>"
    )


def build_score(notes, divisions: int = 1, attributes: str = "", score_part: str = "") -> str:
    """Single-part MusicXML.  *notes* holds pitch strings, ``(pitch, duration)``
    tuples, or ready-made ``<note>`` strings.  *attributes* and *score_part*
    are extra XML placed in the first measure's ``<attributes>`` and in the
    part's ``<score-part>``."""
    body = []
    for n in notes:
        if isinstance(n, tuple):
            body.append(note_xml(*n))
        elif n.startswith("<"):
            body.append(n)
        else:
            body.append(note_xml(n, divisions))
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<score-partwise version="3.1"><part-list><score-part id="P1">'
        f"<part-name>Music</part-name>{score_part}</score-part></part-list>"
        '<part id="P1"><measure number="1">'
        f"<attributes><divisions>{divisions}</divisions>{attributes}</attributes>"
        + "".join(body)
        + "</measure></part></score-partwise>"
    )


def build_mxl(members: dict[str, str | bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeFetcher(ContentFetcher):
    """Serves ``{(bucket, path): bytes}``; everything else is unavailable."""

    def __init__(self, files: dict[tuple[str, str], bytes | str] | None = None):
        self.files = dict(files or {})
        self.calls: list[tuple[str, str]] = []

    def fetch(self, bucket: str, path: str) -> bytes:
        self.calls.append((bucket, path))
        try:
            data = self.files[(bucket, path)]
        except KeyError:
            raise ContentUnavailableError(f"{bucket}/{path} not found") from None
        return data.encode() if isinstance(data, str) else data


@pytest.fixture
def three_notes() -> str:
    return build_score(["C4", "E4", "G4"])


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def orchestrator(store, fetcher):
    orch = GradingOrchestrator(store, fetcher, GraderConfig(max_parallel=4))
    yield orch
    orch.close()
