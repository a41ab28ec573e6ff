"""Transposing-instrument table.

Used to derive the semitone offset for transposition exercises
("rewrite this piano part for Clarinet in Bb").  Values are semitones
from concert pitch to written pitch.
"""

from __future__ import annotations

INSTRUMENT_TRANSPOSITIONS: dict[str, int] = {
    "Piano": 0,
    "Clarinet in Bb": -2,
    "Horn in F": 7,
    "Trumpet in Bb": -2,
    "Alto Saxophone": -9,
    "Tenor Saxophone": -14,
    "French Horn": 7,
    "Trombone": 0,
    "Violin": 0,
    "Viola": 0,
    "Cello": 0,
    "Double Bass": 0,
}


def transposition_semitones(source: str, target: str) -> int:
    """Semitones to shift a *source* part so it reads correctly for *target*.

    Raises:
        KeyError: if either instrument is unknown.
    """
    try:
        return INSTRUMENT_TRANSPOSITIONS[target] - INSTRUMENT_TRANSPOSITIONS[source]
    except KeyError as exc:
        known = ", ".join(sorted(INSTRUMENT_TRANSPOSITIONS))
        raise KeyError(f"Unknown instrument: {exc.args[0]!r}. Known: {known}") from None
