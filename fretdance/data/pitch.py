"""
Pitch naming helpers.

Uses scientific pitch notation with MIDI numbering (C4 = 60, E2 = 40).
"""

import re

from ..errors import MalformedInput


NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']

_NOTE_OFFSETS = {'C': 0, 'D': 2, 'E': 4, 'F': 5, 'G': 7, 'A': 9, 'B': 11}
_NAME_PATTERN = re.compile(r'^([A-Ga-g])([#b]?)(-?\d+)$')


def pitch_to_note_name(pitch: int) -> str:
    """Get note name (e.g., 'C4', 'A#3') from a MIDI pitch."""
    octave = (pitch // 12) - 1
    return f"{NOTE_NAMES[pitch % 12]}{octave}"


def note_name_to_pitch(name: str) -> int:
    """
    Parse a note name such as 'E2', 'F#3' or 'Bb1' into a MIDI pitch.

    Raises:
        MalformedInput: If the name cannot be parsed
    """
    match = _NAME_PATTERN.match(name.strip())
    if match is None:
        raise MalformedInput(f"Invalid note name: '{name}'")

    letter, accidental, octave = match.groups()
    pitch = _NOTE_OFFSETS[letter.upper()] + (int(octave) + 1) * 12
    if accidental == '#':
        pitch += 1
    elif accidental == 'b':
        pitch -= 1
    return pitch
