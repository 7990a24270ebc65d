"""
Fretboard Playability Model

Answers two questions about the instrument: which (string, fret) positions
sound a pitch, and whether a set of simultaneous finger placements can be
held by one hand. Also provides the physical fretboard geometry used by the
cost model and the pose builder.

Strings are indexed from the highest-pitched string (0) to the lowest.

Usage:
    from fretdance.guitar.fretboard import Fretboard

    fretboard = Fretboard(config.instrument)
    positions = fretboard.candidate_positions(60)  # C4
"""

import numpy as np
from typing import Dict, Iterable, List, Tuple
from dataclasses import dataclass

from ..errors import UnplayablePitch
from ..utils.config import InstrumentConfig


@dataclass(frozen=True, order=True)
class FretPosition:
    """A (string, fret) pair; fret 0 is the open (or capoed) string."""
    string: int
    fret: int

    @property
    def is_open(self) -> bool:
        return self.fret == 0


class Fretboard:
    """
    Playability model for a fretted instrument.

    Positions for every reachable pitch are pre-computed once, so candidate
    lookups during the search are dictionary reads.
    """

    # Finger contact point as a fraction of the way from the previous fret
    # wire to the fret itself
    CONTACT_RATIO = 0.75

    def __init__(self, config: InstrumentConfig = None):
        """
        Args:
            config: Instrument configuration (standard guitar if None)
        """
        self.config = config or InstrumentConfig()
        self.config.validate()

        # Frets are counted from the capo, so open pitches move up with it
        self.open_pitches = tuple(p + self.config.capo for p in self.config.tuning)
        self._positions: Dict[int, List[FretPosition]] = {}
        self._build_positions()

        # Distance from the nut (or capo) to each fret wire, in cm
        frets = np.arange(self.max_fret + 1)
        nut = self._scale_x(self.config.capo)
        self._fret_x = self._scale_x(frets + self.config.capo) - nut

    def _scale_x(self, fret):
        return self.config.scale_length_cm * (1.0 - 2.0 ** (-np.asarray(fret, dtype=float) / 12.0))

    def _build_positions(self):
        """Pre-compute positions for all reachable pitches."""
        for string, open_pitch in enumerate(self.open_pitches):
            for fret in range(self.string_fret_limit(string) + 1):
                pitch = open_pitch + fret
                self._positions.setdefault(pitch, []).append(FretPosition(string, fret))

        for positions in self._positions.values():
            positions.sort(key=lambda p: (p.fret, p.string))

    @property
    def num_strings(self) -> int:
        return self.config.num_strings

    @property
    def max_fret(self) -> int:
        return self.config.max_fret

    @property
    def pitch_range(self) -> Tuple[int, int]:
        """Lowest and highest playable pitch."""
        return min(self._positions), max(self._positions)

    @property
    def rest_string(self) -> int:
        """String that idle fingers hover over (middle of the neck)."""
        return (self.num_strings - 1) // 2

    def string_fret_limit(self, string: int) -> int:
        """Highest usable fret on a string."""
        limit = self.max_fret
        bass_limit = self.config.bass_fret_limit
        if bass_limit is not None and string > self.config.bass_string_index:
            limit = min(limit, bass_limit)
        return limit

    def pitch_of(self, position: FretPosition) -> int:
        """Sounding pitch of a position."""
        return self.open_pitches[position.string] + position.fret

    def is_playable(self, pitch: int) -> bool:
        return pitch in self._positions

    def candidate_positions(self, pitch: int, strict: bool = True) -> List[FretPosition]:
        """
        Every position that sounds `pitch`, ordered by (fret, string).

        Args:
            pitch: MIDI pitch
            strict: Raise instead of returning an empty list

        Returns:
            List of FretPosition

        Raises:
            UnplayablePitch: If no position exists and strict is True
        """
        positions = self._positions.get(pitch)
        if not positions:
            if strict:
                raise UnplayablePitch(pitch)
            return []
        return list(positions)

    def is_feasible(self, assignments: Iterable) -> bool:
        """
        Check whether simultaneous finger placements fit one hand.

        Each assignment needs `finger` (0 for an open string) and `position`.
        True iff no two assignments share a string, finger ids are valid,
        a finger spanning several strings stays on one fret and the fret
        distance between fretting fingers is within max_span.
        """
        strings = set()
        finger_frets: Dict[int, int] = {}
        finger_strings: Dict[int, int] = {}

        for assignment in assignments:
            finger = assignment.finger
            position = assignment.position

            if position.string in strings:
                return False
            strings.add(position.string)

            if not 0 <= position.fret <= self.string_fret_limit(position.string):
                return False
            if not 0 <= finger <= self.config.fretting_fingers:
                return False
            if (finger == 0) != (position.fret == 0):
                return False
            if finger == 0:
                continue

            if finger in finger_frets and finger_frets[finger] != position.fret:
                return False
            finger_frets[finger] = position.fret
            finger_strings[finger] = finger_strings.get(finger, 0) + 1

        if not self.config.allow_barre and any(n > 1 for n in finger_strings.values()):
            return False

        if finger_frets:
            frets = finger_frets.values()
            if max(frets) - min(frets) > self.config.max_span:
                return False

        return True

    def fret_x(self, fret: int) -> float:
        """Distance of a fret wire from the nut in cm."""
        return float(self._fret_x[fret])

    def position_x(self, fret: float) -> float:
        """
        Where a fingertip presses for `fret`, in cm from the nut.

        Fractional frets are interpolated so hovering hands can sit between
        positions.
        """
        if fret <= 0:
            return 0.0
        low = int(np.floor(fret))
        frac = fret - low
        x_low = self._contact_x(low)
        if frac == 0 or low >= self.max_fret:
            return x_low
        return (1 - frac) * x_low + frac * self._contact_x(low + 1)

    def _contact_x(self, fret: int) -> float:
        fret = min(max(fret, 0), self.max_fret)
        if fret == 0:
            return 0.0
        previous = self._fret_x[fret - 1]
        return float(previous + self.CONTACT_RATIO * (self._fret_x[fret] - previous))

    def string_y(self, string: float) -> float:
        """Offset of a string across the neck in cm (string 0 at 0)."""
        return float(string) * self.config.string_spacing_cm

    def __repr__(self) -> str:
        return (
            f"Fretboard(strings={self.num_strings}, frets={self.max_fret}, "
            f"capo={self.config.capo}, span={self.config.max_span})"
        )
