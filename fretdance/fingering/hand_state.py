"""
Hand state value types shared by the optimizer, the motion synthesizer and
the recorder.

A HandState is built once per candidate and never changed afterwards.
"""

from enum import Enum
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from ..guitar.fretboard import FretPosition


class PassageKind(Enum):
    """Fingering strategy selected per note group."""
    MELODIC = 'melodic'
    CHORDAL = 'chordal'
    SLIDE = 'slide'


@dataclass(frozen=True)
class FingerAssignment:
    """One finger on one position; finger 0 marks an open string."""
    finger: int  # 0 (open), 1 = index ... 4 = pinky
    position: FretPosition
    pitch: int

    @property
    def string(self) -> int:
        return self.position.string

    @property
    def fret(self) -> int:
        return self.position.fret

    @property
    def is_open(self) -> bool:
        return self.finger == 0


@dataclass(frozen=True)
class FingerPlacement:
    """Where one fretting finger is, pressed or resting."""
    finger: int
    string: float  # mean string for a barre
    fret: int
    pressed: bool


@dataclass(frozen=True)
class HandState:
    """
    Active finger assignments plus the palm reference at one instant.

    hand_position is the fret under the index finger. It is None when only
    open strings sound, in which case the hand may stay wherever it is.
    """
    assignments: Tuple[FingerAssignment, ...]
    hand_position: Optional[int]
    rest_string: int = 2
    fretting_fingers: int = 4

    @classmethod
    def from_assignments(
        cls,
        assignments,
        rest_string: int = 2,
        fretting_fingers: int = 4
    ) -> 'HandState':
        """Build a state, deriving the hand position from the fretted notes."""
        ordered = tuple(sorted(assignments, key=lambda a: a.string))
        fretted = [a for a in ordered if not a.is_open]

        hand_position = None
        if fretted:
            lowest_fret = min(a.fret for a in fretted)
            lowest_finger = min(a.finger for a in fretted)
            hand_position = max(1, lowest_fret - (lowest_finger - 1))

        return cls(
            assignments=ordered,
            hand_position=hand_position,
            rest_string=rest_string,
            fretting_fingers=fretting_fingers
        )

    @classmethod
    def idle(cls, hand_position: int, rest_string: int = 2, fretting_fingers: int = 4) -> 'HandState':
        """Hand at a position with no finger down."""
        return cls(
            assignments=(),
            hand_position=hand_position,
            rest_string=rest_string,
            fretting_fingers=fretting_fingers
        )

    def with_position(self, hand_position: int) -> 'HandState':
        return replace(self, hand_position=hand_position)

    @property
    def fretted(self) -> Tuple[FingerAssignment, ...]:
        return tuple(a for a in self.assignments if not a.is_open)

    @property
    def open_strings(self) -> Tuple[int, ...]:
        return tuple(a.string for a in self.assignments if a.is_open)

    @property
    def pitches(self) -> Tuple[int, ...]:
        return tuple(sorted(a.pitch for a in self.assignments))

    @property
    def span(self) -> int:
        """Fret distance between the outermost fretting fingers."""
        frets = [a.fret for a in self.fretted]
        return max(frets) - min(frets) if frets else 0

    @property
    def is_empty(self) -> bool:
        return not self.assignments

    def pressed_fingers(self) -> Dict[int, List[FingerAssignment]]:
        """Assignments grouped by finger (several entries for a barre)."""
        fingers: Dict[int, List[FingerAssignment]] = {}
        for a in self.fretted:
            fingers.setdefault(a.finger, []).append(a)
        return fingers

    def placements(self) -> Tuple[FingerPlacement, ...]:
        """
        Placement of every fretting finger, pressed or not.

        Unused fingers rest one fret apart from the index, over the rest
        string. Returns an empty tuple when hand_position is None.
        """
        if self.hand_position is None:
            return ()

        pressed = self.pressed_fingers()
        result = []
        for finger in range(1, self.fretting_fingers + 1):
            if finger in pressed:
                group = pressed[finger]
                strings = [a.string for a in group]
                result.append(FingerPlacement(
                    finger=finger,
                    string=sum(strings) / len(strings),
                    fret=group[0].fret,
                    pressed=True
                ))
            else:
                result.append(FingerPlacement(
                    finger=finger,
                    string=float(self.rest_string),
                    fret=self.hand_position + finger - 1,
                    pressed=False
                ))
        return tuple(result)

    def sort_key(self) -> Tuple:
        """Deterministic ordering: position, frets, strings, fingers."""
        return (
            self.hand_position if self.hand_position is not None else 0,
            tuple(a.fret for a in self.assignments),
            tuple(a.string for a in self.assignments),
            tuple(a.finger for a in self.assignments),
        )

    def describe(self) -> str:
        """Compact text form, e.g. 'pos 3: s2f0(0) s4f3(1)'."""
        parts = [f"s{a.string}f{a.fret}({a.finger})" for a in self.assignments]
        position = self.hand_position if self.hand_position is not None else '-'
        return f"pos {position}: " + ' '.join(parts)
