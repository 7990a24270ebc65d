"""
Candidate hand shapes for note groups.

For each group the cross product of per-pitch fret positions is expanded
into finger assignments, filtered by the playability model and the hand
constraints, de-duplicated and capped.

Usage:
    from fretdance.fingering.candidates import CandidateGenerator

    generator = CandidateGenerator(fretboard)
    shapes = generator.generate([48, 52, 55], onset=0.0)
"""

import itertools
from typing import List, Optional, Sequence

from .constraints import HandConstraints
from .hand_state import FingerAssignment, HandState, PassageKind
from ..data.notes import NoteGroup
from ..errors import InfeasibleSpan
from ..guitar.fretboard import Fretboard, FretPosition
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


class CandidateGenerator:
    """Enumerates feasible hand shapes for a set of simultaneous pitches."""

    def __init__(
        self,
        fretboard: Fretboard,
        constraints: Optional[HandConstraints] = None,
        max_candidates: int = 256
    ):
        """
        Args:
            fretboard: Playability model
            constraints: Anatomical rules (default: from the instrument config)
            max_candidates: Cap on shapes kept per group
        """
        self.fretboard = fretboard
        self.constraints = constraints or HandConstraints.from_instrument(fretboard.config)
        self.max_candidates = max_candidates

    def generate(self, pitches: Sequence[int], onset: float = 0.0) -> List[HandState]:
        """
        Feasible hand shapes for one group, lowest hand position first.

        Args:
            pitches: Pitches sounding together
            onset: Group onset, used in error messages

        Returns:
            Non-empty list of HandState

        Raises:
            UnplayablePitch: If a pitch has no position at all
            InfeasibleSpan: If no combination fits the hand
        """
        per_pitch = [self.fretboard.candidate_positions(p) for p in pitches]
        max_span = self.fretboard.config.max_span

        shapes = {}
        for positions in itertools.product(*per_pitch):
            strings = [p.string for p in positions]
            if len(set(strings)) != len(strings):
                continue

            fretted_frets = [p.fret for p in positions if not p.is_open]
            if fretted_frets and max(fretted_frets) - min(fretted_frets) > max_span:
                continue

            for assignments in self._finger_assignments(pitches, positions):
                if not self.fretboard.is_feasible(assignments):
                    continue
                is_valid, _ = self.constraints.is_valid_shape(assignments)
                if not is_valid:
                    continue

                state = HandState.from_assignments(
                    assignments,
                    rest_string=self.fretboard.rest_string,
                    fretting_fingers=self.fretboard.config.fretting_fingers
                )
                shapes.setdefault(state.sort_key(), state)

        if not shapes:
            raise InfeasibleSpan(pitches, onset)

        ordered = [shapes[key] for key in sorted(shapes)]
        if len(ordered) > self.max_candidates:
            logger.debug(
                f"Capping {len(ordered)} shapes to {self.max_candidates} at {onset:.3f}s"
            )
            ordered = ordered[:self.max_candidates]

        return ordered

    def _finger_assignments(
        self,
        pitches: Sequence[int],
        positions: Sequence[FretPosition]
    ):
        """
        Yield finger assignments for one position combination.

        Fretted notes are ordered along the neck (and from the bass side
        within a fret), so non-decreasing finger tuples keep finger order.
        """
        opened = []
        fretted = []
        for pitch, position in zip(pitches, positions):
            if position.is_open:
                opened.append(FingerAssignment(0, position, pitch))
            else:
                fretted.append((position, pitch))

        fretted.sort(key=lambda item: (item[0].fret, -item[0].string))
        num_fingers = self.fretboard.config.fretting_fingers

        if not fretted:
            yield tuple(opened)
            return

        for fingers in itertools.combinations_with_replacement(
            range(1, num_fingers + 1), len(fretted)
        ):
            yield tuple(opened) + tuple(
                FingerAssignment(finger, position, pitch)
                for finger, (position, pitch) in zip(fingers, fretted)
            )


def classify_passage(
    group: NoteGroup,
    previous: Optional[NoteGroup] = None,
    slide_max_gap: float = 0.05,
    slide_max_interval: int = 2
) -> PassageKind:
    """
    Select the fingering strategy for a group.

    Chords are CHORDAL. A single note that follows a single note almost
    without a gap and within a small interval is a SLIDE candidate.
    Everything else is MELODIC.
    """
    if len(group) > 1:
        return PassageKind.CHORDAL

    if previous is not None and len(previous) == 1:
        gap = group.onset - previous.end
        interval = abs(group.pitches[0] - previous.pitches[0])
        if gap <= slide_max_gap and 0 < interval <= slide_max_interval:
            return PassageKind.SLIDE

    return PassageKind.MELODIC
