"""
Anatomical Constraints for Guitar Fingering

Rules for the fretting hand beyond the raw span limit: finger order along
the neck, per-pair stretch limits and barre shapes.

Usage:
    from fretdance.fingering.constraints import HandConstraints

    constraints = HandConstraints.from_instrument(config.instrument)
    is_valid, reason = constraints.is_valid_shape(assignments)
"""

from typing import List, Tuple, Optional, Sequence
from dataclasses import dataclass

from .hand_state import FingerAssignment, HandState


@dataclass
class ConstraintViolation:
    """Record of a constraint violation."""
    step_idx: int
    constraint_type: str
    description: str
    severity: float  # 0-1, higher is worse


class HandConstraints:
    """
    Validates simultaneous finger placements on the fretboard.

    Constraints include:
    - Lower fingers sit at lower or equal frets than higher fingers
    - Maximum stretch between each pair of fingers
    - Only the index finger may barre more than two strings
    - No open string under a barre
    """

    # Maximum comfortable stretch in frets between fingers (1 = index)
    MAX_STRETCH = {
        (1, 2): 2,
        (1, 3): 3,
        (1, 4): 4,
        (2, 3): 2,
        (2, 4): 3,
        (3, 4): 2,
    }

    SKILL_MULTIPLIERS = {
        'beginner': 0.75,
        'intermediate': 1.0,
        'advanced': 1.25
    }

    def __init__(
        self,
        skill_level: str = 'intermediate',
        allow_barre: bool = True,
        max_span: int = 4
    ):
        """
        Args:
            skill_level: 'beginner', 'intermediate', or 'advanced'
            allow_barre: If False, every finger presses exactly one string
            max_span: Index-to-pinky reach in frets; the other pair
                limits scale with it
        """
        self.skill_level = skill_level
        self.allow_barre = allow_barre
        self.max_span = max_span

        # Adjust stretch limits based on skill level and configured span
        self.stretch_multiplier = self.SKILL_MULTIPLIERS.get(skill_level, 1.0)
        self.span_scale = max_span / self.MAX_STRETCH[(1, 4)]

    @classmethod
    def from_instrument(cls, config) -> 'HandConstraints':
        """Build constraints from an InstrumentConfig."""
        return cls(
            skill_level=config.skill_level,
            allow_barre=config.allow_barre,
            max_span=config.max_span
        )

    def get_max_stretch(self, finger1: int, finger2: int) -> int:
        """Get maximum stretch in frets between two fingers."""
        key = tuple(sorted([finger1, finger2]))
        base_stretch = self.MAX_STRETCH.get(key, 4)
        return max(1, int(round(base_stretch * self.span_scale * self.stretch_multiplier)))

    def is_valid_shape(
        self,
        assignments: Sequence[FingerAssignment]
    ) -> Tuple[bool, Optional[str]]:
        """
        Check a set of simultaneous assignments.

        Returns:
            (is_valid, reason) tuple
        """
        fretted = [a for a in assignments if not a.is_open]
        open_strings = {a.string for a in assignments if a.is_open}

        by_finger = {}
        for a in fretted:
            by_finger.setdefault(a.finger, []).append(a)

        fingers = sorted(by_finger)
        for i, f1 in enumerate(fingers):
            fret1 = by_finger[f1][0].fret
            for f2 in fingers[i + 1:]:
                fret2 = by_finger[f2][0].fret
                if fret2 < fret1:
                    return False, f"Finger {f2} behind finger {f1}"
                if fret2 - fret1 > self.get_max_stretch(f1, f2):
                    return False, f"Stretch too large between fingers {f1} and {f2}"

        for finger, group in by_finger.items():
            if len(group) == 1:
                continue
            if not self.allow_barre:
                return False, f"Finger {finger} covers several strings"

            strings = sorted(a.string for a in group)
            if finger != 1:
                # Partial barre with the other fingers: two neighbouring strings
                if len(strings) > 2 or strings[-1] - strings[0] != 1:
                    return False, f"Finger {finger} cannot barre strings {strings}"

            covered = set(range(strings[0], strings[-1] + 1))
            if covered & open_strings:
                return False, f"Open string under the barre of finger {finger}"

            # Other fingers under a barre must sit above its fret
            barre_fret = group[0].fret
            for other in fretted:
                if other.finger != finger and other.string in covered and other.fret <= barre_fret:
                    return False, f"Finger {other.finger} inside barre of finger {finger}"

        return True, None

    def validate_sequence(
        self,
        states: Sequence[HandState],
        max_span: int
    ) -> List[ConstraintViolation]:
        """
        Validate a sequence of committed hand states.

        Args:
            states: Committed hand states in time order
            max_span: Configured span limit in frets

        Returns:
            List of constraint violations
        """
        violations = []

        for i, state in enumerate(states):
            if state.span > max_span:
                violations.append(ConstraintViolation(
                    step_idx=i,
                    constraint_type='span',
                    description=f"Span {state.span} exceeds {max_span}",
                    severity=self._compute_severity(state.span, max_span)
                ))

            is_valid, reason = self.is_valid_shape(state.assignments)
            if not is_valid:
                violations.append(ConstraintViolation(
                    step_idx=i,
                    constraint_type='shape',
                    description=reason,
                    severity=1.0
                ))

        return violations

    def _compute_severity(self, span: int, max_span: int) -> float:
        """Severity increases with excess stretch."""
        excess = span - max_span
        if excess <= 0:
            return 0.0
        return min(1.0, excess / 4)
