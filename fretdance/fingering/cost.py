"""
Movement cost between consecutive hand shapes.

Costs are physical where possible: fingertip travel is measured in cm on
the real fret spacing, so a shift of two frets near the nut costs more than
the same shift high up the neck.

Usage:
    from fretdance.fingering.cost import MovementCostModel

    model = MovementCostModel(fretboard, config.optimizer.weights)
    cost, movement = model.transition_cost(prev_state, state, PassageKind.MELODIC)
"""

import numpy as np
from typing import Dict, Iterable, Tuple

from .hand_state import HandState, PassageKind
from ..guitar.fretboard import Fretboard
from ..utils.config import CostWeights


class MovementCostModel:
    """
    Weighted transition cost. Lower is better.

    Terms:
    - movement: fingertip travel in cm, summed over fretting fingers
    - position_shift: palm shift in frets
    - string_change: fingers pressed in both shapes that changed string
    - finger_reuse: fingers re-planted elsewhere between consecutive notes
    - lift: per pressed finger when the hand moves or a pressed finger moves
    - open_string_bonus: subtracted per open string
    - slide_bonus: subtracted when a slide keeps finger and string
    """

    def __init__(self, fretboard: Fretboard, weights: CostWeights = None):
        self.fretboard = fretboard
        self.weights = weights or CostWeights()
        self._points: Dict[HandState, np.ndarray] = {}

    def placement_points(self, state: HandState) -> np.ndarray:
        """(fingers, 2) array of fingertip (x, y) in cm."""
        points = self._points.get(state)
        if points is None:
            points = self._points.setdefault(state, self._compute_points(state))
        return points

    @property
    def cache_size(self) -> int:
        return len(self._points)

    def clear_cache(self) -> None:
        self._points.clear()

    def retain(self, states: Iterable[HandState]) -> None:
        """Drop cached points for every shape not in `states`."""
        keep = set(states)
        for state in [s for s in self._points if s not in keep]:
            del self._points[state]

    def _compute_points(self, state: HandState) -> np.ndarray:
        placements = state.placements()
        return np.array(
            [
                [self.fretboard.position_x(p.fret), self.fretboard.string_y(p.string)]
                for p in placements
            ],
            dtype=float
        ).reshape(len(placements), 2)

    def transition_cost(
        self,
        prev: HandState,
        curr: HandState,
        kind: PassageKind = PassageKind.MELODIC
    ) -> Tuple[float, float]:
        """
        Cost of moving from `prev` to `curr`.

        Returns:
            (weighted cost, fingertip travel in cm)
        """
        w = self.weights
        movement = 0.0
        cost = 0.0

        prev_points = self.placement_points(prev)
        curr_points = self.placement_points(curr)
        if len(prev_points) and len(curr_points):
            movement = float(np.linalg.norm(curr_points - prev_points, axis=1).sum())
            cost += w.movement * movement

        if prev.hand_position is not None and curr.hand_position is not None:
            shift = abs(curr.hand_position - prev.hand_position)
            cost += w.position_shift * shift
            if shift:
                cost += w.lift * len(prev.fretted)

        prev_pressed = prev.pressed_fingers()
        curr_pressed = curr.pressed_fingers()

        for finger, group in curr_pressed.items():
            if finger not in prev_pressed:
                continue
            before = prev_pressed[finger]
            same_string = before[0].string == group[0].string
            same_fret = before[0].fret == group[0].fret

            if not same_string:
                cost += w.string_change
            if same_string and same_fret:
                continue

            cost += w.lift
            if kind is PassageKind.SLIDE and same_string:
                cost -= w.slide_bonus
            elif kind is not PassageKind.CHORDAL:
                cost += w.finger_reuse

        cost -= w.open_string_bonus * len(curr.open_strings)

        return cost, movement

