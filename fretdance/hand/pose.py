"""
Hand Pose Geometry

Turns a HandState into point coordinates: the palm plus the four fretting
fingertips, in cm. x runs along the neck from the nut, y across the strings
from string 0, z is the height above the fretboard.

Usage:
    from fretdance.hand.pose import PoseBuilder

    builder = PoseBuilder(fretboard, config.motion)
    pose = builder.pose(state, contact='press')  # (5, 3)
"""

import numpy as np
from typing import List, Optional, Sequence

from ..fingering.hand_state import HandState
from ..guitar.fretboard import Fretboard
from ..utils.config import MotionConfig


CONTACTS = ('press', 'hover', 'idle')


class PoseBuilder:
    """Maps hand states to (5, 3) pose arrays."""

    # Row index of each tracked point
    POINT_NAMES = {
        0: 'palm',
        1: 'index',
        2: 'middle',
        3: 'ring',
        4: 'pinky'
    }

    NUM_POINTS = 5

    def __init__(self, fretboard: Fretboard, config: Optional[MotionConfig] = None):
        """
        Args:
            fretboard: Geometry provider
            config: Motion configuration (heights and palm offset)
        """
        self.fretboard = fretboard
        self.config = config or MotionConfig()

    def pose(self, state: HandState, contact: str = 'press') -> np.ndarray:
        """
        Build the pose for a state.

        Args:
            state: HandState with a resolved hand_position
            contact: 'press' (pressed fingers down, others hovering),
                     'hover' (all fingers at press_height) or
                     'idle' (all fingers at idle_height)

        Returns:
            Read-only array of shape (5, 3)
        """
        if contact not in CONTACTS:
            raise ValueError(f"Unknown contact '{contact}', expected one of {CONTACTS}")
        if state.hand_position is None:
            raise ValueError("Hand position must be resolved before building a pose")

        cfg = self.config
        pose = np.zeros((self.NUM_POINTS, 3))

        # Palm sits behind the neck, centred under the fretting window
        centre = state.hand_position + (state.fretting_fingers - 1) / 2.0
        pose[0] = [
            self.fretboard.position_x(centre),
            self.fretboard.string_y(self.fretboard.num_strings - 1) + cfg.palm_offset,
            cfg.palm_height
        ]

        if contact == 'idle':
            height = cfg.idle_height
        else:
            height = cfg.press_height

        for placement in state.placements():
            z = 0.0 if (contact == 'press' and placement.pressed) else height
            pose[placement.finger] = [
                self.fretboard.position_x(placement.fret),
                self.fretboard.string_y(placement.string),
                z
            ]

        # Fingers beyond fretting_fingers stay curled at the palm
        for finger in range(state.fretting_fingers + 1, self.NUM_POINTS):
            pose[finger] = pose[0]

        pose.flags.writeable = False
        return pose

    def resolve_positions(
        self,
        states: Sequence[HandState],
        default_position: int = 1
    ) -> List[HandState]:
        """
        Fill in hand positions for open-string-only states.

        Such a state keeps the hand where it was; before the first fretted
        state it waits at the upcoming position, and with no fretted state
        at all it uses `default_position`.
        """
        resolved = list(states)
        known = [s.hand_position for s in states if s.hand_position is not None]
        current = known[0] if known else default_position

        for i, state in enumerate(resolved):
            if state.hand_position is None:
                resolved[i] = state.with_position(current)
            else:
                current = state.hand_position

        return resolved
