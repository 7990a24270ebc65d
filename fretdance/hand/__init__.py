"""Hand pose geometry and motion synthesis."""

from .pose import PoseBuilder
from .motion import MotionSynthesizer, Keyframe, KeyframeKind, Trajectory, EASES

__all__ = [
    "PoseBuilder",
    "MotionSynthesizer",
    "Keyframe",
    "KeyframeKind",
    "Trajectory",
    "EASES",
]
