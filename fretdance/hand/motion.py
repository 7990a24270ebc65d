"""
Hand Motion Synthesis

Turns committed hand shapes into a continuous, velocity-bounded trajectory
sampled at a fixed frame rate.

Pipeline:
1. Keyframes: READY / PRESS / HOLD per step, RELEASE + IDLE over long rests
2. Clamping: every keyframe moves at most max_velocity * dt / peak(ease)
   from its predecessor, so the eased curve never exceeds max_velocity
3. Sampling: each keyframe segment is eased independently and the frames
   are concatenated in order

Usage:
    from fretdance.hand.motion import MotionSynthesizer

    synthesizer = MotionSynthesizer(fretboard, config.motion)
    trajectory = synthesizer.synthesize(result.steps)
"""

import math
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .pose import PoseBuilder
from ..fingering.hand_state import HandState
from ..guitar.fretboard import Fretboard
from ..utils.config import MotionConfig
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


def ease_linear(u: np.ndarray) -> np.ndarray:
    return u


def ease_smoothstep(u: np.ndarray) -> np.ndarray:
    return u * u * (3.0 - 2.0 * u)


def ease_cosine(u: np.ndarray) -> np.ndarray:
    return 0.5 - 0.5 * np.cos(np.pi * u)


# name -> (curve, peak of d/du, peak of |d2/du2|)
# Linear has no finite acceleration; 4 is the bang-bang bound.
EASES: Dict[str, Tuple[Callable[[np.ndarray], np.ndarray], float, float]] = {
    'linear': (ease_linear, 1.0, 4.0),
    'smoothstep': (ease_smoothstep, 1.5, 6.0),
    'cosine': (ease_cosine, math.pi / 2.0, math.pi ** 2 / 2.0),
}


class KeyframeKind(Enum):
    """Role of a keyframe in the performance."""
    PRESS = 'press'
    HOLD = 'hold'
    RELEASE = 'release'
    IDLE = 'idle'
    READY = 'ready'


@dataclass(frozen=True, eq=False)
class Keyframe:
    """Timestamped pose anchored to a hand state."""
    time: float
    kind: KeyframeKind
    step_index: int
    state: HandState
    pose: np.ndarray  # (5, 3), read-only
    clamped: bool = False


@dataclass(frozen=True, eq=False)
class Trajectory:
    """Keyframes plus the frames sampled from them."""
    keyframes: Tuple[Keyframe, ...]
    frames: np.ndarray  # (N,) frame numbers
    times: np.ndarray  # (N,) seconds
    poses: np.ndarray  # (N, 5, 3)
    frame_steps: np.ndarray  # (N,) step index active at each frame
    fps: float

    @classmethod
    def empty(cls, fps: float) -> 'Trajectory':
        return cls(
            keyframes=(),
            frames=np.zeros(0, dtype=np.int64),
            times=np.zeros(0),
            poses=np.zeros((0, PoseBuilder.NUM_POINTS, 3)),
            frame_steps=np.zeros(0, dtype=np.int64),
            fps=fps
        )

    @property
    def is_empty(self) -> bool:
        return not self.keyframes

    @property
    def num_frames(self) -> int:
        return len(self.frames)

    @property
    def duration(self) -> float:
        if not self.keyframes:
            return 0.0
        return self.keyframes[-1].time - self.keyframes[0].time

    @property
    def num_clamped(self) -> int:
        return sum(1 for k in self.keyframes if k.clamped)

    def keyframe_groups(self) -> List[List[Keyframe]]:
        """Keyframes grouped by the step they belong to, in step order."""
        groups: Dict[int, List[Keyframe]] = {}
        for keyframe in self.keyframes:
            groups.setdefault(keyframe.step_index, []).append(keyframe)
        return [groups[i] for i in sorted(groups)]

    def keyframe_speeds(self) -> np.ndarray:
        """
        Highest point speed between consecutive keyframes (cm/s).

        A zero-length interval has speed 0 if nothing moved, inf otherwise.
        """
        speeds = []
        for a, b in zip(self.keyframes[:-1], self.keyframes[1:]):
            distance = float(np.linalg.norm(b.pose - a.pose, axis=1).max())
            dt = b.time - a.time
            if dt > 0:
                speeds.append(distance / dt)
            else:
                speeds.append(0.0 if distance == 0 else np.inf)
        return np.array(speeds)

    def frame_speeds(self) -> np.ndarray:
        """Highest point speed between consecutive frames (cm/s)."""
        if self.num_frames < 2:
            return np.zeros(0)
        step = np.diff(self.poses, axis=0)
        return np.linalg.norm(step, axis=2).max(axis=1) * self.fps


class MotionSynthesizer:
    """
    Builds and samples keyframes for a committed step sequence.

    Steps need `index`, `onset`, `end` and `state` (see CommittedStep).
    """

    def __init__(self, fretboard: Fretboard, config: Optional[MotionConfig] = None):
        """
        Args:
            fretboard: Geometry provider
            config: Motion configuration
        """
        self.fretboard = fretboard
        self.config = config or MotionConfig()
        self.config.validate()
        self.poses = PoseBuilder(fretboard, self.config)
        self.ease, self.velocity_peak, self.acceleration_peak = EASES[self.config.ease]

    def synthesize(self, steps: Sequence, default_position: int = 1) -> Trajectory:
        """
        Full synthesis: keyframes, clamping and sampling.

        Args:
            steps: Committed steps in time order
            default_position: Hand position when no step frets a note

        Returns:
            Trajectory (empty for no steps)
        """
        if not steps:
            logger.info("No steps to animate, returning empty trajectory")
            return Trajectory.empty(self.config.fps)

        keyframes = self.build_keyframes(steps, default_position)
        keyframes = self.clamp_keyframes(keyframes)
        frames, times, poses, frame_steps = self.sample(keyframes)

        trajectory = Trajectory(
            keyframes=tuple(keyframes),
            frames=frames,
            times=times,
            poses=poses,
            frame_steps=frame_steps,
            fps=self.config.fps
        )

        if trajectory.num_clamped:
            logger.warning(
                f"{trajectory.num_clamped} of {len(keyframes)} keyframes clamped "
                f"to {self.config.max_velocity} cm/s"
            )
        logger.info(
            f"Synthesized {len(keyframes)} keyframes, {trajectory.num_frames} frames "
            f"at {self.config.fps} fps"
        )
        return trajectory

    def build_keyframes(self, steps: Sequence, default_position: int = 1) -> List[Keyframe]:
        """
        Place keyframes for every step.

        The move towards a shape starts no earlier than the previous note's
        end (or the last moment that still reaches the onset) and no earlier
        than `lookahead` before the onset. Keyframes that would not advance
        time are skipped, except PRESS.
        """
        cfg = self.config
        states = self.poses.resolve_positions([s.state for s in steps], default_position)
        keyframes: List[Keyframe] = []

        def add(time: float, kind: KeyframeKind, step_index: int, state: HandState,
                contact: str, required: bool = False):
            if keyframes and time <= keyframes[-1].time:
                if not required:
                    return
                time = keyframes[-1].time
            keyframes.append(Keyframe(
                time=time,
                kind=kind,
                step_index=step_index,
                state=state,
                pose=self.poses.pose(state, contact)
            ))

        for i, step in enumerate(steps):
            state = states[i]
            onset = step.onset
            ready_time = onset - cfg.press_duration

            if i == 0:
                if ready_time >= 0:
                    add(ready_time, KeyframeKind.READY, i, state, 'hover')
            else:
                prev, prev_state = steps[i - 1], states[i - 1]

                if onset - prev.end > cfg.idle_threshold:
                    release_time = prev.end + cfg.release_duration
                    idle_time = release_time + cfg.release_duration
                    add(prev.end, KeyframeKind.HOLD, i - 1, prev_state, 'press')
                    add(release_time, KeyframeKind.RELEASE, i - 1, prev_state, 'hover')
                    add(idle_time, KeyframeKind.IDLE, i - 1, prev_state, 'idle')
                    add(max(idle_time, onset - cfg.lookahead), KeyframeKind.IDLE,
                        i - 1, prev_state, 'idle')
                else:
                    prev_end = min(prev.end, ready_time)
                    hold_time = min(max(prev_end, onset - cfg.lookahead), ready_time)
                    add(hold_time, KeyframeKind.HOLD, i - 1, prev_state, 'press')

                add(ready_time, KeyframeKind.READY, i, state, 'hover')

            add(onset, KeyframeKind.PRESS, i, state, 'press', required=True)

        last = len(steps) - 1
        add(steps[last].end, KeyframeKind.HOLD, last, states[last], 'press')
        add(steps[last].end + cfg.release_duration, KeyframeKind.RELEASE,
            last, states[last], 'hover')

        return keyframes

    def clamp_keyframes(self, keyframes: Sequence[Keyframe]) -> List[Keyframe]:
        """
        Limit each keyframe's displacement from its (clamped) predecessor.

        Returns:
            New keyframe list; modified keyframes carry clamped=True
        """
        cfg = self.config
        if not keyframes:
            return []

        result = [keyframes[0]]
        for keyframe in keyframes[1:]:
            prev = result[-1]
            dt = keyframe.time - prev.time

            limit = cfg.max_velocity * dt / self.velocity_peak
            if cfg.max_acceleration is not None:
                limit = min(limit, cfg.max_acceleration * dt * dt / self.acceleration_peak)

            delta = keyframe.pose - prev.pose
            distance = np.linalg.norm(delta, axis=1)
            over = distance > limit

            if np.any(over):
                scale = np.ones(len(distance))
                scale[over] = limit / distance[over]
                pose = prev.pose + delta * scale[:, None]
                pose.flags.writeable = False
                keyframe = replace(keyframe, pose=pose, clamped=True)
                logger.debug(
                    f"Clamped {keyframe.kind.value} keyframe of step {keyframe.step_index} "
                    f"at {keyframe.time:.3f}s"
                )

            result.append(keyframe)

        return result

    def sample(
        self,
        keyframes: Sequence[Keyframe]
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Sample the eased keyframe curve at the configured frame rate.

        Returns:
            (frames, times, poses, frame_steps)
        """
        fps = self.config.fps
        key_times = np.array([k.time for k in keyframes])

        first = int(np.ceil(key_times[0] * fps - 1e-9))
        last = int(np.floor(key_times[-1] * fps + 1e-9))
        frames = np.arange(first, last + 1, dtype=np.int64)
        times = frames / fps

        if len(keyframes) == 1:
            poses = np.repeat(keyframes[0].pose[None], len(frames), axis=0)
            steps = np.full(len(frames), keyframes[0].step_index, dtype=np.int64)
            return frames, times, poses, steps

        segment_of_frame = np.searchsorted(key_times, times, side='right') - 1
        segment_of_frame = np.clip(segment_of_frame, 0, len(keyframes) - 2)
        segments = np.unique(segment_of_frame)

        def sample_segment(j: int) -> np.ndarray:
            mask = segment_of_frame == j
            return self._ease_segment(keyframes[j], keyframes[j + 1], times[mask])

        if self.config.workers > 1 and len(segments) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
                chunks = list(executor.map(sample_segment, segments))
        else:
            chunks = [sample_segment(j) for j in segments]

        poses = np.concatenate(chunks, axis=0) if chunks else np.zeros((0, PoseBuilder.NUM_POINTS, 3))
        steps = np.array([keyframes[j].step_index for j in segment_of_frame], dtype=np.int64)
        return frames, times, poses, steps

    def _ease_segment(self, start: Keyframe, end: Keyframe, times: np.ndarray) -> np.ndarray:
        """Eased interpolation between two keyframes at the given times."""
        dt = end.time - start.time
        if dt <= 0:
            u = np.ones(len(times))
        else:
            u = np.clip((times - start.time) / dt, 0.0, 1.0)
        weights = self.ease(u)
        return start.pose[None] + weights[:, None, None] * (end.pose - start.pose)[None]
