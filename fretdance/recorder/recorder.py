"""
Performance Recorder

Collects the outputs of one run into five record streams:

1. note log: what happened to every ingested note
2. assignment log: one record per committed hand shape
3. string-pluck log: which string sounded when, with its excitation envelope
4. per-frame animation samples
5. the combined PerformanceResult

The recorder only appends; nothing it holds feeds back into the optimizer
or the synthesizer.

Usage:
    from fretdance.recorder.recorder import PerformanceRecorder

    recorder = PerformanceRecorder(fps=60.0)
    recorder.record_notes(prepared.dispositions, optimization)
    recorder.record_steps(optimization)
    recorder.record_plucks(optimization)
    recorder.record_trajectory(trajectory)
    result = recorder.result()
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..data.notes import NoteDisposition, NoteStatus
from ..fingering.optimizer import OptimizationResult
from ..hand.motion import Trajectory
from ..utils.config import RecorderConfig
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NoteLogEntry:
    """Outcome of one ingested note."""
    pitch: int
    onset: float
    duration: float
    velocity: int
    track: Optional[int]
    status: NoteStatus
    played_pitch: Optional[int] = None
    step_index: Optional[int] = None
    reason: str = ''

    def to_dict(self) -> Dict:
        return {
            'pitch': self.pitch,
            'onset': self.onset,
            'duration': self.duration,
            'velocity': self.velocity,
            'track': self.track,
            'status': self.status.value,
            'played_pitch': self.played_pitch,
            'step_index': self.step_index,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class StepRecord:
    """Committed hand shape of one step."""
    step_index: int
    time: float
    frame: int
    hand_position: Optional[int]
    assignments: Tuple[Tuple[int, int, int, int], ...]  # (string, fret, finger, pitch)
    step_cost: float
    cumulative_cost: float
    kind: str
    fallback: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'step_index': self.step_index,
            'time': self.time,
            'frame': self.frame,
            'hand_position': self.hand_position,
            'assignments': [
                {'string': s, 'fret': f, 'finger': finger, 'pitch': p}
                for s, f, finger, p in self.assignments
            ],
            'step_cost': self.step_cost,
            'cumulative_cost': self.cumulative_cost,
            'kind': self.kind,
            'fallback': self.fallback,
        }


@dataclass(frozen=True)
class EnvelopePoint:
    """String excitation at a frame (0 = still, 1 = full swing)."""
    frame: float
    influence: float


@dataclass(frozen=True)
class StringPluck:
    """One string sounding at one step."""
    string: int
    fret: int
    pitch: int
    finger: int
    step_index: int
    time: float
    frame: float
    velocity: int
    envelope: Tuple[EnvelopePoint, ...]

    def to_dict(self) -> Dict:
        return {
            'string': self.string,
            'fret': self.fret,
            'pitch': self.pitch,
            'finger': self.finger,
            'step_index': self.step_index,
            'time': self.time,
            'frame': self.frame,
            'velocity': self.velocity,
            'envelope': [
                {'frame': p.frame, 'influence': p.influence} for p in self.envelope
            ],
        }


@dataclass(frozen=True, eq=False)
class FrameSample:
    """Hand pose at one output frame."""
    frame: int
    time: float
    step_index: int
    pose: np.ndarray  # (5, 3)

    def to_dict(self) -> Dict:
        return {
            'frame': self.frame,
            'time': self.time,
            'step_index': self.step_index,
            'pose': self.pose.tolist(),
        }


@dataclass(frozen=True, eq=False)
class PerformanceResult:
    """Combined output of one run."""
    notes: Tuple[NoteLogEntry, ...]
    steps: Tuple[StepRecord, ...]
    plucks: Tuple[StringPluck, ...]
    frames: Tuple[FrameSample, ...]
    trajectory: Trajectory
    fps: float
    total_cost: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def string_keyframes(self) -> List[Dict]:
        """All envelope points of all plucks, sorted by frame."""
        points = []
        for pluck in self.plucks:
            for point in pluck.envelope:
                points.append({
                    'frame': point.frame,
                    'string': pluck.string,
                    'fret': pluck.fret,
                    'influence': point.influence,
                })
        points.sort(key=lambda p: p['frame'])
        return points

    def to_dict(self) -> Dict:
        """Plain Python structure for an external exporter."""
        return {
            'fps': self.fps,
            'total_cost': self.total_cost,
            'notes': [n.to_dict() for n in self.notes],
            'steps': [s.to_dict() for s in self.steps],
            'plucks': [p.to_dict() for p in self.plucks],
            'frames': [f.to_dict() for f in self.frames],
        }


def pluck_envelope(frame: float, last_frame: float) -> Tuple[EnvelopePoint, ...]:
    """
    Excitation curve of a plucked string.

    Rises from rest one frame before the pluck, is half excited at the
    pluck, fully excited half way through (only if it lasts more than two
    frames) and still again at `last_frame`. Points before frame 0 are
    dropped.
    """
    points = [
        EnvelopePoint(frame - 1.0, 0.0),
        EnvelopePoint(frame, 0.5),
        EnvelopePoint(last_frame, 0.0),
    ]
    if last_frame - frame > 2.0:
        points.append(EnvelopePoint((last_frame + frame) / 2.0, 1.0))

    points = [p for p in points if p.frame >= 0]
    points.sort(key=lambda p: p.frame)
    return tuple(points)


class PerformanceRecorder:
    """Accumulates record streams for one run."""

    def __init__(self, fps: float = 60.0, config: Optional[RecorderConfig] = None):
        """
        Args:
            fps: Output frame rate
            config: Recorder configuration
        """
        self.fps = fps
        self.config = config or RecorderConfig()

        self._notes: List[NoteLogEntry] = []
        self._steps: List[StepRecord] = []
        self._plucks: List[StringPluck] = []
        self._frames: List[FrameSample] = []
        self._trajectory: Optional[Trajectory] = None
        self._total_cost = 0.0

    def record_notes(
        self,
        dispositions: Sequence[NoteDisposition],
        optimization: OptimizationResult
    ):
        """Log every ingested note with its final status and step."""
        note_steps = optimization.note_steps()

        for disposition in dispositions:
            source = disposition.source
            status = disposition.status
            step_index = None
            reason = disposition.reason

            if disposition.played is not None:
                step = note_steps.get(disposition.played)
                if step is None:
                    status = NoteStatus.DROPPED
                    reason = 'infeasible_span'
                else:
                    step_index = step.index
                    if step.fallback == 'arpeggiate':
                        status = NoteStatus.ARPEGGIATED

            self._notes.append(NoteLogEntry(
                pitch=source.pitch,
                onset=source.onset,
                duration=source.duration,
                velocity=source.velocity,
                track=source.track,
                status=status,
                played_pitch=disposition.played_pitch if status != NoteStatus.DROPPED else None,
                step_index=step_index,
                reason=reason
            ))

    def record_steps(self, optimization: OptimizationResult):
        """Log committed hand shapes, optionally one per frame."""
        seen_frames = {record.frame for record in self._steps}
        skipped = 0

        for step in optimization.steps:
            frame = int(round(step.onset * self.fps))
            if self.config.dedupe_frames and frame in seen_frames:
                skipped += 1
                continue
            seen_frames.add(frame)

            self._steps.append(StepRecord(
                step_index=step.index,
                time=step.onset,
                frame=frame,
                hand_position=step.state.hand_position,
                assignments=tuple(
                    (a.string, a.fret, a.finger, a.pitch) for a in step.state.assignments
                ),
                step_cost=step.step_cost,
                cumulative_cost=step.cumulative_cost,
                kind=step.kind.value,
                fallback=step.fallback
            ))

        if skipped:
            logger.debug(f"Skipped {skipped} step records sharing a frame")

        self._total_cost = optimization.total_cost

    def record_plucks(self, optimization: OptimizationResult):
        """Derive string excitations from the committed steps."""
        elapsed = self.config.pluck_duration * self.fps
        steps = optimization.steps

        for i, step in enumerate(steps):
            frame = step.onset * self.fps
            last_frame = frame + elapsed
            if i + 1 < len(steps):
                last_frame = min(last_frame, steps[i + 1].onset * self.fps)

            envelope = pluck_envelope(frame, last_frame)
            velocities = {n.pitch: n.velocity for n in step.notes}

            for a in step.state.assignments:
                self._plucks.append(StringPluck(
                    string=a.string,
                    fret=a.fret,
                    pitch=a.pitch,
                    finger=a.finger,
                    step_index=step.index,
                    time=step.onset,
                    frame=frame,
                    velocity=velocities.get(a.pitch, 64),
                    envelope=envelope
                ))

    def record_trajectory(self, trajectory: Trajectory):
        """Store per-frame animation samples."""
        self._trajectory = trajectory
        for frame, time, step_index, pose in zip(
            trajectory.frames, trajectory.times, trajectory.frame_steps, trajectory.poses
        ):
            pose = pose.copy()
            pose.flags.writeable = False
            self._frames.append(FrameSample(
                frame=int(frame),
                time=float(time),
                step_index=int(step_index),
                pose=pose
            ))

    def result(self) -> PerformanceResult:
        """Freeze everything recorded so far."""
        trajectory = self._trajectory or Trajectory.empty(self.fps)
        logger.info(
            f"Recorded {len(self._notes)} notes, {len(self._steps)} steps, "
            f"{len(self._plucks)} plucks, {len(self._frames)} frames"
        )
        return PerformanceResult(
            notes=tuple(self._notes),
            steps=tuple(self._steps),
            plucks=tuple(self._plucks),
            frames=tuple(self._frames),
            trajectory=trajectory,
            fps=self.fps,
            total_cost=self._total_cost
        )
