"""
Quality Metrics for Fingerings and Hand Trajectories

Fingering metrics:
- total cost and fingertip travel
- hand position shifts
- span and anatomical constraint violations
- pitch errors (assignments that do not sound the note)

Motion metrics:
- speed / acceleration / jerk statistics of the sampled frames,
  differentiated with a Savitzky-Golay filter
- velocity bound violations

Usage:
    from fretdance.evaluation.metrics import PerformanceMetrics

    metrics = PerformanceMetrics(fretboard)
    fingering = metrics.evaluate_fingering(optimization)
    motion = metrics.evaluate_motion(trajectory, max_velocity=200.0)
"""

import numpy as np
from scipy.signal import savgol_filter
from typing import Dict, Optional
from dataclasses import dataclass, asdict

from ..fingering.constraints import HandConstraints
from ..fingering.optimizer import OptimizationResult
from ..guitar.fretboard import Fretboard
from ..hand.motion import Trajectory


@dataclass
class FingeringEvaluation:
    """Fingering quality summary."""
    num_steps: int
    total_cost: float
    total_movement: float
    position_shifts: int
    mean_shift: float
    max_span: int
    span_violations: int
    shape_violations: int
    pitch_errors: int
    open_string_ratio: float

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class MotionEvaluation:
    """Trajectory smoothness summary."""
    num_frames: int
    mean_speed: float
    max_speed: float
    max_acceleration: float
    rms_jerk: float
    velocity_violations: int
    clamped_keyframes: int

    def to_dict(self) -> Dict:
        return asdict(self)


class PerformanceMetrics:
    """Evaluates optimizer output and synthesized motion."""

    def __init__(
        self,
        fretboard: Fretboard,
        constraints: Optional[HandConstraints] = None,
        savgol_window: int = 7,
        savgol_order: int = 3
    ):
        """
        Args:
            fretboard: Playability model used for the run
            constraints: Anatomical rules to check against
            savgol_window: Window size for Savitzky-Golay derivatives
            savgol_order: Polynomial order for Savitzky-Golay
        """
        self.fretboard = fretboard
        self.constraints = constraints or HandConstraints.from_instrument(fretboard.config)
        self.savgol_window = savgol_window
        self.savgol_order = savgol_order

    def evaluate_fingering(self, optimization: OptimizationResult) -> FingeringEvaluation:
        """Summarize a committed fingering path."""
        states = optimization.states
        max_span = self.fretboard.config.max_span

        positions = [s.hand_position for s in states if s.hand_position is not None]
        shifts = np.abs(np.diff(positions)) if len(positions) > 1 else np.zeros(0)

        violations = self.constraints.validate_sequence(states, max_span)
        span_violations = sum(1 for v in violations if v.constraint_type == 'span')

        pitch_errors = 0
        open_count = 0
        total = 0
        for step in optimization.steps:
            expected = sorted(n.pitch for n in step.notes)
            if list(step.state.pitches) != expected:
                pitch_errors += 1
            for a in step.state.assignments:
                total += 1
                if self.fretboard.pitch_of(a.position) != a.pitch:
                    pitch_errors += 1
                if a.is_open:
                    open_count += 1

        return FingeringEvaluation(
            num_steps=len(states),
            total_cost=optimization.total_cost,
            total_movement=optimization.total_movement,
            position_shifts=int(np.count_nonzero(shifts)),
            mean_shift=float(shifts.mean()) if len(shifts) else 0.0,
            max_span=max((s.span for s in states), default=0),
            span_violations=span_violations,
            shape_violations=len(violations) - span_violations,
            pitch_errors=pitch_errors,
            open_string_ratio=open_count / total if total else 0.0
        )

    def evaluate_motion(
        self,
        trajectory: Trajectory,
        max_velocity: Optional[float] = None,
        tolerance: float = 1e-6
    ) -> MotionEvaluation:
        """
        Summarize a sampled trajectory.

        Args:
            trajectory: Synthesized trajectory
            max_velocity: Bound to count violations against (cm/s)
            tolerance: Relative slack for floating point error
        """
        speeds = trajectory.frame_speeds()

        violations = 0
        if max_velocity is not None:
            keyframe_speeds = trajectory.keyframe_speeds()
            limit = max_velocity * (1.0 + tolerance)
            violations = int(np.sum(speeds > limit) + np.sum(keyframe_speeds > limit))

        acceleration = compute_derivative(
            trajectory.poses, trajectory.fps, 2, self.savgol_window, self.savgol_order
        )
        jerk = compute_derivative(
            trajectory.poses, trajectory.fps, 3, self.savgol_window, self.savgol_order
        )

        acc_mag = np.linalg.norm(acceleration, axis=-1) if acceleration.size else np.zeros(0)
        jerk_mag = np.linalg.norm(jerk, axis=-1) if jerk.size else np.zeros(0)

        return MotionEvaluation(
            num_frames=trajectory.num_frames,
            mean_speed=float(speeds.mean()) if len(speeds) else 0.0,
            max_speed=float(speeds.max()) if len(speeds) else 0.0,
            max_acceleration=float(acc_mag.max()) if acc_mag.size else 0.0,
            rms_jerk=float(np.sqrt(np.mean(jerk_mag ** 2))) if jerk_mag.size else 0.0,
            velocity_violations=violations,
            clamped_keyframes=trajectory.num_clamped
        )


def compute_derivative(
    poses: np.ndarray,
    fps: float,
    order: int,
    window: int = 7,
    polyorder: int = 3
) -> np.ndarray:
    """
    Time derivative of a pose sequence with a Savitzky-Golay filter.

    Args:
        poses: Shape (T, points, 3)
        fps: Frame rate
        order: Derivative order (1 = velocity, 2 = acceleration, 3 = jerk)
        window: Filter window (made odd and no longer than T)
        polyorder: Polynomial order, raised to `order` if needed

    Returns:
        Array of the same shape, or an empty array if T is too short
    """
    T = len(poses)

    # Ensure window is odd and fits the sequence
    window = min(window, T)
    if window % 2 == 0:
        window -= 1

    polyorder = max(polyorder, order)
    if window <= polyorder:
        return np.zeros((0,) + poses.shape[1:])

    return savgol_filter(
        poses, window, polyorder, deriv=order, delta=1.0 / fps, axis=0
    )
