"""
Guitar Fingering and Hand Motion Pipeline

Main entry point for turning a note list into fingerings and hand motion.

Usage:
    from fretdance.pipeline import FretDancePipeline
    from fretdance.utils.config import load_config

    pipeline = FretDancePipeline(load_config('configs/default.yaml'))
    result = pipeline.run([
        {'pitch': 60, 'onset': 0.0, 'duration': 0.5},
        {'pitch': 64, 'onset': 0.5, 'duration': 0.5},
    ])
    export(result.to_dict())
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

from .data.notes import NoteEvent, PreparedNotes, notes_from_dicts, prepare_notes
from .evaluation.metrics import PerformanceMetrics
from .fingering.constraints import HandConstraints
from .fingering.optimizer import FingeringOptimizer, OptimizationResult
from .guitar.fretboard import Fretboard
from .hand.motion import MotionSynthesizer, Trajectory
from .recorder.recorder import PerformanceRecorder, PerformanceResult
from .utils.config import Config, load_config
from .utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineOutput:
    """Intermediate products of one run."""
    prepared: PreparedNotes
    optimization: OptimizationResult
    trajectory: Trajectory
    result: PerformanceResult


class FretDancePipeline:
    """
    End-to-end pipeline for guitar fingering and hand motion.

    Stages:
    1. Ingestion - Validate, group and range-fold the note stream
    2. Fingering - Beam search over hand shapes
    3. Motion - Keyframes and fixed-rate sampling
    4. Recording - Assemble the output streams

    The configuration is read-only, so one pipeline can process many
    pieces and several pipelines can run side by side.
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config: Configuration object (defaults if None)
        """
        self.config = (config or Config()).validate()

        self.fretboard = Fretboard(self.config.instrument)
        self.constraints = HandConstraints.from_instrument(self.config.instrument)
        self.optimizer = FingeringOptimizer(
            self.fretboard, self.config.optimizer, constraints=self.constraints
        )
        self.synthesizer = MotionSynthesizer(self.fretboard, self.config.motion)
        self.metrics = PerformanceMetrics(self.fretboard, constraints=self.constraints)

        logger.info(f"Pipeline initialized: {self.fretboard}")

    @classmethod
    def from_config_file(cls, path: Union[str, Path]) -> 'FretDancePipeline':
        return cls(load_config(path))

    def run(self, events: Sequence[Union[NoteEvent, Dict]]) -> PerformanceResult:
        """
        Process a note stream.

        Args:
            events: NoteEvents or note dicts ordered by onset

        Returns:
            PerformanceResult (empty for an empty stream)

        Raises:
            MalformedInput: If the stream is malformed
            UnplayablePitch: If a pitch is unplayable and the policy is 'error'
        """
        return self.run_detailed(events).result

    def run_detailed(self, events: Sequence[Union[NoteEvent, Dict]]) -> PipelineOutput:
        """Process a note stream and keep every intermediate product."""
        events = list(events)
        if events and isinstance(events[0], dict):
            events = notes_from_dicts(events)

        ingest = self.config.ingest

        # Stage 1: Ingestion
        logger.info(f"Stage 1: Ingesting {len(events)} notes")
        prepared = prepare_notes(
            events,
            is_playable=self.fretboard.is_playable,
            pitch_range=self.fretboard.pitch_range,
            unplayable_policy=ingest.unplayable_policy,
            chord_tolerance=ingest.chord_tolerance,
            max_chord_size=min(ingest.max_chord_size, self.fretboard.num_strings),
            tracks=ingest.tracks
        )
        logger.info(f"  {len(prepared.groups)} groups, {prepared.num_notes} notes")

        # Stage 2: Fingering
        logger.info("Stage 2: Fingering optimization")
        optimization = self.optimizer.optimize(prepared.groups)

        # Stage 3: Motion
        logger.info("Stage 3: Motion synthesis")
        trajectory = self.synthesizer.synthesize(
            optimization.steps, default_position=self.config.optimizer.initial_position
        )

        # Stage 4: Recording
        logger.info("Stage 4: Recording")
        recorder = PerformanceRecorder(self.config.motion.fps, self.config.recorder)
        recorder.record_notes(prepared.dispositions, optimization)
        recorder.record_steps(optimization)
        recorder.record_plucks(optimization)
        recorder.record_trajectory(trajectory)

        return PipelineOutput(
            prepared=prepared,
            optimization=optimization,
            trajectory=trajectory,
            result=recorder.result()
        )

    def evaluate(self, output: PipelineOutput) -> Dict:
        """
        Quality metrics for a run.

        Returns:
            Dict with 'fingering' and 'motion' metric dicts
        """
        fingering = self.metrics.evaluate_fingering(output.optimization)
        motion = self.metrics.evaluate_motion(
            output.trajectory, max_velocity=self.config.motion.max_velocity
        )

        logger.info("Evaluation Results:")
        logger.info(f"  Total cost: {fingering.total_cost:.3f}")
        logger.info(f"  Position shifts: {fingering.position_shifts}")
        logger.info(f"  Max speed: {motion.max_speed:.1f} cm/s")
        logger.info(f"  Velocity violations: {motion.velocity_violations}")

        return {
            'fingering': fingering.to_dict(),
            'motion': motion.to_dict(),
        }
