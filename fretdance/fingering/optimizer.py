"""
Beam-search fingering optimizer.

Groups are processed strictly in onset order. For each group the candidate
shapes are scored against every shape kept for the previous group, the
cheapest predecessor is remembered as a back-pointer and only the best
`beam_width` shapes survive. After the last group the cheapest path is
traced back through the stored arrays.

Usage:
    from fretdance.fingering.optimizer import FingeringOptimizer

    optimizer = FingeringOptimizer(fretboard, config.optimizer)
    result = optimizer.optimize(prepared.groups)
    for step in result.steps:
        print(step.onset, step.state.describe())
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .candidates import CandidateGenerator, classify_passage
from .constraints import HandConstraints
from .cost import MovementCostModel
from .hand_state import HandState, PassageKind
from ..data.notes import NoteEvent, NoteGroup
from ..errors import InfeasibleSpan
from ..guitar.fretboard import Fretboard
from ..utils.config import OptimizerConfig
from ..utils.logging_utils import get_logger, ProgressLogger

logger = get_logger(__name__)

# Costs closer than this are treated as equal and go to the tie-break
COST_DECIMALS = 9


@dataclass(frozen=True)
class PlannedGroup:
    """A group that has candidate shapes, possibly after a fallback."""
    group: NoteGroup
    candidates: Tuple[HandState, ...]
    sources: Tuple[NoteEvent, ...]  # ingested note behind each played note
    fallback: Optional[str] = None


@dataclass(frozen=True)
class FallbackRecord:
    """A group that needed a fallback policy."""
    group_index: int
    onset: float
    policy: str
    pitches: Tuple[int, ...]
    dropped: Tuple[NoteEvent, ...] = ()


@dataclass(frozen=True)
class CommittedStep:
    """One committed hand shape with its timing and cost."""
    index: int
    group: NoteGroup
    kind: PassageKind
    state: HandState
    step_cost: float
    cumulative_cost: float
    movement: float
    sources: Tuple[NoteEvent, ...]
    fallback: Optional[str] = None

    @property
    def onset(self) -> float:
        return self.group.onset

    @property
    def end(self) -> float:
        return self.group.end

    @property
    def notes(self) -> Tuple[NoteEvent, ...]:
        return self.group.notes


@dataclass
class OptimizationResult:
    """Committed path plus the fallbacks applied on the way."""
    steps: List[CommittedStep] = field(default_factory=list)
    fallbacks: List[FallbackRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def states(self) -> List[HandState]:
        return [s.state for s in self.steps]

    @property
    def total_cost(self) -> float:
        return self.steps[-1].cumulative_cost if self.steps else 0.0

    @property
    def total_movement(self) -> float:
        return float(sum(s.movement for s in self.steps))

    def note_steps(self) -> Dict[NoteEvent, CommittedStep]:
        """Map each ingested note that was played to its committed step."""
        mapping = {}
        for step in self.steps:
            for source in step.sources:
                mapping.setdefault(source, step)
        return mapping


class FingeringOptimizer:
    """
    Chooses one hand shape per note group, minimising total movement cost.

    Instrument and optimizer configuration are passed in per instance and
    never modified, so several optimizers can run side by side.
    """

    def __init__(
        self,
        fretboard: Fretboard,
        config: Optional[OptimizerConfig] = None,
        constraints: Optional[HandConstraints] = None
    ):
        """
        Args:
            fretboard: Playability model
            config: Optimizer configuration
            constraints: Anatomical rules (default derived from the instrument)
        """
        self.fretboard = fretboard
        self.config = config or OptimizerConfig()
        self.config.validate()

        self.generator = CandidateGenerator(
            fretboard,
            constraints=constraints,
            max_candidates=self.config.max_candidates_per_group
        )
        self.cost_model = MovementCostModel(fretboard, self.config.weights)

    def optimize(self, groups: Sequence[NoteGroup]) -> OptimizationResult:
        """
        Run the beam search over all groups.

        Args:
            groups: Note groups ordered by onset

        Returns:
            OptimizationResult with one CommittedStep per played group
        """
        result = OptimizationResult()

        if not groups:
            logger.info("No note groups to optimize")
            return result

        logger.info(
            f"Optimizing {len(groups)} groups "
            f"(beam width {self.config.beam_width}, workers {self.config.workers})"
        )

        start = HandState.idle(
            self.config.initial_position,
            rest_string=self.fretboard.rest_string,
            fretting_fingers=self.fretboard.config.fretting_fingers
        )

        # Beam arrays indexed by step; index 0 is the idle starting hand
        beam_states: List[List[HandState]] = [[start]]
        beam_cost: List[np.ndarray] = [np.zeros(1)]
        beam_movement: List[np.ndarray] = [np.zeros(1)]
        beam_step_cost: List[np.ndarray] = [np.zeros(1)]
        beam_step_movement: List[np.ndarray] = [np.zeros(1)]
        beam_back: List[np.ndarray] = [np.full(1, -1, dtype=np.int32)]
        planned: List[PlannedGroup] = []
        kinds: List[PassageKind] = []

        progress = ProgressLogger(
            __name__, len(groups), log_interval=max(10, len(groups) // 10), unit='groups'
        )
        progress.start()

        self.cost_model.clear_cache()

        executor = None
        if self.config.workers > 1:
            executor = ThreadPoolExecutor(max_workers=self.config.workers)

        try:
            for i, group in enumerate(groups):
                next_onset = groups[i + 1].onset if i + 1 < len(groups) else None
                units, fallback = self.plan_group(group, next_onset)
                if fallback is not None:
                    result.fallbacks.append(fallback)

                for unit in units:
                    previous = planned[-1].group if planned else None
                    kind = classify_passage(
                        unit.group,
                        previous,
                        slide_max_gap=self.config.slide_max_gap,
                        slide_max_interval=self.config.slide_max_interval
                    )

                    scores = self._score_candidates(
                        unit.candidates,
                        beam_states[-1],
                        beam_cost[-1],
                        beam_movement[-1],
                        kind,
                        executor
                    )
                    keep = self._prune(unit.candidates, scores)

                    beam_states.append([unit.candidates[j] for j in keep])
                    beam_cost.append(scores[keep, 0])
                    beam_movement.append(scores[keep, 1])
                    beam_back.append(scores[keep, 2].astype(np.int32))
                    beam_step_cost.append(scores[keep, 3])
                    beam_step_movement.append(scores[keep, 4])
                    planned.append(unit)
                    kinds.append(kind)
                    self.cost_model.retain(beam_states[-1])

                    logger.debug(
                        f"Group {unit.group.index} at {unit.group.onset:.3f}s: "
                        f"{len(unit.candidates)} candidates, kept {len(keep)}, "
                        f"best {beam_cost[-1][0]:.3f}"
                    )

                progress.update()
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        progress.finish()

        # Backtrace from the best entry of the last beam (beams are sorted)
        path = []
        idx = 0
        for t in range(len(beam_states) - 1, 0, -1):
            path.append(idx)
            idx = int(beam_back[t][idx])
        path.reverse()

        for step_idx, beam_idx in enumerate(path):
            t = step_idx + 1
            unit = planned[step_idx]
            result.steps.append(CommittedStep(
                index=step_idx,
                group=unit.group,
                kind=kinds[step_idx],
                state=beam_states[t][beam_idx],
                step_cost=float(beam_step_cost[t][beam_idx]),
                cumulative_cost=float(beam_cost[t][beam_idx]),
                movement=float(beam_step_movement[t][beam_idx]),
                sources=unit.sources,
                fallback=unit.fallback
            ))

        logger.info(
            f"Committed {len(result.steps)} steps, total cost {result.total_cost:.3f}, "
            f"{len(result.fallbacks)} fallbacks"
        )
        return result

    def plan_group(
        self,
        group: NoteGroup,
        next_onset: Optional[float] = None
    ) -> Tuple[List[PlannedGroup], Optional[FallbackRecord]]:
        """
        Generate candidates for a group, applying the fallback policy if
        no shape fits.

        Args:
            group: Note group to plan
            next_onset: Onset of the following group; arpeggiated notes
                        stay before it

        Returns:
            (planned units, fallback record or None)
        """
        try:
            candidates = self.generator.generate(group.pitches, group.onset)
            return [PlannedGroup(group, tuple(candidates), group.notes)], None
        except InfeasibleSpan as exc:
            policy = self.config.fallback_policy
            logger.warning(f"{exc}; applying '{policy}' fallback")

        if policy == 'arpeggiate':
            units = self._arpeggiate(group, next_onset)
            record = FallbackRecord(group.index, group.onset, policy, group.pitches)
            return units, record

        notes = list(group.notes)
        dropped = []
        while notes:
            if policy == 'drop_weakest':
                victim = min(notes, key=lambda n: (n.velocity, n.pitch))
            else:
                victim = min(notes, key=lambda n: n.pitch)
            notes.remove(victim)
            dropped.append(victim)
            logger.warning(f"Dropped {victim.note_name} at {victim.onset:.3f}s")

            if not notes:
                break
            try:
                candidates = self.generator.generate([n.pitch for n in notes], group.onset)
            except InfeasibleSpan:
                continue

            reduced = replace(group, notes=tuple(notes))
            record = FallbackRecord(group.index, group.onset, policy, group.pitches, tuple(dropped))
            return [PlannedGroup(reduced, tuple(candidates), reduced.notes, policy)], record

        logger.warning(f"Group {group.index} at {group.onset:.3f}s skipped entirely")
        return [], FallbackRecord(group.index, group.onset, policy, group.pitches, tuple(dropped))

    def _arpeggiate(self, group: NoteGroup, next_onset: Optional[float] = None) -> List[PlannedGroup]:
        """
        Split a chord into single notes from the bass up.

        All notes start inside the chord's duration and before `next_onset`,
        so step onsets stay nondecreasing.
        """
        notes = sorted(group.notes, key=lambda n: n.pitch)
        window = group.end - group.onset
        if next_onset is not None:
            window = min(window, next_onset - group.onset)

        spacing = self.config.arpeggio_spacing
        if window > 0:
            spacing = min(spacing, window / len(notes))
        else:
            spacing = 0.0

        units = []
        for i, note in enumerate(notes):
            shift = i * spacing
            shifted = replace(
                note,
                onset=group.onset + shift,
                duration=max(0.0, note.duration - shift)
            )
            candidates = self.generator.generate([shifted.pitch], shifted.onset)
            units.append(PlannedGroup(
                NoteGroup(index=group.index, notes=(shifted,)),
                tuple(candidates),
                (note,),
                'arpeggiate'
            ))
        return units

    def _score_candidates(
        self,
        candidates: Sequence[HandState],
        prev_states: Sequence[HandState],
        prev_cost: np.ndarray,
        prev_movement: np.ndarray,
        kind: PassageKind,
        executor: Optional[ThreadPoolExecutor] = None
    ) -> np.ndarray:
        """
        Best predecessor for every candidate.

        Returns:
            (n, 5) array: cumulative cost, cumulative movement, predecessor
            index, step cost, step movement
        """
        def score(candidate: HandState) -> Tuple[float, float, int, float, float]:
            best = None
            for j, prev in enumerate(prev_states):
                step_cost, step_movement = self.cost_model.transition_cost(prev, candidate, kind)
                total = prev_cost[j] + step_cost
                movement = prev_movement[j] + step_movement
                key = (round(total, COST_DECIMALS), round(movement, COST_DECIMALS), j)
                if best is None or key < best[0]:
                    best = (key, total, movement, j, step_cost, step_movement)
            return best[1:]

        if executor is not None and len(candidates) > 1:
            rows = list(executor.map(score, candidates))
        else:
            rows = [score(c) for c in candidates]

        return np.array(rows, dtype=np.float64).reshape(len(candidates), 5)

    def _prune(self, candidates: Sequence[HandState], scores: np.ndarray) -> List[int]:
        """Indices of the beam_width best candidates in tie-break order."""
        order = sorted(
            range(len(candidates)),
            key=lambda i: (
                round(float(scores[i, 0]), COST_DECIMALS),
                round(float(scores[i, 1]), COST_DECIMALS),
                candidates[i].sort_key()
            )
        )
        return order[:self.config.beam_width]
