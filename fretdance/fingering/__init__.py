"""Fingering assignment: hand shapes, constraints, costs and the beam search."""

from .hand_state import FingerAssignment, HandState, PassageKind
from .constraints import HandConstraints, ConstraintViolation
from .candidates import CandidateGenerator, classify_passage
from .cost import MovementCostModel
from .optimizer import FingeringOptimizer, OptimizationResult, CommittedStep

__all__ = [
    "FingerAssignment",
    "HandState",
    "PassageKind",
    "HandConstraints",
    "ConstraintViolation",
    "CandidateGenerator",
    "classify_passage",
    "MovementCostModel",
    "FingeringOptimizer",
    "OptimizationResult",
    "CommittedStep",
]
