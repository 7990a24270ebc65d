"""Evaluation metrics."""

from .metrics import PerformanceMetrics, FingeringEvaluation, MotionEvaluation

__all__ = [
    "PerformanceMetrics",
    "FingeringEvaluation",
    "MotionEvaluation",
]
