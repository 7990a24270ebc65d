"""Output record streams."""

from .recorder import (
    PerformanceRecorder,
    PerformanceResult,
    NoteLogEntry,
    StepRecord,
    StringPluck,
    FrameSample,
    pluck_envelope,
)

__all__ = [
    "PerformanceRecorder",
    "PerformanceResult",
    "NoteLogEntry",
    "StepRecord",
    "StringPluck",
    "FrameSample",
    "pluck_envelope",
]
