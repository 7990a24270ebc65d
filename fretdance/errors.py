"""
Error Types

Three failure classes cross the package boundary:

- MalformedInput: the note stream or configuration cannot be used at all.
  Raised before any optimisation work starts.
- UnplayablePitch: a pitch no string/fret combination can produce.
- InfeasibleSpan: no finger set for a note group fits inside the hand span.
  Recovered locally by the optimizer's fallback policy.
"""

from typing import Optional, Sequence


class FretDanceError(Exception):
    """Base class for all package errors."""


class MalformedInput(FretDanceError, ValueError):
    """Note stream or configuration violates a basic precondition."""


class UnplayablePitch(FretDanceError):
    """A pitch is outside every string's reachable range."""

    def __init__(self, pitch: int, message: Optional[str] = None):
        self.pitch = pitch
        super().__init__(message or f"Pitch {pitch} cannot be played on this instrument")


class InfeasibleSpan(FretDanceError):
    """No finger assignment for a note group satisfies the span limit."""

    def __init__(
        self,
        pitches: Sequence[int],
        onset: float = 0.0,
        message: Optional[str] = None
    ):
        self.pitches = tuple(pitches)
        self.onset = onset
        super().__init__(
            message
            or f"No feasible fingering for pitches {list(self.pitches)} at {onset:.3f}s"
        )
