"""Instrument geometry and playability."""

from .fretboard import Fretboard, FretPosition

__all__ = [
    "Fretboard",
    "FretPosition",
]
