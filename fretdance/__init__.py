"""
Guitar Fingering and Hand Motion Package

Chooses string, fret and finger for every note of a piece and animates the
fretting hand between the chosen shapes.
"""

__version__ = "1.0.0"

from . import data
from . import guitar
from . import fingering
from . import hand
from . import recorder
from . import evaluation
from . import utils
from .errors import FretDanceError, MalformedInput, UnplayablePitch, InfeasibleSpan
from .pipeline import FretDancePipeline
