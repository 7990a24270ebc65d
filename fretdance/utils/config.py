"""
Configuration Management

Handles loading and merging configuration files. Every section is a frozen
dataclass so one loaded configuration can be shared by several runs without
any of them changing it.

Usage:
    from fretdance.utils.config import load_config

    config = load_config('configs/default.yaml')
"""

import math
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union
from dataclasses import dataclass, field, asdict

from ..data.pitch import note_name_to_pitch
from ..errors import MalformedInput


STANDARD_TUNING = (64, 59, 55, 50, 45, 40)  # e B G D A E, string 0 is high e

FALLBACK_POLICIES = ('drop_lowest', 'drop_weakest', 'arpeggiate')
UNPLAYABLE_POLICIES = ('error', 'drop', 'transpose')
SKILL_LEVELS = ('beginner', 'intermediate', 'advanced')
EASE_MODES = ('linear', 'smoothstep', 'cosine')


def _normalize_tuning(tuning) -> Tuple[int, ...]:
    """Accept MIDI numbers or note names ('E2', 'A#3') for each string."""
    pitches = []
    for value in tuning:
        if isinstance(value, str):
            pitches.append(note_name_to_pitch(value))
        else:
            pitches.append(int(value))
    return tuple(pitches)


@dataclass(frozen=True)
class InstrumentConfig:
    """Instrument geometry and hand limits."""
    tuning: Tuple[int, ...] = STANDARD_TUNING
    fret_count: int = 22
    capo: int = 0
    max_span: int = 4
    fretting_fingers: int = 4
    scale_length_cm: float = 64.7954
    string_spacing_cm: float = 0.85
    allow_barre: bool = True
    skill_level: str = 'intermediate'
    bass_string_index: int = 2
    bass_fret_limit: Optional[int] = 16

    def __post_init__(self):
        object.__setattr__(self, 'tuning', _normalize_tuning(self.tuning))

    @property
    def num_strings(self) -> int:
        return len(self.tuning)

    @property
    def max_fret(self) -> int:
        """Highest fret reachable above the capo."""
        return self.fret_count - self.capo

    def validate(self) -> None:
        if not self.tuning:
            raise MalformedInput("Instrument needs at least one string")
        if self.fret_count < 1:
            raise MalformedInput(f"fret_count must be positive, got {self.fret_count}")
        if not 0 <= self.capo < self.fret_count:
            raise MalformedInput(f"capo must be in [0, {self.fret_count}), got {self.capo}")
        if self.max_span < 0:
            raise MalformedInput(f"max_span must be >= 0, got {self.max_span}")
        if not 1 <= self.fretting_fingers <= 4:
            raise MalformedInput(
                f"fretting_fingers must be between 1 and 4, got {self.fretting_fingers}"
            )
        if self.scale_length_cm <= 0 or self.string_spacing_cm <= 0:
            raise MalformedInput("scale_length_cm and string_spacing_cm must be positive")
        if self.skill_level not in SKILL_LEVELS:
            raise MalformedInput(
                f"skill_level must be one of {SKILL_LEVELS}, got {self.skill_level!r}"
            )


@dataclass(frozen=True)
class IngestConfig:
    """Note stream preparation."""
    chord_tolerance: float = 0.0
    tracks: Optional[Tuple[int, ...]] = None
    unplayable_policy: str = 'error'
    max_chord_size: int = 6

    def __post_init__(self):
        if self.tracks is not None:
            object.__setattr__(self, 'tracks', tuple(int(t) for t in self.tracks))

    def validate(self) -> None:
        if self.chord_tolerance < 0:
            raise MalformedInput("chord_tolerance must be >= 0")
        if self.unplayable_policy not in UNPLAYABLE_POLICIES:
            raise MalformedInput(
                f"unplayable_policy must be one of {UNPLAYABLE_POLICIES}, "
                f"got '{self.unplayable_policy}'"
            )
        if self.max_chord_size < 1:
            raise MalformedInput("max_chord_size must be >= 1")


@dataclass(frozen=True)
class CostWeights:
    """Weights of the movement cost terms."""
    movement: float = 1.0
    position_shift: float = 0.5
    string_change: float = 0.3
    finger_reuse: float = 1.0
    lift: float = 0.025
    open_string_bonus: float = 0.5
    slide_bonus: float = 0.5


@dataclass(frozen=True)
class OptimizerConfig:
    """Beam search configuration."""
    beam_width: int = 100
    max_candidates_per_group: int = 256
    workers: int = 1
    fallback_policy: str = 'drop_lowest'
    arpeggio_spacing: float = 0.05
    initial_position: int = 1
    slide_max_gap: float = 0.05
    slide_max_interval: int = 2
    weights: CostWeights = field(default_factory=CostWeights)

    def validate(self) -> None:
        if self.beam_width < 1:
            raise MalformedInput(f"beam_width must be >= 1, got {self.beam_width}")
        if self.max_candidates_per_group < 1:
            raise MalformedInput("max_candidates_per_group must be >= 1")
        if self.workers < 1:
            raise MalformedInput(f"workers must be >= 1, got {self.workers}")
        if self.fallback_policy not in FALLBACK_POLICIES:
            raise MalformedInput(
                f"fallback_policy must be one of {FALLBACK_POLICIES}, "
                f"got '{self.fallback_policy}'"
            )
        if self.arpeggio_spacing < 0:
            raise MalformedInput("arpeggio_spacing must be >= 0")
        if self.initial_position < 1:
            raise MalformedInput("initial_position must be >= 1")


@dataclass(frozen=True)
class MotionConfig:
    """Hand motion synthesis configuration (lengths in cm, times in s)."""
    fps: float = 60.0
    max_velocity: float = 200.0
    max_acceleration: Optional[float] = None
    ease: str = 'smoothstep'
    press_duration: float = 0.04
    release_duration: float = 0.05
    lookahead: float = 0.25
    idle_threshold: float = 1.0
    press_height: float = 0.5
    idle_height: float = 2.0
    palm_height: float = 3.0
    palm_offset: float = 2.0
    workers: int = 1

    def validate(self) -> None:
        if self.fps <= 0:
            raise MalformedInput(f"fps must be positive, got {self.fps}")
        if self.max_velocity <= 0 or not math.isfinite(self.max_velocity):
            raise MalformedInput(f"max_velocity must be positive, got {self.max_velocity}")
        if self.max_acceleration is not None and self.max_acceleration <= 0:
            raise MalformedInput("max_acceleration must be positive when set")
        if self.ease not in EASE_MODES:
            raise MalformedInput(f"ease must be one of {EASE_MODES}, got '{self.ease}'")
        for name in ('press_duration', 'release_duration', 'lookahead', 'idle_threshold'):
            if getattr(self, name) < 0:
                raise MalformedInput(f"{name} must be >= 0")
        if self.workers < 1:
            raise MalformedInput(f"workers must be >= 1, got {self.workers}")


@dataclass(frozen=True)
class RecorderConfig:
    """Output recorder configuration."""
    pluck_duration: float = 0.125
    dedupe_frames: bool = True

    def validate(self) -> None:
        if self.pluck_duration < 0:
            raise MalformedInput("pluck_duration must be >= 0")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""
    project_name: str = "fretdance"
    version: str = "1.0.0"

    instrument: InstrumentConfig = field(default_factory=InstrumentConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    recorder: RecorderConfig = field(default_factory=RecorderConfig)

    def validate(self) -> 'Config':
        """Check every section; returns self so it can be chained."""
        self.instrument.validate()
        self.ingest.validate()
        self.optimizer.validate()
        self.motion.validate()
        self.recorder.validate()
        return self

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'Config':
        """Create Config from dictionary."""
        config_dict = config_dict or {}
        defaults = cls()

        project = config_dict.get('project', {}) or {}

        instrument = dict(config_dict.get('instrument', {}) or {})
        if 'tuning' in instrument:
            instrument['tuning'] = tuple(instrument['tuning'])

        optimizer = dict(config_dict.get('optimizer', {}) or {})
        weights = optimizer.pop('weights', {}) or {}

        try:
            return cls(
                project_name=project.get('name', defaults.project_name),
                version=str(project.get('version', defaults.version)),
                instrument=InstrumentConfig(**instrument),
                ingest=IngestConfig(**(config_dict.get('ingest', {}) or {})),
                optimizer=OptimizerConfig(weights=CostWeights(**weights), **optimizer),
                motion=MotionConfig(**(config_dict.get('motion', {}) or {})),
                recorder=RecorderConfig(**(config_dict.get('recorder', {}) or {})),
            )
        except TypeError as exc:
            # Unknown keys surface as unexpected keyword arguments
            raise MalformedInput(f"Invalid configuration: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        """Nested plain-dict form, the inverse of from_dict."""
        return {
            'project': {
                'name': self.project_name,
                'version': self.version
            },
            'instrument': _plain(asdict(self.instrument)),
            'ingest': _plain(asdict(self.ingest)),
            'optimizer': _plain(asdict(self.optimizer)),
            'motion': _plain(asdict(self.motion)),
            'recorder': _plain(asdict(self.recorder)),
        }

    def with_overrides(self, overrides: Dict[str, Any]) -> 'Config':
        """Return a new Config with a nested override dict applied."""
        return Config.from_dict(merge_configs(self.to_dict(), overrides))


def _plain(value):
    """Tuples become lists so YAML output stays readable."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def load_config(config_path: Union[str, Path]) -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML config file

    Returns:
        Validated Config object
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r') as f:
        config_dict = yaml.safe_load(f)

    return Config.from_dict(config_dict).validate()


def merge_configs(base: Dict, override: Dict) -> Dict:
    """
    Merge two config dictionaries.

    Args:
        base: Base configuration
        override: Override values

    Returns:
        Merged configuration
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def save_config(config: Config, path: Union[str, Path]):
    """Save configuration to YAML file."""
    with open(path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

