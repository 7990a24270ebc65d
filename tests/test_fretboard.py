"""Tests for the fretboard playability model."""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fretdance.errors import UnplayablePitch, MalformedInput
from fretdance.fingering.hand_state import FingerAssignment
from fretdance.guitar.fretboard import Fretboard, FretPosition
from fretdance.utils.config import InstrumentConfig, STANDARD_TUNING


def fa(finger, string, fret, pitch=0):
    return FingerAssignment(finger, FretPosition(string, fret), pitch)


class TestFretboard:
    """Tests for Fretboard class."""

    @pytest.fixture
    def fretboard(self):
        return Fretboard()

    def test_init_default(self, fretboard):
        """Test default initialization."""
        assert fretboard.num_strings == 6
        assert fretboard.max_fret == 22
        assert fretboard.open_pitches == STANDARD_TUNING
        assert fretboard.rest_string == 2

    def test_candidate_positions_c4(self, fretboard):
        """Middle C on a standard guitar, low string limited to fret 16."""
        positions = fretboard.candidate_positions(60)

        assert positions == [
            FretPosition(1, 1),
            FretPosition(2, 5),
            FretPosition(3, 10),
            FretPosition(4, 15),
        ]
        for p in positions:
            assert fretboard.pitch_of(p) == 60

    def test_candidate_positions_without_bass_limit(self):
        """Test bass strings reach the top frets without a limit."""
        fretboard = Fretboard(InstrumentConfig(bass_fret_limit=None))
        positions = fretboard.candidate_positions(60)

        assert FretPosition(5, 20) in positions

    def test_open_string_position(self, fretboard):
        """Test lowest pitch only exists as an open string."""
        positions = fretboard.candidate_positions(40)
        assert positions == [FretPosition(5, 0)]
        assert positions[0].is_open

    def test_unplayable_pitch(self, fretboard):
        """Test pitch below the instrument range."""
        with pytest.raises(UnplayablePitch) as exc_info:
            fretboard.candidate_positions(30)
        assert exc_info.value.pitch == 30

        assert fretboard.candidate_positions(30, strict=False) == []
        assert not fretboard.is_playable(30)

    def test_pitch_range(self, fretboard):
        """Test playable pitch range."""
        assert fretboard.pitch_range == (40, 86)

    def test_capo(self):
        """Frets are counted from the capo."""
        fretboard = Fretboard(InstrumentConfig(capo=2))

        assert fretboard.open_pitches[5] == 42
        assert fretboard.max_fret == 20
        assert fretboard.candidate_positions(42) == [FretPosition(5, 0)]
        assert not fretboard.is_playable(41)
        assert fretboard.pitch_range == (42, 86)

    def test_note_name_tuning(self):
        """Bass tuning given as note names."""
        config = InstrumentConfig(tuning=('G2', 'D2', 'A1', 'E1'), bass_string_index=1)
        fretboard = Fretboard(config)

        assert fretboard.open_pitches == (43, 38, 33, 28)
        assert fretboard.rest_string == 1

    def test_invalid_config(self):
        """Capo beyond the last fret is rejected."""
        with pytest.raises(MalformedInput):
            Fretboard(InstrumentConfig(capo=30))


class TestFeasibility:
    """Tests for Fretboard.is_feasible."""

    @pytest.fixture
    def fretboard(self):
        return Fretboard()

    def test_within_span(self, fretboard):
        """Test span of exactly max_span."""
        assert fretboard.is_feasible([fa(1, 4, 1), fa(4, 1, 5)])

    def test_exceeds_span(self, fretboard):
        """Test span of max_span + 1."""
        assert not fretboard.is_feasible([fa(1, 4, 1), fa(4, 1, 6)])

    def test_open_strings_ignore_span(self, fretboard):
        """Open strings take no part in the span."""
        assert fretboard.is_feasible([fa(0, 5, 0), fa(1, 0, 4)])

    def test_duplicate_string(self, fretboard):
        """Two notes cannot share a string."""
        assert not fretboard.is_feasible([fa(1, 2, 1), fa(2, 2, 2)])

    def test_invalid_finger(self, fretboard):
        """Test finger number out of range."""
        assert not fretboard.is_feasible([fa(5, 2, 1)])

    def test_open_string_needs_no_finger(self, fretboard):
        """Finger 0 and fret 0 go together."""
        assert not fretboard.is_feasible([fa(1, 2, 0)])
        assert not fretboard.is_feasible([fa(0, 2, 3)])

    def test_barre_single_fret(self, fretboard):
        """A barre finger stays on one fret."""
        assert fretboard.is_feasible([fa(1, 0, 1), fa(1, 5, 1)])
        assert not fretboard.is_feasible([fa(1, 0, 1), fa(1, 5, 2)])

    def test_barre_disabled(self):
        """Test barre when the instrument disallows it."""
        fretboard = Fretboard(InstrumentConfig(allow_barre=False))
        assert not fretboard.is_feasible([fa(1, 0, 1), fa(1, 5, 1)])

    def test_bass_fret_limit(self, fretboard):
        """Test fret limit on the bass strings."""
        assert not fretboard.is_feasible([fa(1, 5, 17)])
        assert fretboard.is_feasible([fa(1, 0, 17)])

    def test_empty_set(self, fretboard):
        """Test empty assignment set."""
        assert fretboard.is_feasible([])


class TestGeometry:
    """Tests for fretboard geometry helpers."""

    @pytest.fixture
    def fretboard(self):
        return Fretboard()

    def test_fret_x(self, fretboard):
        """Test fret distance from the nut."""
        assert fretboard.fret_x(0) == 0.0
        # Octave fret sits at half the scale length
        assert np.isclose(fretboard.fret_x(12), 64.7954 / 2)

    def test_frets_get_closer(self, fretboard):
        """Fret spacing shrinks towards the body."""
        widths = np.diff([fretboard.fret_x(f) for f in range(fretboard.max_fret + 1)])
        assert np.all(np.diff(widths) < 0)

    def test_position_x_behind_fret(self, fretboard):
        """Fingertips sit between the previous fret and their own."""
        for fret in (1, 5, 12):
            x = fretboard.position_x(fret)
            assert fretboard.fret_x(fret - 1) < x < fretboard.fret_x(fret)

    def test_position_x_fractional(self, fretboard):
        """Test fractional hand positions."""
        x = fretboard.position_x(2.5)
        assert fretboard.position_x(2) < x < fretboard.position_x(3)

    def test_string_y(self, fretboard):
        """Test string offsets across the neck."""
        assert fretboard.string_y(0) == 0.0
        assert np.isclose(fretboard.string_y(3), 2.55)
