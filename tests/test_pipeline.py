"""End-to-end tests for the fingering and motion pipeline."""

import pytest
import numpy as np
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fretdance import FretDancePipeline, MalformedInput, UnplayablePitch
from fretdance.data.notes import NoteEvent, NoteStatus
from fretdance.utils.config import Config


CONFIG_PATH = Path(__file__).parent.parent / 'configs' / 'default.yaml'

C_E_G = [
    {'pitch': 60, 'onset': 0.0, 'duration': 0.5},
    {'pitch': 64, 'onset': 0.5, 'duration': 0.5},
    {'pitch': 67, 'onset': 1.0, 'duration': 0.5},
]


class TestFretDancePipeline:
    """Tests for FretDancePipeline."""

    @pytest.fixture
    def pipeline(self):
        return FretDancePipeline()

    def test_from_config_file(self):
        """Test pipeline construction from YAML."""
        pipeline = FretDancePipeline.from_config_file(CONFIG_PATH)
        assert pipeline.fretboard.num_strings == 6
        assert pipeline.config.optimizer.beam_width == 100

    def test_simple_melody(self, pipeline):
        """Test a three note melody end to end."""
        result = pipeline.run(C_E_G)

        assert len(result.steps) == 3
        assert len(result.notes) == 3
        assert result.trajectory.num_frames == len(result.frames)

        frets = [f for s in result.steps for (_, f, finger, _) in s.assignments if finger > 0]
        assert max(frets) - min(frets) <= pipeline.config.instrument.max_span

    def test_accepts_note_events(self, pipeline):
        """NoteEvents and dicts give the same result."""
        events = [NoteEvent(d['pitch'], d['onset'], d['duration']) for d in C_E_G]
        from_events = pipeline.run(events)
        from_dicts = pipeline.run(C_E_G)

        assert from_events.to_dict() == from_dicts.to_dict()

    def test_empty_input(self, pipeline):
        """Test empty input."""
        result = pipeline.run([])

        assert result.is_empty
        assert result.notes == ()
        assert result.frames == ()
        assert result.total_cost == 0.0

    def test_malformed_input(self, pipeline):
        """Test onsets going backwards."""
        with pytest.raises(MalformedInput):
            pipeline.run([
                {'pitch': 60, 'onset': 1.0, 'duration': 0.5},
                {'pitch': 62, 'onset': 0.5, 'duration': 0.5},
            ])

    def test_unplayable_pitch(self, pipeline):
        """Test pitch below the guitar range."""
        with pytest.raises(UnplayablePitch):
            pipeline.run([{'pitch': 30, 'onset': 0.0, 'duration': 0.5}])

    def test_unplayable_pitch_dropped(self):
        """Test drop policy for unplayable pitches."""
        config = Config().with_overrides({'ingest': {'unplayable_policy': 'drop'}})
        result = FretDancePipeline(config).run([
            {'pitch': 30, 'onset': 0.0, 'duration': 0.5},
            {'pitch': 60, 'onset': 0.5, 'duration': 0.5},
        ])

        assert len(result.steps) == 1
        assert result.notes[0].status == NoteStatus.DROPPED

    def test_over_span_chord(self, pipeline):
        """An unreachable chord falls back and logs the dropped note."""
        output = pipeline.run_detailed([
            {'pitch': 41, 'onset': 0.0, 'duration': 1.0},
            {'pitch': 71, 'onset': 0.0, 'duration': 1.0},
        ])

        assert len(output.optimization.fallbacks) == 1
        assert output.result.steps[0].fallback == 'drop_lowest'
        statuses = sorted(n.status.value for n in output.result.notes)
        assert statuses == ['dropped', 'played']

    def test_arpeggiated_presses_follow_onsets(self):
        """Each step is fretted at its own onset when a chord is arpeggiated."""
        config = Config().with_overrides({'optimizer': {'fallback_policy': 'arpeggiate'}})
        output = FretDancePipeline(config).run_detailed([
            {'pitch': 41, 'onset': 0.0, 'duration': 2.0},
            {'pitch': 60, 'onset': 0.0, 'duration': 2.0},
            {'pitch': 72, 'onset': 0.0, 'duration': 2.0},
            {'pitch': 64, 'onset': 0.06, 'duration': 0.5},
        ])

        onsets = [s.onset for s in output.optimization.steps]
        presses = [k.time for k in output.trajectory.keyframes if k.kind.value == 'press']
        assert onsets == sorted(onsets)
        assert presses == pytest.approx(onsets)

    def test_capo(self):
        """Test capo shifts the playable range."""
        config = Config().with_overrides({'instrument': {'capo': 2}})
        pipeline = FretDancePipeline(config)

        with pytest.raises(UnplayablePitch):
            pipeline.run([{'pitch': 40, 'onset': 0.0, 'duration': 0.5}])

        result = pipeline.run([{'pitch': 42, 'onset': 0.0, 'duration': 0.5}])
        assert result.steps[0].assignments == ((5, 0, 0, 42),)

    def test_large_chord_is_simplified(self, pipeline):
        """Test seven note chord on six strings."""
        chord = [40, 45, 52, 55, 59, 64, 67]
        output = pipeline.run_detailed(
            [{'pitch': p, 'onset': 0.0, 'duration': 1.0} for p in chord]
        )

        assert len(output.prepared.groups[0]) <= 6
        assert sum(1 for n in output.result.notes if n.reason == 'chord_size') >= 1

    def test_deterministic(self, pipeline):
        """Separate pipelines give identical output."""
        notes = C_E_G + [
            {'pitch': 48, 'onset': 1.5, 'duration': 1.0},
            {'pitch': 52, 'onset': 1.5, 'duration': 1.0},
            {'pitch': 55, 'onset': 1.5, 'duration': 1.0},
        ]
        first = pipeline.run(notes).to_dict()
        second = FretDancePipeline().run(notes).to_dict()

        assert first == second

    def test_velocity_bound(self):
        """Test speed limit across the whole run."""
        config = Config().with_overrides({'motion': {'max_velocity': 20.0}})
        pipeline = FretDancePipeline(config)
        output = pipeline.run_detailed(C_E_G + [
            {'pitch': 81, 'onset': 1.5, 'duration': 0.25},
            {'pitch': 60, 'onset': 1.75, 'duration': 0.25},
        ])

        speeds = output.trajectory.frame_speeds()
        assert np.all(speeds <= 20.0 + 1e-6)

    def test_evaluate(self, pipeline):
        """Test evaluation report."""
        output = pipeline.run_detailed(C_E_G)
        report = pipeline.evaluate(output)

        assert report['fingering']['num_steps'] == 3
        assert report['fingering']['pitch_errors'] == 0
        assert report['fingering']['span_violations'] == 0
        assert report['motion']['velocity_violations'] == 0
        assert report['motion']['num_frames'] == output.trajectory.num_frames
