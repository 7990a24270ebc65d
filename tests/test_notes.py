"""Tests for note stream ingestion."""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fretdance.data.notes import (
    NoteEvent,
    NoteStatus,
    notes_from_dicts,
    validate_events,
    group_events,
    select_tracks,
    fold_into_range,
    simplify_chord,
    prepare_notes,
)
from fretdance.data.pitch import pitch_to_note_name, note_name_to_pitch
from fretdance.errors import MalformedInput, UnplayablePitch


def guitar_playable(pitch):
    return 40 <= pitch <= 86


class TestPitchNames:
    """Tests for note name conversion."""

    def test_pitch_to_note_name(self):
        """Test MIDI number to note name."""
        assert pitch_to_note_name(60) == 'C4'
        assert pitch_to_note_name(40) == 'E2'
        assert pitch_to_note_name(70) == 'A#4'

    def test_note_name_to_pitch(self):
        """Test note name to MIDI number, sharps and flats."""
        assert note_name_to_pitch('C4') == 60
        assert note_name_to_pitch('E2') == 40
        assert note_name_to_pitch('F#3') == 54
        assert note_name_to_pitch('Bb1') == 34

    def test_invalid_name(self):
        """Test unknown note letter."""
        with pytest.raises(MalformedInput):
            note_name_to_pitch('H2')


class TestNoteEvents:
    """Tests for NoteEvent construction and validation."""

    def test_note_event_properties(self):
        """Test NoteEvent derived fields."""
        note = NoteEvent(pitch=64, onset=1.0, duration=0.5)
        assert note.offset == 1.5
        assert note.note_name == 'E4'
        assert note.velocity == 64

    def test_notes_from_dicts(self):
        """Dicts may give duration or offset."""
        events = notes_from_dicts([
            {'pitch': 60, 'onset': 0.0, 'duration': 0.5, 'velocity': 90},
            {'pitch': 62, 'onset': 0.5, 'offset': 0.75, 'track': 1},
        ])

        assert events[0] == NoteEvent(60, 0.0, 0.5, 90)
        assert events[1].duration == pytest.approx(0.25)
        assert events[1].track == 1

    def test_notes_from_dicts_missing_timing(self):
        """Test dicts missing required fields."""
        with pytest.raises(MalformedInput):
            notes_from_dicts([{'pitch': 60, 'onset': 0.0}])
        with pytest.raises(MalformedInput):
            notes_from_dicts([{'onset': 0.0, 'duration': 1.0}])

    def test_decreasing_onsets(self):
        """Test onsets going backwards."""
        events = [NoteEvent(60, 1.0, 0.5), NoteEvent(62, 0.5, 0.5)]
        with pytest.raises(MalformedInput):
            validate_events(events)

    def test_negative_duration(self):
        """Test negative duration."""
        with pytest.raises(MalformedInput):
            validate_events([NoteEvent(60, 0.0, -0.1)])

    def test_non_finite(self):
        """Test NaN onset."""
        with pytest.raises(MalformedInput):
            validate_events([NoteEvent(60, float('nan'), 0.5)])

    def test_pitch_out_of_range(self):
        """Test pitch outside the MIDI range."""
        with pytest.raises(MalformedInput):
            validate_events([NoteEvent(130, 0.0, 0.5)])

    def test_equal_onsets_are_valid(self):
        """Simultaneous notes are allowed."""
        validate_events([NoteEvent(60, 0.0, 0.5), NoteEvent(64, 0.0, 0.5)])


class TestGrouping:
    """Tests for chord grouping and range handling."""

    def test_group_exact_onsets(self):
        """Notes with the same onset form one chord, sorted by pitch."""
        events = [
            NoteEvent(64, 0.0, 1.0),
            NoteEvent(60, 0.0, 1.0),
            NoteEvent(67, 1.0, 1.0),
        ]
        groups = group_events(events)

        assert len(groups) == 2
        assert [n.pitch for n in groups[0]] == [60, 64]

    def test_group_tolerance(self):
        """Test chord grouping tolerance."""
        events = [
            NoteEvent(60, 0.0, 1.0),
            NoteEvent(64, 0.01, 1.0),
            NoteEvent(67, 0.5, 1.0),
        ]
        assert len(group_events(events, tolerance=0.0)) == 3
        assert len(group_events(events, tolerance=0.02)) == 2

    def test_select_tracks(self):
        """Test track filtering."""
        events = [
            NoteEvent(60, 0.0, 1.0, track=0),
            NoteEvent(64, 0.0, 1.0, track=1),
        ]
        assert select_tracks(events) == events
        assert [e.pitch for e in select_tracks(events, [1])] == [64]

    def test_fold_into_range(self):
        """Test octave folding."""
        assert fold_into_range(20, 40, 86) == 44
        assert fold_into_range(100, 40, 86) == 76
        assert fold_into_range(60, 40, 86) == 60

    def test_simplify_chord_keeps_outer_voices(self):
        """Bass and melody survive chord simplification."""
        chord = [40, 45, 52, 55, 59, 64, 67]
        simplified = simplify_chord(chord, 6)

        assert simplified == [40, 45, 52, 55, 59, 67]

    def test_simplify_chord_small(self):
        """Test chords at or below the limit."""
        assert simplify_chord([48, 52, 55], 6) == [48, 52, 55]
        assert simplify_chord([48, 52, 55], 1) == [55]


class TestPrepareNotes:
    """Tests for prepare_notes."""

    def test_basic(self):
        """Test preparing a simple melody."""
        events = [NoteEvent(60, 0.0, 0.5), NoteEvent(64, 0.5, 0.5)]
        prepared = prepare_notes(events, guitar_playable, (40, 86))

        assert len(prepared.groups) == 2
        assert prepared.num_notes == 2
        assert all(d.status == NoteStatus.PLAYED for d in prepared.dispositions)
        assert prepared.groups[1].index == 1

    def test_empty(self):
        """Test preparing no notes."""
        prepared = prepare_notes([], guitar_playable, (40, 86))
        assert prepared.groups == []
        assert prepared.dispositions == []

    def test_unplayable_error(self):
        """Test default unplayable policy."""
        with pytest.raises(UnplayablePitch):
            prepare_notes([NoteEvent(20, 0.0, 0.5)], guitar_playable, (40, 86))

    def test_unplayable_drop(self):
        """Unplayable notes are dropped and logged."""
        events = [NoteEvent(20, 0.0, 0.5), NoteEvent(60, 0.5, 0.5)]
        prepared = prepare_notes(events, guitar_playable, (40, 86), unplayable_policy='drop')

        assert len(prepared.groups) == 1
        dropped = [d for d in prepared.dispositions if d.status == NoteStatus.DROPPED]
        assert len(dropped) == 1
        assert dropped[0].source.pitch == 20
        assert dropped[0].reason == 'unplayable'

    def test_unplayable_transpose(self):
        """Unplayable notes are moved by octaves into range."""
        prepared = prepare_notes(
            [NoteEvent(20, 0.0, 0.5)], guitar_playable, (40, 86),
            unplayable_policy='transpose'
        )

        assert prepared.groups[0].pitches == (44,)
        disposition = prepared.dispositions[0]
        assert disposition.status == NoteStatus.TRANSPOSED
        assert disposition.source.pitch == 20
        assert disposition.played_pitch == 44

    def test_duplicate_pitch_keeps_louder(self):
        """Test duplicate pitch in a chord."""
        events = [NoteEvent(60, 0.0, 0.5, velocity=40), NoteEvent(60, 0.0, 0.5, velocity=100)]
        prepared = prepare_notes(events, guitar_playable, (40, 86))

        assert prepared.groups[0].notes[0].velocity == 100
        dropped = [d for d in prepared.dispositions if d.status == NoteStatus.DROPPED]
        assert len(dropped) == 1
        assert dropped[0].source.velocity == 40
        assert dropped[0].reason == 'duplicate'

    def test_chord_size_limit(self):
        """Test chord simplification in prepare_notes."""
        events = [NoteEvent(p, 0.0, 1.0) for p in [40, 45, 52, 55, 59, 64, 67]]
        prepared = prepare_notes(events, guitar_playable, (40, 86), max_chord_size=6)

        assert len(prepared.groups[0]) == 6
        dropped = [d for d in prepared.dispositions if d.status == NoteStatus.DROPPED]
        assert [d.source.pitch for d in dropped] == [64]
        assert dropped[0].reason == 'chord_size'

    def test_every_note_has_one_disposition(self):
        """Test every input note is accounted for."""
        events = [
            NoteEvent(20, 0.0, 0.5),
            NoteEvent(60, 0.0, 0.5),
            NoteEvent(60, 0.0, 0.5, velocity=10),
            NoteEvent(64, 0.5, 0.5),
        ]
        prepared = prepare_notes(events, guitar_playable, (40, 86), unplayable_policy='drop')

        assert len(prepared.dispositions) == len(events)

    def test_track_filter(self):
        """Test track selection in prepare_notes."""
        events = [
            NoteEvent(60, 0.0, 0.5, track=0),
            NoteEvent(72, 0.0, 0.5, track=1),
        ]
        prepared = prepare_notes(events, guitar_playable, (40, 86), tracks=[0])

        assert prepared.groups[0].pitches == (60,)
