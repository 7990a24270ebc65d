"""
Note Stream Utilities

Validates an incoming note list, groups simultaneous notes into chords and
brings every pitch into the instrument's playable range.

Usage:
    from fretdance.data.notes import notes_from_dicts, prepare_notes

    events = notes_from_dicts([{'pitch': 60, 'onset': 0.0, 'duration': 0.5}])
    prepared = prepare_notes(events, is_playable=fretboard.is_playable,
                             pitch_range=fretboard.pitch_range)
"""

import math
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .pitch import pitch_to_note_name
from ..errors import MalformedInput, UnplayablePitch
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NoteEvent:
    """Single note event, immutable once ingested."""
    pitch: int  # MIDI note number
    onset: float  # Onset time in seconds
    duration: float  # Duration in seconds
    velocity: int = 64  # Note velocity (0-127)
    track: Optional[int] = None  # Source track/channel tag

    @property
    def offset(self) -> float:
        """Note end time in seconds."""
        return self.onset + self.duration

    @property
    def note_name(self) -> str:
        """Get note name (e.g., 'C4', 'A#3')."""
        return pitch_to_note_name(self.pitch)


@dataclass(frozen=True)
class NoteGroup:
    """Notes struck together, ordered by pitch."""
    index: int
    notes: Tuple[NoteEvent, ...]

    @property
    def onset(self) -> float:
        return min(n.onset for n in self.notes)

    @property
    def end(self) -> float:
        return max(n.offset for n in self.notes)

    @property
    def pitches(self) -> Tuple[int, ...]:
        return tuple(n.pitch for n in self.notes)

    @property
    def is_chord(self) -> bool:
        return len(self.notes) > 1

    def __len__(self) -> int:
        return len(self.notes)


class NoteStatus(Enum):
    """What happened to an ingested note."""
    PLAYED = 'played'
    DROPPED = 'dropped'
    TRANSPOSED = 'transposed'
    ARPEGGIATED = 'arpeggiated'


@dataclass(frozen=True)
class NoteDisposition:
    """Ingestion outcome for one source note."""
    source: NoteEvent
    status: NoteStatus
    played: Optional[NoteEvent] = None
    reason: str = ''

    @property
    def played_pitch(self) -> Optional[int]:
        return self.played.pitch if self.played is not None else None


@dataclass
class PreparedNotes:
    """Result of prepare_notes."""
    groups: List[NoteGroup] = field(default_factory=list)
    dispositions: List[NoteDisposition] = field(default_factory=list)

    @property
    def num_notes(self) -> int:
        return sum(len(g) for g in self.groups)


def notes_from_dicts(records: Iterable[Dict]) -> List[NoteEvent]:
    """
    Build NoteEvents from plain dictionaries.

    Args:
        records: Dicts with 'pitch', 'onset' and either 'duration' or
                 'offset'; 'velocity' and 'track' are optional

    Returns:
        List of NoteEvent objects in input order
    """
    events = []

    for i, record in enumerate(records):
        try:
            pitch = int(record['pitch'])
            onset = float(record['onset'])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedInput(f"Note record {i} is missing pitch/onset: {record}") from exc

        if 'duration' in record:
            duration = float(record['duration'])
        elif 'offset' in record:
            duration = float(record['offset']) - onset
        else:
            raise MalformedInput(f"Note record {i} needs 'duration' or 'offset': {record}")

        track = record.get('track')
        events.append(NoteEvent(
            pitch=pitch,
            onset=onset,
            duration=duration,
            velocity=int(record.get('velocity', 64)),
            track=int(track) if track is not None else None
        ))

    return events


def validate_events(events: Sequence[NoteEvent]) -> None:
    """
    Reject streams that cannot be processed.

    Raises:
        MalformedInput: On non-monotonic onsets, negative or non-finite
                        timing, or pitch/velocity outside 0-127
    """
    previous_onset = -math.inf

    for i, event in enumerate(events):
        if not (math.isfinite(event.onset) and math.isfinite(event.duration)):
            raise MalformedInput(f"Note {i} has non-finite timing: {event}")
        if event.onset < 0:
            raise MalformedInput(f"Note {i} has negative onset {event.onset}")
        if event.duration < 0:
            raise MalformedInput(f"Note {i} has negative duration {event.duration}")
        if not 0 <= event.pitch <= 127:
            raise MalformedInput(f"Note {i} pitch {event.pitch} outside MIDI range")
        if not 0 <= event.velocity <= 127:
            raise MalformedInput(f"Note {i} velocity {event.velocity} outside MIDI range")
        if event.onset < previous_onset:
            raise MalformedInput(
                f"Onsets must be nondecreasing: note {i} starts at {event.onset} "
                f"after {previous_onset}"
            )
        previous_onset = event.onset


def select_tracks(
    events: Sequence[NoteEvent],
    tracks: Optional[Sequence[int]] = None
) -> List[NoteEvent]:
    """Keep only events tagged with one of `tracks` (all events if None)."""
    if tracks is None:
        return list(events)
    wanted = set(tracks)
    return [e for e in events if e.track in wanted]


def group_events(
    events: Sequence[NoteEvent],
    tolerance: float = 0.0
) -> List[List[NoteEvent]]:
    """
    Group events by onset.

    An event joins the current group when its onset lies within `tolerance`
    seconds of the group's first onset. Events must already be validated.

    Returns:
        List of groups, each sorted by (pitch, onset)
    """
    groups: List[List[NoteEvent]] = []

    for event in events:
        if groups and event.onset - groups[-1][0].onset <= tolerance:
            groups[-1].append(event)
        else:
            groups.append([event])

    return [sorted(g, key=lambda n: (n.pitch, n.onset)) for g in groups]


def fold_into_range(pitch: int, low: int, high: int) -> int:
    """Shift a pitch by whole octaves until it lies inside [low, high]."""
    if high - low < 11:
        raise ValueError(f"Range [{low}, {high}] is narrower than an octave")
    while pitch < low:
        pitch += 12
    while pitch > high:
        pitch -= 12
    return pitch


def simplify_chord(pitches: Sequence[int], max_size: int) -> List[int]:
    """
    Reduce a sorted, de-duplicated chord to at most `max_size` pitches.

    The outer voices are kept. Inner notes doubling the bass or the top
    voice at the octave go first, then inner notes from the top down.
    """
    pitches = sorted(pitches)
    if len(pitches) <= max_size:
        return pitches
    if max_size == 1:
        return [pitches[-1]]

    lowest, highest = pitches[0], pitches[-1]
    middle = pitches[1:-1]
    to_remove = len(pitches) - max_size

    doubled = [
        p for p in middle
        if (p - lowest) % 12 == 0 or (highest - p) % 12 == 0
    ]
    for p in reversed(doubled):
        if to_remove == 0:
            break
        middle.remove(p)
        to_remove -= 1

    while to_remove > 0:
        middle.pop()
        to_remove -= 1

    return [lowest] + middle + [highest]


def prepare_notes(
    events: Sequence[NoteEvent],
    is_playable: Callable[[int], bool],
    pitch_range: Tuple[int, int],
    unplayable_policy: str = 'error',
    chord_tolerance: float = 0.0,
    max_chord_size: int = 6,
    tracks: Optional[Sequence[int]] = None
) -> PreparedNotes:
    """
    Validate, filter and group a note stream for the optimizer.

    Args:
        events: Ordered NoteEvents
        is_playable: Predicate telling whether a pitch has any fret position
        pitch_range: (lowest, highest) playable pitch, used for octave folding
        unplayable_policy: 'error', 'drop' or 'transpose'
        chord_tolerance: Onset tolerance for chord grouping (seconds)
        max_chord_size: Maximum notes per group (usually the string count)
        tracks: Optional track filter

    Returns:
        PreparedNotes with the groups and one disposition per source note

    Raises:
        MalformedInput: If the stream is malformed
        UnplayablePitch: If a pitch is unplayable and the policy is 'error'
    """
    validate_events(events)
    prepared = PreparedNotes()
    selected = select_tracks(events, tracks)

    if len(selected) < len(events):
        logger.info(f"Track filter kept {len(selected)} of {len(events)} notes")

    for raw_group in group_events(selected, chord_tolerance):
        kept: Dict[int, NoteEvent] = {}
        dispositions: Dict[int, NoteDisposition] = {}

        for note in raw_group:
            pitch = note.pitch

            if not is_playable(pitch):
                if unplayable_policy == 'error':
                    raise UnplayablePitch(pitch)
                if unplayable_policy == 'transpose':
                    pitch = fold_into_range(pitch, *pitch_range)
                if not is_playable(pitch) or unplayable_policy == 'drop':
                    logger.warning(
                        f"Dropping unplayable note {note.note_name} at {note.onset:.3f}s"
                    )
                    prepared.dispositions.append(
                        NoteDisposition(note, NoteStatus.DROPPED, reason='unplayable')
                    )
                    continue
                logger.warning(
                    f"Transposed {note.note_name} to {pitch_to_note_name(pitch)} "
                    f"at {note.onset:.3f}s"
                )

            if pitch in kept:
                # Same pitch twice in one chord: keep the louder one
                other = kept[pitch]
                loser = note if note.velocity <= other.velocity else other
                if loser is other:
                    prepared.dispositions.append(
                        NoteDisposition(dispositions[pitch].source, NoteStatus.DROPPED,
                                        reason='duplicate')
                    )
                    kept[pitch] = replace(note, pitch=pitch)
                    dispositions[pitch] = _played(note, pitch)
                else:
                    prepared.dispositions.append(
                        NoteDisposition(note, NoteStatus.DROPPED, reason='duplicate')
                    )
                continue

            kept[pitch] = replace(note, pitch=pitch)
            dispositions[pitch] = _played(note, pitch)

        if not kept:
            continue

        chosen = simplify_chord(list(kept), max_chord_size)
        for pitch in sorted(kept):
            if pitch in chosen:
                prepared.dispositions.append(dispositions[pitch])
            else:
                logger.warning(
                    f"Chord at {kept[pitch].onset:.3f}s too large, dropping "
                    f"{pitch_to_note_name(pitch)}"
                )
                prepared.dispositions.append(NoteDisposition(
                    dispositions[pitch].source, NoteStatus.DROPPED, reason='chord_size'
                ))

        prepared.groups.append(NoteGroup(
            index=len(prepared.groups),
            notes=tuple(kept[p] for p in chosen)
        ))

    return prepared


def _played(source: NoteEvent, pitch: int) -> NoteDisposition:
    status = NoteStatus.PLAYED if pitch == source.pitch else NoteStatus.TRANSPOSED
    return NoteDisposition(source, status, played=replace(source, pitch=pitch))
