import functools
import operator
from pathlib import Path

import pytest

from recap.errors import EmptyTimelineError
from recap.models import AudioClip, NarrationSegment
from recap.timeline import build_timeline


def make_segments(durations: list[float]) -> list[NarrationSegment]:
    return [
        NarrationSegment(page_number=i, text=f"Page {i} narration.", duration=d)
        for i, d in enumerate(durations, start=1)
    ]


def make_clips(durations: list[float]) -> list[AudioClip]:
    return [
        AudioClip(page_number=i, audio_path=Path(f"page_{i:04d}.mp3"), duration=d)
        for i, d in enumerate(durations, start=1)
    ]


def test_entries_are_contiguous_from_zero():
    timeline = build_timeline(make_segments([4.0, 4.4, 4.8, 3.0, 7.25]))
    entries = timeline.entries

    assert entries[0].start == 0
    for prev, nxt in zip(entries, entries[1:]):
        assert prev.end == nxt.start
    assert entries[-1].end == timeline.total_duration


def test_starts_are_running_sums():
    timeline = build_timeline(make_segments([3.0, 4.5, 6.25]))

    assert [e.start for e in timeline.entries] == [0.0, 3.0, 7.5]
    assert [e.end for e in timeline.entries] == [3.0, 7.5, 13.75]


def test_total_duration_is_left_to_right_sum():
    durations = [3.1] * 10
    timeline = build_timeline(make_segments(durations))

    assert timeline.total_duration == functools.reduce(operator.add, durations)
    assert timeline.total_duration == timeline.entries[-1].end


def test_single_segment():
    timeline = build_timeline(make_segments([5.5]))

    assert len(timeline.entries) == 1
    assert timeline.entries[0].start == 0.0
    assert timeline.entries[0].end == 5.5
    assert timeline.total_duration == 5.5


def test_entries_carry_page_and_text():
    timeline = build_timeline(make_segments([3.0, 3.0]))

    assert [e.page_number for e in timeline.entries] == [1, 2]
    assert timeline.entries[1].text == "Page 2 narration."
    assert timeline.entries[1].duration == 3.0


def test_empty_input_raises():
    with pytest.raises(EmptyTimelineError):
        build_timeline([])


def test_rebuilding_is_bit_identical():
    segments = make_segments([4.0, 4.4, 4.8, 3.3, 3.7])

    first = build_timeline(segments)
    second = build_timeline(segments)

    assert first == second
    assert [e.start.hex() for e in first.entries] == [e.start.hex() for e in second.entries]


def test_measured_audio_duration_wins_over_estimate():
    segments = make_segments([4.0, 4.4, 4.8])
    clips = make_clips([3.5, 6.0, 2.25])

    timeline = build_timeline(segments, clips)

    assert [e.start for e in timeline.entries] == [0.0, 3.5, 9.5]
    assert timeline.total_duration == 11.75


def test_clip_count_mismatch_raises():
    with pytest.raises(ValueError):
        build_timeline(make_segments([3.0, 3.0]), make_clips([3.0]))


def test_clip_page_mismatch_raises():
    clips = [
        AudioClip(page_number=2, audio_path=Path("a.mp3"), duration=3.0),
        AudioClip(page_number=1, audio_path=Path("b.mp3"), duration=3.0),
    ]
    with pytest.raises(ValueError):
        build_timeline(make_segments([3.0, 3.0]), clips)


def test_zero_length_clip_raises():
    with pytest.raises(ValueError):
        build_timeline(make_segments([3.0]), make_clips([0.0]))
