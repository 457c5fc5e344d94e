"""Timeline builder: absolute start/end placement for every page."""

from __future__ import annotations

import logging
from typing import Sequence

from recap.errors import EmptyTimelineError
from recap.models import AudioClip, NarrationSegment, Timeline, TimelineEntry

logger = logging.getLogger(__name__)

# Estimate vs. measured drift worth a debug line.
_DRIFT_TOLERANCE = 0.05


def _reconcile(
    segments: Sequence[NarrationSegment],
    clips: Sequence[AudioClip],
) -> list[float]:
    """Per-page durations, taking the measured audio length as authoritative."""
    if len(clips) != len(segments):
        raise ValueError(
            f"Got {len(clips)} audio clip(s) for {len(segments)} narration segment(s)"
        )
    durations = []
    for seg, clip in zip(segments, clips):
        if seg.page_number != clip.page_number:
            raise ValueError(
                f"Audio clip for page {clip.page_number} does not match "
                f"segment for page {seg.page_number}"
            )
        if abs(seg.duration - clip.duration) > _DRIFT_TOLERANCE:
            logger.debug(
                "Page %d: estimated %.3fs, measured %.3fs; using measured",
                seg.page_number, seg.duration, clip.duration,
            )
        durations.append(clip.duration)
    return durations


def build_timeline(
    segments: Sequence[NarrationSegment],
    clips: Sequence[AudioClip] | None = None,
) -> Timeline:
    """Lay segments end to end starting at zero.

    When ``clips`` are given, each page lasts exactly as long as its
    synthesized audio; otherwise the planner's estimate is used.
    """
    if not segments:
        raise EmptyTimelineError("Cannot build a timeline from zero narration segments")

    if clips is not None:
        durations = _reconcile(segments, clips)
    else:
        durations = [seg.duration for seg in segments]

    entries: list[TimelineEntry] = []
    cursor = 0.0
    for seg, duration in zip(segments, durations):
        if duration <= 0:
            raise ValueError(f"Page {seg.page_number} has non-positive duration {duration}")
        end = cursor + duration
        entries.append(TimelineEntry(
            page_number=seg.page_number,
            start=cursor,
            end=end,
            text=seg.text,
        ))
        cursor = end

    logger.info("Timeline: %d entries, %.2fs total", len(entries), cursor)
    return Timeline(entries=tuple(entries), total_duration=cursor)
