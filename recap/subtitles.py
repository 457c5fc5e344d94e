"""SubRip subtitle emission from a timeline."""

from __future__ import annotations

import logging
import math
from decimal import ROUND_FLOOR, Decimal
from pathlib import Path
from typing import Sequence

from recap.errors import EmptyTimelineError
from recap.models import SubtitleCue, TimelineEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 42


def format_timestamp(seconds: float) -> str:
    """Format ``seconds`` as ``HH:MM:SS,mmm`` with milliseconds truncated.

    Hours are not wrapped at 24. Truncation works on the float's shortest
    decimal form, so ``1.001`` keeps its millisecond.
    """
    if not math.isfinite(seconds):
        raise ValueError(f"Timestamp must be finite: {seconds}")
    if seconds < 0:
        raise ValueError(f"Timestamp cannot be negative: {seconds}")
    total_ms = int((Decimal(repr(float(seconds))) * 1000).to_integral_value(rounding=ROUND_FLOOR))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def _wrap_text(text: str, max_chars: int) -> str:
    words = text.split()
    lines = []
    current = ""
    for word in words:
        test = f"{current} {word}".strip()
        if len(test) > max_chars and current:
            lines.append(current)
            current = word
        else:
            current = test
    if current:
        lines.append(current)
    return "\n".join(lines)


def build_cues(entries: Sequence[TimelineEntry]) -> list[SubtitleCue]:
    if not entries:
        raise EmptyTimelineError("Cannot emit subtitles for an empty timeline")
    return [
        SubtitleCue(
            index=i,
            start=format_timestamp(entry.start),
            end=format_timestamp(entry.end),
            text=entry.text,
        )
        for i, entry in enumerate(entries, start=1)
    ]


def render_srt(cues: Sequence[SubtitleCue], max_chars: int = DEFAULT_MAX_CHARS) -> str:
    blocks = []
    for cue in cues:
        text = _wrap_text(cue.text, max_chars) if max_chars > 0 else cue.text
        blocks.append(f"{cue.index}\n{cue.start} --> {cue.end}\n{text}\n")
    return "\n".join(blocks)


def emit(entries: Sequence[TimelineEntry], max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Render the timeline as an SRT document."""
    return render_srt(build_cues(entries), max_chars)


def write_srt(
    entries: Sequence[TimelineEntry],
    path: Path,
    max_chars: int = DEFAULT_MAX_CHARS,
) -> Path:
    content = emit(entries, max_chars)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)
    logger.info("Subtitles saved: %s (%d cues)", path, len(entries))
    return path
