"""Data models for the manga recap pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


@dataclass(frozen=True)
class Page:
    """One rasterized page of the source document."""
    page_number: int
    image_path: Path


@dataclass(frozen=True)
class NarrationSegment:
    """Spoken text attached to one page."""
    page_number: int
    text: str
    duration: float  # seconds, estimated from word count


@dataclass(frozen=True)
class AudioClip:
    """Synthesized narration audio for one page."""
    page_number: int
    audio_path: Path
    duration: float  # measured seconds


@dataclass(frozen=True)
class TimelineEntry:
    """Absolute placement of one page + narration pair in the video."""
    page_number: int
    start: float
    end: float
    text: str

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Timeline:
    entries: tuple[TimelineEntry, ...]
    total_duration: float


@dataclass(frozen=True)
class SubtitleCue:
    """One SubRip cue. ``start``/``end`` are formatted timestamps."""
    index: int
    start: str
    end: str
    text: str


class RunState(str, Enum):
    UPLOADED = "uploaded"
    RASTERIZING = "rasterizing"
    NARRATING = "narrating"
    SYNTHESIZING = "synthesizing"
    ASSEMBLING = "assembling"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETE, RunState.FAILED, RunState.CANCELLED)


@dataclass
class PipelineRun:
    """State of one end-to-end run for one uploaded document.

    Attributes:
        run_id: Unique identifier; namespaces the work dir and output file.
        source_path: The uploaded document. Deleted only after completion.
        work_dir: Scratch directory owned exclusively by this run.
        state: Current lifecycle state.
        progress: Last reported percentage (0-100).
        video_path: Final video on disk, once complete.
        video_url: Public location of the final video, once complete.
        error_kind: Failure classification (e.g. "EmptyDocument").
        error_message: Human-readable failure message.
    """
    run_id: str
    source_path: Path
    work_dir: Path
    state: RunState = RunState.UPLOADED
    progress: int = 0
    video_path: Path | None = None
    video_url: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    pages: list[Page] = field(default_factory=list)
    segments: list[NarrationSegment] = field(default_factory=list)
    clips: list[AudioClip] = field(default_factory=list)
    timeline: Timeline | None = None
    subtitle_path: Path | None = None
    history: list[RunState] = field(default_factory=list)

    @property
    def is_done(self) -> bool:
        return self.state.is_terminal

    def transition(self, new_state: RunState) -> None:
        """Move to ``new_state``. Terminal states never transition further."""
        if self.state.is_terminal:
            raise RuntimeError(
                f"Run {self.run_id} is already {self.state.value}; "
                f"cannot move to {new_state.value}"
            )
        self.history.append(self.state)
        self.state = new_state
