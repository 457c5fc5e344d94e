"""Narrated recap videos from manga PDFs."""

from recap.coordinator import Coordinator, CoordinatorSettings
from recap.models import (
    AudioClip,
    NarrationSegment,
    Page,
    PipelineRun,
    RunState,
    SubtitleCue,
    Timeline,
    TimelineEntry,
)

__all__ = [
    "AudioClip",
    "Coordinator",
    "CoordinatorSettings",
    "NarrationSegment",
    "Page",
    "PipelineRun",
    "RunState",
    "SubtitleCue",
    "Timeline",
    "TimelineEntry",
]
