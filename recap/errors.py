"""Failure taxonomy for pipeline runs."""

from __future__ import annotations


class PipelineError(Exception):
    """Raised when a pipeline stage fails for a run.

    ``kind`` is the stable classification reported alongside the message.
    """

    kind = "PipelineError"

    def __init__(self, message: str, kind: str | None = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message)


class EmptyDocumentError(PipelineError):
    kind = "EmptyDocument"


class UnreadableDocumentError(PipelineError):
    kind = "UnreadableDocument"


class EmptyTimelineError(PipelineError):
    kind = "EmptyTimeline"


class StageTimeoutError(PipelineError):
    kind = "StageTimeout"


class SynthesisFailureError(PipelineError):
    kind = "SynthesisFailure"


class MuxFailureError(PipelineError):
    kind = "MuxFailure"


class CancelledRunError(PipelineError):
    kind = "Cancelled"
