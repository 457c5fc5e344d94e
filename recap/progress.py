"""Progress records and the sinks that carry them to a client."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

COMPLETE_STATUS = "Complete!"
CANCELLED_MESSAGE = "Processing cancelled"


class ProgressSink(Protocol):
    def send(self, record: dict[str, Any]) -> None: ...


def status_record(status: str, progress: int) -> dict[str, Any]:
    return {"status": status, "progress": progress}


def success_record(video_url: str) -> dict[str, Any]:
    return {"status": COMPLETE_STATUS, "progress": 100, "videoUrl": video_url}


def error_record(message: str) -> dict[str, Any]:
    return {"error": message}


def is_terminal(record: dict[str, Any]) -> bool:
    return "videoUrl" in record or "error" in record


class QueueSink:
    """Pushes records onto an unbounded asyncio queue.

    ``send`` never waits, so a slow reader cannot stall the pipeline.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def send(self, record: dict[str, Any]) -> None:
        self.queue.put_nowait(record)

    async def records(self):
        """Yield records until (and including) the terminal one."""
        while True:
            record = await self.queue.get()
            yield record
            if is_terminal(record):
                return

