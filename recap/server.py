"""HTTP surface: upload a PDF, stream progress back as Server-Sent Events."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI, File, UploadFile
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles

from recap.config import build_coordinator, get_uploads_dir, load_config
from recap.coordinator import Coordinator, new_run_id
from recap.progress import QueueSink, error_record

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _sse(record: dict) -> bytes:
    return f"data: {json.dumps(record)}\n\n".encode("utf-8")


async def _single_record(record: dict) -> AsyncIterator[bytes]:
    yield _sse(record)


async def _event_stream(
    coordinator: Coordinator,
    source_path: Path,
    run_id: str,
    tasks: set[asyncio.Task],
) -> AsyncIterator[bytes]:
    sink = QueueSink()
    cancel = asyncio.Event()
    task = asyncio.create_task(
        coordinator.run(source_path, sink, cancel_event=cancel, run_id=run_id)
    )
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    try:
        async for record in sink.records():
            yield _sse(record)
    finally:
        if not task.done():
            # Client went away; the run stops before its next stage.
            logger.info("Client disconnected from %s; cancelling run", source_path.name)
            cancel.set()


def _save_upload(
    uploads_dir: Path, filename: str | None, contents: bytes, run_id: str,
) -> Path:
    uploads_dir.mkdir(parents=True, exist_ok=True)
    safe_name = Path(filename or "upload.pdf").name
    path = uploads_dir / f"{run_id}_{safe_name}"
    with open(path, "wb") as f:
        f.write(contents)
    logger.info("Saved upload %s (%.1f KB)", path, len(contents) / 1024)
    return path


def create_app(
    config: dict | None = None,
    config_path: str | None = None,
    coordinator: Coordinator | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    ``coordinator`` overrides the one wired from config (used by tests).
    """
    if config is None:
        config = load_config(config_path)
    coordinator = coordinator or build_coordinator(config, config_path)
    uploads_dir = get_uploads_dir(config, config_path)
    outputs_dir = coordinator.settings.outputs_dir
    outputs_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="Manga Recap")
    app.state.coordinator = coordinator
    app.state.runs = set()

    @app.post("/api/process")
    async def process(pdf: UploadFile | None = File(None)) -> StreamingResponse:
        """Run the pipeline on an uploaded PDF, streaming progress records."""
        if pdf is None:
            return StreamingResponse(
                _single_record(error_record("No file uploaded")),
                media_type="text/event-stream",
                headers=_SSE_HEADERS,
            )

        contents = await pdf.read()
        run_id = new_run_id()
        source_path = _save_upload(uploads_dir, pdf.filename, contents, run_id)
        return StreamingResponse(
            _event_stream(coordinator, source_path, run_id, app.state.runs),
            media_type="text/event-stream",
            headers=_SSE_HEADERS,
        )

    prefix = "/" + coordinator.settings.video_url_prefix.strip("/")
    app.mount(prefix, StaticFiles(directory=outputs_dir, check_dir=False), name="outputs")
    return app
