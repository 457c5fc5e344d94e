"""Media assembly coordinator: drives one run through every stage.

Stages run strictly in order, each in a worker thread bounded by its own
timeout. Every stage reports one progress record on entry; the run ends
with exactly one terminal record (success, failure or cancellation).
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from recap.errors import (
    CancelledRunError,
    MuxFailureError,
    PipelineError,
    SynthesisFailureError,
    StageTimeoutError,
    UnreadableDocumentError,
)
from recap.models import PipelineRun, RunState
from recap.narration import NarrationPlanner
from recap.pages import PageStore
from recap.progress import (
    CANCELLED_MESSAGE,
    ProgressSink,
    error_record,
    status_record,
    success_record,
)
from recap.subtitles import DEFAULT_MAX_CHARS, write_srt
from recap.timeline import build_timeline
from recap.tts import synthesize_segments

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorSettings:
    outputs_dir: Path
    work_root: Path
    video_url_prefix: str = "/outputs"
    subtitle_max_chars: int = DEFAULT_MAX_CHARS
    rasterize_timeout: float = 300.0
    narrate_timeout: float = 600.0
    synthesize_timeout: float = 900.0
    assemble_timeout: float = 1800.0


@dataclass
class _Stage:
    state: RunState
    progress: int
    status: str
    error_type: type[PipelineError]
    timeout: float
    work: Callable[[PipelineRun, threading.Event], Any]
    apply: Callable[[PipelineRun, Any], None]


def new_run_id() -> str:
    return uuid.uuid4().hex


class Coordinator:
    """Runs uploaded documents through rasterize -> narrate -> synthesize -> assemble.

    The coordinator holds only collaborators and settings; all per-run
    state lives in the ``PipelineRun`` returned by :meth:`run`, so one
    instance can serve many concurrent runs.
    """

    def __init__(
        self,
        rasterizer,
        planner: NarrationPlanner,
        synthesizer,
        muxer,
        settings: CoordinatorSettings,
    ) -> None:
        self.rasterizer = rasterizer
        self.planner = planner
        self.synthesizer = synthesizer
        self.muxer = muxer
        self.settings = settings

    # ------------------------------------------------------------------
    # Stage work (runs in worker threads; must not touch the run)
    # Loops check ``stop`` between pages and give up once it is set.
    # ------------------------------------------------------------------

    def _rasterize(self, run: PipelineRun, stop: threading.Event):
        pages = self.rasterizer.rasterize(run.source_path, run.work_dir / "pages")
        return list(PageStore(pages).get_pages())

    def _narrate(self, run: PipelineRun, stop: threading.Event):
        return self.planner.plan(run.pages, stop=stop)

    def _synthesize(self, run: PipelineRun, stop: threading.Event):
        return synthesize_segments(
            run.segments, self.synthesizer, run.work_dir / "audio", stop=stop,
        )

    def _assemble(self, run: PipelineRun, stop: threading.Event):
        timeline = build_timeline(run.segments, run.clips)
        subtitle_path = write_srt(
            timeline.entries,
            run.work_dir / "subtitles.srt",
            self.settings.subtitle_max_chars,
        )
        video_path = self.muxer.mux(
            run.pages, run.clips, subtitle_path, timeline, self._output_path(run), stop=stop,
        )
        return timeline, subtitle_path, Path(video_path)

    # ------------------------------------------------------------------
    # Result application (event loop)
    # ------------------------------------------------------------------

    def _output_path(self, run: PipelineRun) -> Path:
        return self.settings.outputs_dir / f"manga_recap_{run.run_id}.mp4"

    @staticmethod
    def _set_pages(run: PipelineRun, pages) -> None:
        run.pages = pages

    @staticmethod
    def _set_segments(run: PipelineRun, segments) -> None:
        run.segments = segments

    @staticmethod
    def _set_clips(run: PipelineRun, clips) -> None:
        run.clips = clips

    def _set_video(self, run: PipelineRun, result) -> None:
        run.timeline, run.subtitle_path, run.video_path = result
        prefix = self.settings.video_url_prefix.rstrip("/")
        run.video_url = f"{prefix}/{run.video_path.name}"

    def _stages(self) -> list[_Stage]:
        s = self.settings
        return [
            _Stage(RunState.RASTERIZING, 20, "Processing PDF...",
                   UnreadableDocumentError, s.rasterize_timeout, self._rasterize, self._set_pages),
            _Stage(RunState.NARRATING, 40, "Analyzing scenes...",
                   PipelineError, s.narrate_timeout, self._narrate, self._set_segments),
            _Stage(RunState.SYNTHESIZING, 60, "Generating narration audio...",
                   SynthesisFailureError, s.synthesize_timeout, self._synthesize, self._set_clips),
            _Stage(RunState.ASSEMBLING, 80, "Creating video...",
                   MuxFailureError, s.assemble_timeout, self._assemble, self._set_video),
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        source_path: str | Path,
        sink: ProgressSink,
        cancel_event: asyncio.Event | None = None,
        run_id: str | None = None,
    ) -> PipelineRun:
        """Execute one run and return its final state.

        Never raises for stage failures; those end the run as ``failed``.
        """
        run_id = run_id or new_run_id()
        run = PipelineRun(
            run_id=run_id,
            source_path=Path(source_path),
            work_dir=self.settings.work_root / run_id,
        )
        logger.info("Run %s started for %s", run_id, run.source_path.name)

        try:
            run.work_dir.mkdir(parents=True, exist_ok=True)
            for stage in self._stages():
                if cancel_event is not None and cancel_event.is_set():
                    raise CancelledRunError(CANCELLED_MESSAGE)
                await self._run_stage(run, stage, sink)
            self._complete(run, sink)
        except CancelledRunError as exc:
            self._finish(run, sink, RunState.CANCELLED, exc)
        except PipelineError as exc:
            self._finish(run, sink, RunState.FAILED, exc)
        except asyncio.CancelledError:
            self._finish(run, sink, RunState.CANCELLED, CancelledRunError(CANCELLED_MESSAGE))
            raise
        except Exception as exc:
            logger.exception("Run %s: unexpected coordinator error", run_id)
            self._finish(run, sink, RunState.FAILED, PipelineError(str(exc) or "An error occurred"))
        finally:
            shutil.rmtree(run.work_dir, ignore_errors=True)
            if run.state is not RunState.COMPLETE:
                self._remove_output(run)

        return run

    async def _run_stage(self, run: PipelineRun, stage: _Stage, sink: ProgressSink) -> None:
        run.transition(stage.state)
        run.progress = stage.progress
        self._send(run, sink, status_record(stage.status, stage.progress))

        stop = threading.Event()
        worker = asyncio.ensure_future(asyncio.to_thread(stage.work, run, stop))
        try:
            done, _ = await asyncio.wait({worker}, timeout=stage.timeout)
        except asyncio.CancelledError:
            stop.set()
            await self._drain(run, stage, worker)
            raise
        if not done:
            # The thread cannot be killed; wait for it to notice the flag
            # so nothing it writes outlives the run.
            stop.set()
            await self._drain(run, stage, worker)
            raise StageTimeoutError(
                f"Stage '{stage.state.value}' timed out after {stage.timeout:g}s"
            )

        try:
            result = worker.result()
        except PipelineError:
            raise
        except Exception as exc:
            logger.exception("Run %s: unexpected error in stage %s", run.run_id, stage.state.value)
            raise stage.error_type(str(exc) or exc.__class__.__name__) from exc

        stage.apply(run, result)

    async def _drain(self, run: PipelineRun, stage: _Stage, worker: asyncio.Future) -> None:
        logger.info("Run %s: waiting for stage %s to stop", run.run_id, stage.state.value)
        try:
            await asyncio.shield(worker)
        except Exception as exc:
            logger.info("Run %s: stage %s stopped: %s", run.run_id, stage.state.value, exc)

    def _remove_output(self, run: PipelineRun) -> None:
        output_path = self._output_path(run)
        try:
            output_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Run %s: could not remove partial output %s: %s",
                           run.run_id, output_path, exc)

    def _send(self, run: PipelineRun, sink: ProgressSink, record: dict) -> None:
        try:
            sink.send(record)
        except Exception:
            logger.exception("Run %s: progress sink rejected %r", run.run_id, record)

    def _complete(self, run: PipelineRun, sink: ProgressSink) -> None:
        run.transition(RunState.COMPLETE)
        run.progress = 100
        self._send(run, sink, success_record(run.video_url))
        logger.info("Run %s complete: %s", run.run_id, run.video_path)

        try:
            run.source_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Run %s: could not remove upload %s: %s", run.run_id, run.source_path, exc)

    def _finish(
        self,
        run: PipelineRun,
        sink: ProgressSink,
        state: RunState,
        exc: PipelineError,
    ) -> None:
        if run.is_done:
            return
        run.transition(state)
        run.error_kind = exc.kind
        run.error_message = str(exc)
        logger.error("Run %s %s (%s): %s", run.run_id, state.value, exc.kind, exc)
        self._send(run, sink, error_record(run.error_message))
