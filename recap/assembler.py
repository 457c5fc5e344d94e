"""Video assembler: page stills + narration audio + subtitles.

Uses FFmpeg to render one still-image segment per timeline entry, concat
them, lay the narration track underneath and attach the subtitle track.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Sequence

from recap.errors import CancelledRunError, MuxFailureError
from recap.media import probe_duration, run_ffmpeg
from recap.models import AudioClip, Page, Timeline, TimelineEntry

logger = logging.getLogger(__name__)


def _escape_filter_path(path: Path) -> str:
    text = str(path)
    text = text.replace("\\", "\\\\")
    text = text.replace("'", "\\'")
    text = text.replace(":", "\\:")
    return text


def _frame_count(entry: TimelineEntry, fps: float) -> int:
    """Frames for ``entry``, cut at the rounded absolute boundaries.

    Rounding each boundary rather than each duration keeps the concatenated
    video within one frame of the timeline however many pages there are.
    """
    return max(1, round(entry.end * fps) - round(entry.start * fps))


def _check_stop(stop: threading.Event | None, what: str) -> None:
    if stop is not None and stop.is_set():
        raise CancelledRunError(f"Assembly stopped before {what}")


def _write_concat_list(path: Path, files: Sequence[Path]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        for item in files:
            f.write(f"file '{Path(item).resolve()}'\n")


class FfmpegMuxer:
    """Mux pages, narration clips and an SRT file into an mp4."""

    def __init__(self, assembly_config: dict | None = None) -> None:
        self.config = assembly_config or {}

    def mux(
        self,
        pages: Sequence[Page],
        clips: Sequence[AudioClip],
        subtitle_path: Path,
        timeline: Timeline,
        output_path: Path,
        stop: threading.Event | None = None,
    ) -> Path:
        tmpdir = tempfile.mkdtemp(prefix="recap_mux_")
        try:
            return self._mux_inner(
                pages, clips, subtitle_path, timeline, output_path, Path(tmpdir), stop,
            )
        except RuntimeError as exc:
            raise MuxFailureError(str(exc)) from exc
        finally:
            shutil.rmtree(tmpdir, ignore_errors=True)

    def _mux_inner(
        self,
        pages: Sequence[Page],
        clips: Sequence[AudioClip],
        subtitle_path: Path,
        timeline: Timeline,
        output_path: Path,
        tmp: Path,
        stop: threading.Event | None,
    ) -> Path:
        config = self.config
        resolution = config.get("resolution", "1920x1080")
        fps = config.get("fps", 30)
        timeout = config.get("ffmpeg_timeout", 600.0)
        width, height = resolution.split("x")

        images = {page.page_number: page.image_path for page in pages}
        missing = [e.page_number for e in timeline.entries if e.page_number not in images]
        if missing:
            raise MuxFailureError(f"No page image for timeline page(s) {missing}")
        if len(clips) != len(timeline.entries):
            raise MuxFailureError(
                f"Got {len(clips)} audio clip(s) for {len(timeline.entries)} timeline entries"
            )

        vf = ",".join([
            f"scale={width}:{height}:force_original_aspect_ratio=decrease",
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black",
            f"fps={fps}",
            "format=yuv420p",
        ])

        segment_files: list[Path] = []
        for i, entry in enumerate(timeline.entries):
            _check_stop(stop, f"segment {i}")
            frames = _frame_count(entry, fps)
            segment_path = tmp / f"seg_{i:04d}.mp4"
            cmd = [
                "ffmpeg", "-y",
                "-loop", "1",
                "-i", str(images[entry.page_number]),
                "-frames:v", str(frames),
                "-vf", vf,
                "-an",
                "-c:v", "libx264",
                "-preset", "fast",
                "-crf", "23",
                "-pix_fmt", "yuv420p",
                str(segment_path),
            ]
            logger.info("Creating segment %d: page %d, %d frames", i, entry.page_number, frames)
            run_ffmpeg(cmd, f"segment {i}", timeout=timeout)
            segment_files.append(segment_path)

        concat_list = tmp / "concat.txt"
        _write_concat_list(concat_list, segment_files)
        concat_video = tmp / "concat.mp4"
        run_ffmpeg([
            "ffmpeg", "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_list),
            "-c", "copy",
            str(concat_video),
        ], "concat", timeout=timeout)

        audio_list = tmp / "audio.txt"
        _write_concat_list(audio_list, [clip.audio_path for clip in clips])
        voice = tmp / "voice.m4a"
        run_ffmpeg([
            "ffmpeg", "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(audio_list),
            "-c:a", "aac",
            "-b:a", "192k",
            str(voice),
        ], "audio concat", timeout=timeout)

        _check_stop(stop, "mux")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        run_ffmpeg(
            self._mux_command(concat_video, voice, subtitle_path, output_path),
            "mux", timeout=timeout,
        )

        fade_dur = config.get("outro_fade", 0.0)
        if fade_dur > 0:
            self._apply_fade(output_path, fade_dur, tmp, timeout)

        logger.info("Assembled: %s (%.1f KB)", output_path, output_path.stat().st_size / 1024)
        return output_path

    def _mux_command(
        self,
        video: Path,
        voice: Path,
        subtitle_path: Path,
        output_path: Path,
    ) -> list[str]:
        config = self.config
        burn = config.get("burn_subtitles", False)
        music = config.get("music_path")
        music_path = Path(music) if music else None

        cmd = ["ffmpeg", "-y", "-i", str(video), "-i", str(voice)]
        next_input = 2

        if music_path and music_path.exists():
            music_vol = config.get("music_volume", 0.15)
            cmd += ["-stream_loop", "-1", "-i", str(music_path)]
            cmd += [
                "-filter_complex",
                f"[1:a]volume=1.0[voice];[2:a]volume={music_vol}[music];"
                f"[voice][music]amix=inputs=2:duration=first[aout]",
            ]
            audio_map = "[aout]"
            next_input += 1
        else:
            audio_map = "1:a:0"

        if burn:
            cmd += [
                "-map", "0:v:0", "-map", audio_map,
                "-vf", f"subtitles='{_escape_filter_path(subtitle_path)}'",
                "-c:v", "libx264", "-preset", "fast", "-crf", "23", "-pix_fmt", "yuv420p",
            ]
        else:
            cmd += [
                "-i", str(subtitle_path),
                "-map", "0:v:0", "-map", audio_map, "-map", f"{next_input}:s:0",
                "-c:v", "copy",
                "-c:s", "mov_text",
            ]

        cmd += ["-c:a", "aac", "-b:a", "192k", "-shortest", str(output_path)]
        return cmd

    def _apply_fade(self, output_path: Path, fade_dur: float, tmp: Path, timeout: float) -> None:
        duration = probe_duration(output_path)
        fade_start = max(0, duration - fade_dur)
        pre_fade = tmp / "pre_fade.mp4"
        shutil.move(str(output_path), str(pre_fade))

        logger.info("Applying %.1fs fade-out at %.1fs", fade_dur, fade_start)
        run_ffmpeg([
            "ffmpeg", "-y",
            "-i", str(pre_fade),
            "-map", "0",
            "-vf", f"fade=t=out:st={fade_start:.3f}:d={fade_dur:.3f}",
            "-af", f"afade=t=out:st={fade_start:.3f}:d={fade_dur:.3f}",
            "-c:v", "libx264", "-preset", "fast", "-crf", "23",
            "-c:a", "aac", "-b:a", "192k",
            "-c:s", "copy",
            str(output_path),
        ], "fade", timeout=timeout)
