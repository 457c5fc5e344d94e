"""Thin wrappers around the ffmpeg/ffprobe command-line tools."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 600.0


def run_ffmpeg(cmd: list[str], what: str, timeout: float = _DEFAULT_TIMEOUT) -> None:
    """Run an ffmpeg command, raising RuntimeError with the stderr tail on failure."""
    logger.debug("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise RuntimeError(f"FFmpeg {what} timed out after {timeout:.0f}s") from exc
    except FileNotFoundError as exc:
        raise RuntimeError(f"{cmd[0]} not found on PATH") from exc
    if result.returncode != 0:
        raise RuntimeError(f"FFmpeg {what} failed: {result.stderr[-500:]}")


def probe_duration(path: Path, timeout: float = 60.0) -> float:
    """Return the container duration of ``path`` in seconds."""
    try:
        result = subprocess.run(
            [
                "ffprobe", "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(path),
            ],
            capture_output=True, text=True, timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise RuntimeError(f"ffprobe timed out on {path}") from exc
    except FileNotFoundError as exc:
        raise RuntimeError("ffprobe not found on PATH") from exc
    try:
        duration = float(result.stdout.strip())
    except ValueError as exc:
        raise RuntimeError(f"Could not read duration of {path}: {result.stderr[-200:]}") from exc
    if duration <= 0:
        raise RuntimeError(f"Non-positive duration {duration} for {path}")
    return duration
