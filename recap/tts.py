"""Speech synthesis for narration segments.

Every synthesizer writes an audio file and returns its measured duration;
the timeline uses that measurement, not the planner's estimate.
"""

from __future__ import annotations

import base64
import logging
import threading
from pathlib import Path
from typing import Protocol, Sequence

import httpx

from recap.errors import CancelledRunError, SynthesisFailureError
from recap.media import probe_duration, run_ffmpeg
from recap.models import AudioClip, NarrationSegment
from recap.narration import DEFAULT_MIN_DURATION, DEFAULT_WORDS_PER_MINUTE, estimate_duration

logger = logging.getLogger(__name__)

_ELEVENLABS_BASE = "https://api.elevenlabs.io"


class Synthesizer(Protocol):
    def synthesize(self, text: str, output_path: Path) -> float: ...


class ElevenLabsSynthesizer:
    """TTS via the ElevenLabs ``with-timestamps`` endpoint."""

    def __init__(self, elevenlabs_config: dict, client: httpx.Client | None = None) -> None:
        self.api_key = elevenlabs_config["api_key"]
        self.voice_id = elevenlabs_config["voice_id"]
        self.model_id = elevenlabs_config.get("model_id", "eleven_multilingual_v2")
        self.voice_settings = elevenlabs_config.get("voice_settings", {})
        self.timeout = elevenlabs_config.get("timeout", 60.0)
        self._client = client

    def _request(self, text: str) -> dict:
        url = f"{_ELEVENLABS_BASE}/v1/text-to-speech/{self.voice_id}/with-timestamps"
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        body = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": self.voice_settings.get("stability", 0.5),
                "similarity_boost": self.voice_settings.get("similarity_boost", 0.75),
                "style": self.voice_settings.get("style", 0.4),
            },
        }
        if self._client is not None:
            response = self._client.post(url, headers=headers, json=body)
            response.raise_for_status()
            return response.json()
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(url, headers=headers, json=body)
            response.raise_for_status()
            return response.json()

    def synthesize(self, text: str, output_path: Path) -> float:
        logger.info("Calling ElevenLabs API (voice=%s, model=%s): %r",
                    self.voice_id, self.model_id, text[:80])
        data = self._request(text)

        audio_b64 = data.get("audio_base64", "")
        if not audio_b64:
            raise ValueError("No audio in ElevenLabs response")

        audio_bytes = base64.b64decode(audio_b64)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(audio_bytes)

        duration = probe_duration(output_path)
        logger.info("Audio saved: %s (%d bytes, %.2fs)", output_path, len(audio_bytes), duration)
        return duration


class SilentSynthesizer:
    """Renders silence as long as the narration would take to speak.

    Lets the full pipeline run offline; the subtitles carry the narration.
    """

    def __init__(
        self,
        words_per_minute: float = DEFAULT_WORDS_PER_MINUTE,
        min_duration: float = DEFAULT_MIN_DURATION,
        sample_rate: int = 44100,
        timeout: float = 120.0,
    ) -> None:
        self.words_per_minute = words_per_minute
        self.min_duration = min_duration
        self.sample_rate = sample_rate
        self.timeout = timeout

    def synthesize(self, text: str, output_path: Path) -> float:
        duration = estimate_duration(text, self.words_per_minute, self.min_duration)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = [
            "ffmpeg", "-y",
            "-f", "lavfi",
            "-i", f"anullsrc=r={self.sample_rate}:cl=stereo",
            "-t", f"{duration:.3f}",
            "-c:a", "libmp3lame", "-b:a", "128k",
            str(output_path),
        ]
        run_ffmpeg(cmd, "silence", timeout=self.timeout)
        return probe_duration(output_path)


def synthesize_segments(
    segments: Sequence[NarrationSegment],
    synthesizer: Synthesizer,
    audio_dir: Path,
    stop: threading.Event | None = None,
) -> list[AudioClip]:
    """Synthesize every segment in order. Any failure aborts the stage."""
    clips: list[AudioClip] = []
    for seg in segments:
        if stop is not None and stop.is_set():
            raise CancelledRunError(f"Synthesis stopped before page {seg.page_number}")
        audio_path = audio_dir / f"page_{seg.page_number:04d}.mp3"
        try:
            duration = synthesizer.synthesize(seg.text, audio_path)
        except (httpx.HTTPError, RuntimeError, ValueError, OSError) as exc:
            raise SynthesisFailureError(
                f"Speech synthesis failed for page {seg.page_number}: {exc}"
            ) from exc
        if duration <= 0:
            raise SynthesisFailureError(
                f"Speech synthesis produced no audio for page {seg.page_number}"
            )
        clips.append(AudioClip(page_number=seg.page_number, audio_path=audio_path, duration=duration))
    logger.info("Synthesized %d clip(s), %.1fs of audio", len(clips), sum(c.duration for c in clips))
    return clips
