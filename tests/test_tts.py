import base64
import json
import threading

import httpx
import pytest

from recap import tts as tts_module
from recap.errors import CancelledRunError, SynthesisFailureError
from recap.models import NarrationSegment
from recap.tts import ElevenLabsSynthesizer, SilentSynthesizer, synthesize_segments

_CONFIG = {
    "api_key": "test-key",
    "voice_id": "voice-123",
    "voice_settings": {"stability": 0.3},
}


def make_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_elevenlabs_writes_audio_and_returns_measured_duration(tmp_path, monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "audio_base64": base64.b64encode(b"mp3-bytes").decode(),
            "alignment": {"character_end_times_seconds": [0.1, 3.9]},
        })

    monkeypatch.setattr(tts_module, "probe_duration", lambda path: 4.25)
    synth = ElevenLabsSynthesizer(_CONFIG, client=make_client(handler))
    out = tmp_path / "audio" / "page_0001.mp3"

    duration = synth.synthesize("Welcome to this manga recap.", out)

    assert duration == 4.25
    assert out.read_bytes() == b"mp3-bytes"
    assert seen["url"].endswith("/v1/text-to-speech/voice-123/with-timestamps")
    assert seen["key"] == "test-key"
    assert seen["body"]["text"] == "Welcome to this manga recap."
    assert seen["body"]["voice_settings"]["stability"] == 0.3
    assert seen["body"]["model_id"] == "eleven_multilingual_v2"


def test_elevenlabs_missing_audio_raises(tmp_path):
    synth = ElevenLabsSynthesizer(
        _CONFIG, client=make_client(lambda request: httpx.Response(200, json={})),
    )
    with pytest.raises(ValueError):
        synth.synthesize("Hello", tmp_path / "a.mp3")


def test_http_error_becomes_synthesis_failure(tmp_path):
    synth = ElevenLabsSynthesizer(
        _CONFIG, client=make_client(lambda request: httpx.Response(500, text="boom")),
    )
    segments = [NarrationSegment(page_number=1, text="Hello there.", duration=3.0)]

    with pytest.raises(SynthesisFailureError, match="page 1"):
        synthesize_segments(segments, synth, tmp_path)


def test_silent_synthesizer_renders_estimated_length(tmp_path, monkeypatch):
    commands = []
    monkeypatch.setattr(tts_module, "run_ffmpeg", lambda cmd, what, timeout: commands.append(cmd))
    monkeypatch.setattr(tts_module, "probe_duration", lambda path: 4.02)

    duration = SilentSynthesizer().synthesize(
        "Welcome to this manga recap. Let's dive into the story.", tmp_path / "a.mp3",
    )

    assert duration == 4.02
    cmd = commands[0]
    assert cmd[cmd.index("-t") + 1] == "4.000"
    assert "anullsrc=r=44100:cl=stereo" in cmd


class _ScriptedSynth:
    def __init__(self, durations):
        self.durations = list(durations)

    def synthesize(self, text, output_path):
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"ID3")
        return self.durations.pop(0)


def test_synthesize_segments_returns_clips_in_order(tmp_path):
    segments = [
        NarrationSegment(page_number=n, text=f"Page {n}.", duration=3.0) for n in (1, 2, 3)
    ]
    clips = synthesize_segments(segments, _ScriptedSynth([3.2, 4.1, 5.0]), tmp_path)

    assert [c.page_number for c in clips] == [1, 2, 3]
    assert [c.duration for c in clips] == [3.2, 4.1, 5.0]
    assert clips[1].audio_path == tmp_path / "page_0002.mp3"


def test_zero_duration_audio_is_a_failure(tmp_path):
    segments = [NarrationSegment(page_number=1, text="Hi.", duration=3.0)]

    with pytest.raises(SynthesisFailureError):
        synthesize_segments(segments, _ScriptedSynth([0.0]), tmp_path)


def test_stop_flag_halts_between_pages(tmp_path):
    stop = threading.Event()

    class StoppingSynth(_ScriptedSynth):
        def synthesize(self, text, output_path):
            stop.set()
            return super().synthesize(text, output_path)

    segments = [
        NarrationSegment(page_number=n, text=f"Page {n}.", duration=3.0) for n in (1, 2, 3)
    ]
    synth = StoppingSynth([3.0, 3.0, 3.0])

    with pytest.raises(CancelledRunError, match="page 2"):
        synthesize_segments(segments, synth, tmp_path, stop=stop)
    assert len(synth.durations) == 2
    assert not (tmp_path / "page_0002.mp3").exists()
