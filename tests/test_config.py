import pytest

from recap.config import (
    build_coordinator,
    build_planner,
    build_settings,
    build_synthesizer,
    get_uploads_dir,
    load_config,
)
from recap.narration import TemplateCaptioner
from recap.pages import PdfRasterizer
from recap.tts import ElevenLabsSynthesizer, SilentSynthesizer


def write_config(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_explicit_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_empty_config_file_is_empty_dict(tmp_path):
    assert load_config(write_config(tmp_path, "")) == {}


def test_relative_paths_resolve_against_config_dir(tmp_path):
    config_path = write_config(tmp_path, "paths:\n  outputs_dir: out\n")
    config = load_config(config_path)

    settings = build_settings(config, config_path)

    assert settings.outputs_dir == tmp_path / "out"
    assert settings.work_root == tmp_path / "work"
    assert get_uploads_dir(config, config_path) == tmp_path / "public" / "uploads"


def test_timeouts_and_url_prefix(tmp_path):
    config_path = write_config(
        tmp_path,
        "timeouts:\n  rasterize: 12\n  assemble: 99\nserver:\n  video_url_prefix: /videos\n",
    )
    settings = build_settings(load_config(config_path), config_path)

    assert settings.rasterize_timeout == 12
    assert settings.assemble_timeout == 99
    assert settings.narrate_timeout == 600.0
    assert settings.video_url_prefix == "/videos"


def test_default_backends():
    planner = build_planner({})

    assert isinstance(planner.captioner, TemplateCaptioner)
    assert planner.words_per_minute == 150
    assert isinstance(build_synthesizer({}), SilentSynthesizer)


def test_openai_backend_requires_key():
    with pytest.raises(ValueError, match="api_key"):
        build_planner({"narration": {"backend": "openai", "openai": {}}})


def test_unknown_backends_raise():
    with pytest.raises(ValueError):
        build_planner({"narration": {"backend": "llama"}})
    with pytest.raises(ValueError):
        build_synthesizer({"tts": {"backend": "espeak"}})


def test_elevenlabs_backend(tmp_path):
    synth = build_synthesizer({
        "tts": {"backend": "elevenlabs", "elevenlabs": {"api_key": "k", "voice_id": "v"}},
    })
    assert isinstance(synth, ElevenLabsSynthesizer)

    with pytest.raises(ValueError):
        build_synthesizer({"tts": {"backend": "elevenlabs", "elevenlabs": {}}})


def test_build_coordinator_wires_rasterizer(tmp_path):
    config_path = write_config(tmp_path, "rasterizer:\n  dpi: 200\n")
    coordinator = build_coordinator(load_config(config_path), config_path)

    assert isinstance(coordinator.rasterizer, PdfRasterizer)
    assert coordinator.rasterizer.dpi == 200
    assert coordinator.settings.outputs_dir == tmp_path / "public" / "outputs"
