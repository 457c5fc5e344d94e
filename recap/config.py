"""Configuration loading, path resolution and collaborator wiring."""

from __future__ import annotations

from pathlib import Path

import yaml

from recap.assembler import FfmpegMuxer
from recap.coordinator import Coordinator, CoordinatorSettings
from recap.narration import NarrationPlanner, OpenAICaptioner, TemplateCaptioner
from recap.pages import PdfRasterizer
from recap.tts import ElevenLabsSynthesizer, SilentSynthesizer

_DEFAULT_CONFIG = "config.yaml"

_DEFAULT_PATHS = {
    "uploads_dir": "public/uploads",
    "outputs_dir": "public/outputs",
    "work_dir": "work",
}


def load_config(config_path: str | None = None) -> dict:
    """Load the YAML configuration file.

    A missing file at the default location yields an empty config (all
    defaults); an explicitly named file must exist.

    Raises:
        FileNotFoundError: If an explicit config path doesn't exist.
    """
    path = Path(config_path or _DEFAULT_CONFIG)
    if not path.exists():
        if config_path and config_path != _DEFAULT_CONFIG:
            raise FileNotFoundError(f"Config not found: {path}")
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_project_root(config_path: str | None = None) -> Path:
    """Return the project root (directory containing config.yaml)."""
    path = Path(config_path or _DEFAULT_CONFIG)
    return path.resolve().parent


def resolve_path(config: dict, key_path: str, config_path: str | None = None) -> Path:
    """Resolve a path from config relative to project root.

    Args:
        config: Parsed config dict.
        key_path: Dot-separated path into config (e.g. 'paths.outputs_dir').
        config_path: Path to config.yaml for resolving project root.
    """
    root = get_project_root(config_path)
    keys = key_path.split(".")
    val = config
    for k in keys:
        val = val[k]
    p = Path(val)
    if not p.is_absolute():
        p = root / p
    return p


def _path_setting(config: dict, name: str, config_path: str | None) -> Path:
    merged = {"paths": {**_DEFAULT_PATHS, **(config.get("paths") or {})}}
    return resolve_path(merged, f"paths.{name}", config_path)


def get_uploads_dir(config: dict, config_path: str | None = None) -> Path:
    return _path_setting(config, "uploads_dir", config_path)


def get_outputs_dir(config: dict, config_path: str | None = None) -> Path:
    return _path_setting(config, "outputs_dir", config_path)


def get_work_dir(config: dict, config_path: str | None = None) -> Path:
    return _path_setting(config, "work_dir", config_path)


def build_planner(config: dict) -> NarrationPlanner:
    narration = config.get("narration") or {}
    backend = narration.get("backend", "template")
    if backend == "openai":
        openai_config = narration.get("openai") or {}
        if not openai_config.get("api_key"):
            raise ValueError("narration.openai.api_key is not set in config.yaml")
        captioner = OpenAICaptioner(openai_config)
    elif backend == "template":
        captioner = TemplateCaptioner()
    else:
        raise ValueError(f"Unknown narration backend: {backend!r}")
    return NarrationPlanner(
        captioner,
        words_per_minute=narration.get("words_per_minute", 150),
        min_duration=narration.get("min_duration", 3.0),
    )


def build_synthesizer(config: dict):
    tts = config.get("tts") or {}
    backend = tts.get("backend", "silent")
    if backend == "elevenlabs":
        elevenlabs_config = tts.get("elevenlabs") or {}
        if not elevenlabs_config.get("api_key"):
            raise ValueError("tts.elevenlabs.api_key is not set in config.yaml")
        return ElevenLabsSynthesizer(elevenlabs_config)
    if backend == "silent":
        narration = config.get("narration") or {}
        return SilentSynthesizer(
            words_per_minute=narration.get("words_per_minute", 150),
            min_duration=narration.get("min_duration", 3.0),
        )
    raise ValueError(f"Unknown tts backend: {backend!r}")


def build_settings(config: dict, config_path: str | None = None) -> CoordinatorSettings:
    timeouts = config.get("timeouts") or {}
    assembly = config.get("assembly") or {}
    server = config.get("server") or {}
    return CoordinatorSettings(
        outputs_dir=get_outputs_dir(config, config_path),
        work_root=get_work_dir(config, config_path),
        video_url_prefix=server.get("video_url_prefix", "/outputs"),
        subtitle_max_chars=assembly.get("max_chars_per_line", 42),
        rasterize_timeout=timeouts.get("rasterize", 300.0),
        narrate_timeout=timeouts.get("narrate", 600.0),
        synthesize_timeout=timeouts.get("synthesize", 900.0),
        assemble_timeout=timeouts.get("assemble", 1800.0),
    )


def build_coordinator(config: dict, config_path: str | None = None) -> Coordinator:
    """Wire collaborators from config into a ready-to-run coordinator."""
    rasterizer_config = config.get("rasterizer") or {}
    assembly = dict(config.get("assembly") or {})
    if assembly.get("music_path"):
        assembly["music_path"] = str(resolve_path(assembly, "music_path", config_path))

    return Coordinator(
        rasterizer=PdfRasterizer(
            dpi=rasterizer_config.get("dpi", 150),
            timeout=rasterizer_config.get("timeout", 300.0),
        ),
        planner=build_planner(config),
        synthesizer=build_synthesizer(config),
        muxer=FfmpegMuxer(assembly),
        settings=build_settings(config, config_path),
    )
