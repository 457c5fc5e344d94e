import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recap.coordinator import Coordinator, CoordinatorSettings
from recap.models import Page
from recap.narration import NarrationPlanner


def make_pages(tmp_path: Path, count: int) -> list[Page]:
    pages = []
    for n in range(1, count + 1):
        path = tmp_path / f"page-{n}.png"
        path.write_bytes(b"\x89PNG")
        pages.append(Page(page_number=n, image_path=path))
    return pages


class FakeRasterizer:
    def __init__(self, count: int = 3, error: Exception | None = None, delay: float = 0.0) -> None:
        self.count = count
        self.error = error
        self.delay = delay
        self.calls = 0

    def rasterize(self, source_path: Path, output_dir: Path) -> list[Page]:
        self.calls += 1
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error is not None:
            raise self.error
        output_dir.mkdir(parents=True, exist_ok=True)
        return make_pages(output_dir, self.count)


class FakeSynthesizer:
    """Writes a placeholder file and reports a fixed measured duration."""

    def __init__(
        self, duration: float = 2.5, error: Exception | None = None, delay: float = 0.0,
    ) -> None:
        self.duration = duration
        self.error = error
        self.delay = delay
        self.texts: list[str] = []

    def synthesize(self, text: str, output_path: Path) -> float:
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error is not None:
            raise self.error
        self.texts.append(text)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"ID3")
        return self.duration


class FakeMuxer:
    """Ignores ``stop``, like a single long ffmpeg call would."""

    def __init__(self, error: Exception | None = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    def mux(self, pages, clips, subtitle_path, timeline, output_path, stop=None):
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error is not None:
            raise self.error
        self.calls.append({
            "pages": list(pages),
            "clips": list(clips),
            "subtitles": Path(subtitle_path).read_text(encoding="utf-8"),
            "timeline": timeline,
            "output_path": output_path,
        })
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"mp4")
        return output_path


@pytest.fixture
def settings(tmp_path: Path) -> CoordinatorSettings:
    return CoordinatorSettings(
        outputs_dir=tmp_path / "outputs",
        work_root=tmp_path / "work",
    )


@pytest.fixture
def source_pdf(tmp_path: Path) -> Path:
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    path = uploads / "1700000000000_chapter.pdf"
    path.write_bytes(b"%PDF-1.4")
    return path


def build_coordinator(
    settings: CoordinatorSettings,
    rasterizer=None,
    planner=None,
    synthesizer=None,
    muxer=None,
) -> Coordinator:
    return Coordinator(
        rasterizer=rasterizer or FakeRasterizer(),
        planner=planner or NarrationPlanner(),
        synthesizer=synthesizer or FakeSynthesizer(),
        muxer=muxer or FakeMuxer(),
        settings=settings,
    )


class ListSink:
    def __init__(self) -> None:
        self.records: list[dict] = []

    def send(self, record: dict) -> None:
        self.records.append(record)
