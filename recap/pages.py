"""Page extraction: rasterize a PDF into ordered page images.

Rasterization shells out to poppler's ``pdftoppm``, which writes one
``page-<n>.png`` per page (``n`` zero-padded to the page count's width).
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from recap.errors import EmptyDocumentError, UnreadableDocumentError
from recap.models import Page

logger = logging.getLogger(__name__)

_PAGE_RE = re.compile(r"^page-(\d+)\.png$")


class PageStore:
    """Read-only, ordered collection of pages for one run."""

    def __init__(self, pages: list[Page]) -> None:
        if not pages:
            raise EmptyDocumentError("The document contains no pages")
        expected = list(range(1, len(pages) + 1))
        actual = [p.page_number for p in pages]
        if actual != expected:
            raise ValueError(f"Page numbers must run 1..{len(pages)} in order, got {actual}")
        self._pages = tuple(pages)

    def get_pages(self) -> tuple[Page, ...]:
        return self._pages

    def __len__(self) -> int:
        return len(self._pages)


def _collect_pages(output_dir: Path) -> list[Page]:
    pages = []
    for path in output_dir.iterdir():
        m = _PAGE_RE.match(path.name)
        if m:
            pages.append(Page(page_number=int(m.group(1)), image_path=path))
    pages.sort(key=lambda p: p.page_number)
    return pages


class PdfRasterizer:
    """Render every page of a PDF to PNG with ``pdftoppm``."""

    def __init__(self, dpi: int = 150, timeout: float = 300.0, binary: str = "pdftoppm") -> None:
        self.dpi = dpi
        self.timeout = timeout
        self.binary = binary

    def rasterize(self, source_path: Path, output_dir: Path) -> list[Page]:
        source_path = Path(source_path)
        if not source_path.exists():
            raise UnreadableDocumentError(f"Document not found: {source_path}")

        output_dir.mkdir(parents=True, exist_ok=True)
        cmd = [
            self.binary,
            "-png",
            "-r", str(self.dpi),
            str(source_path),
            str(output_dir / "page"),
        ]
        logger.info("Rasterizing %s at %d dpi", source_path.name, self.dpi)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise UnreadableDocumentError(
                f"{self.binary} not found on PATH. Install poppler-utils and retry."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise UnreadableDocumentError(
                f"Rasterizing {source_path.name} exceeded {self.timeout:.0f}s"
            ) from exc
        if result.returncode != 0:
            raise UnreadableDocumentError(
                f"Failed to process PDF {source_path.name}: {result.stderr.strip()[-300:]}"
            )

        pages = _collect_pages(output_dir)
        logger.info("Rasterized %d page(s) from %s", len(pages), source_path.name)
        return pages
