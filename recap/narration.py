"""Narration planning: one spoken segment per page.

The planner decides each page's position in the recap (opening, interior,
closing), asks a captioner for the text, and estimates how long it takes
to speak. A captioner failure on one page is replaced by a short fallback
line so the rest of the document is still narrated.
"""

from __future__ import annotations

import base64
import logging
import threading
from enum import Enum
from typing import Protocol

from openai import OpenAI

from recap.errors import CancelledRunError
from recap.models import NarrationSegment, Page

logger = logging.getLogger(__name__)

DEFAULT_WORDS_PER_MINUTE = 150
DEFAULT_MIN_DURATION = 3.0
FALLBACK_DURATION = 3.0

OPENING_TEXT = "Welcome to this manga recap. Let's dive into the story."
CLOSING_TEXT = "And that wraps up this chapter. Stay tuned for more exciting developments."
INTERIOR_TEMPLATE = "On page {page_number}, the story continues with intense action and drama."
FALLBACK_TEMPLATE = "On page {page_number}, the action intensifies."


class PagePosition(str, Enum):
    OPENING = "opening"
    INTERIOR = "interior"
    CLOSING = "closing"


def page_position(index: int, total: int) -> PagePosition:
    """Position of the page at ``index`` (0-based) in a ``total``-page document.

    The first page is always the opening, even when it is also the last.
    """
    if index == 0:
        return PagePosition.OPENING
    if index == total - 1:
        return PagePosition.CLOSING
    return PagePosition.INTERIOR


class Captioner(Protocol):
    def caption(self, page: Page, position: PagePosition) -> str: ...


class TemplateCaptioner:
    """Deterministic, rule-based narration."""

    def caption(self, page: Page, position: PagePosition) -> str:
        if position is PagePosition.OPENING:
            return OPENING_TEXT
        if position is PagePosition.CLOSING:
            return CLOSING_TEXT
        return INTERIOR_TEMPLATE.format(page_number=page.page_number)


class OpenAICaptioner:
    """Vision-model narration via the OpenAI chat completions API."""

    def __init__(self, openai_config: dict, client=None) -> None:
        self.model = openai_config.get("model", "gpt-4o-mini")
        self.max_tokens = openai_config.get("max_tokens", 120)
        self._client = client or OpenAI(
            api_key=openai_config["api_key"],
            timeout=openai_config.get("timeout", 60.0),
        )

    def _prompt(self, page: Page, position: PagePosition) -> str:
        lead = {
            PagePosition.OPENING: "This is the first page. Open the recap and set the scene.",
            PagePosition.CLOSING: "This is the last page. Wrap up the chapter.",
            PagePosition.INTERIOR: f"This is page {page.page_number}. Continue the story.",
        }[position]
        return (
            f"{lead} Describe what happens on this manga page as one or two short, "
            "vivid sentences of spoken narration for a recap video. "
            "Return only the narration text."
        )

    def caption(self, page: Page, position: PagePosition) -> str:
        image_b64 = base64.b64encode(page.image_path.read_bytes()).decode("ascii")
        logger.info("Captioning page %d with %s", page.page_number, self.model)

        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[
                {
                    "role": "system",
                    "content": "You are the narrator of a manga recap channel.",
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self._prompt(page, position)},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{image_b64}"},
                        },
                    ],
                },
            ],
        )
        return (response.choices[0].message.content or "").strip()


def word_count(text: str) -> int:
    return len(text.split())


def estimate_duration(
    text: str,
    words_per_minute: float = DEFAULT_WORDS_PER_MINUTE,
    min_duration: float = DEFAULT_MIN_DURATION,
) -> float:
    """Seconds needed to speak ``text``, never below ``min_duration``."""
    return max(min_duration, (word_count(text) / words_per_minute) * 60)


def fallback_segment(page: Page) -> NarrationSegment:
    return NarrationSegment(
        page_number=page.page_number,
        text=FALLBACK_TEMPLATE.format(page_number=page.page_number),
        duration=FALLBACK_DURATION,
    )


class NarrationPlanner:
    def __init__(
        self,
        captioner: Captioner | None = None,
        words_per_minute: float = DEFAULT_WORDS_PER_MINUTE,
        min_duration: float = DEFAULT_MIN_DURATION,
    ) -> None:
        if words_per_minute <= 0:
            raise ValueError("words_per_minute must be positive")
        self.captioner = captioner or TemplateCaptioner()
        self.words_per_minute = words_per_minute
        self.min_duration = min_duration

    def plan(
        self,
        pages: list[Page] | tuple[Page, ...],
        stop: threading.Event | None = None,
    ) -> list[NarrationSegment]:
        """Return one segment per page, in page order.

        Raises CancelledRunError if ``stop`` is set before a page is captioned.
        """
        segments: list[NarrationSegment] = []
        total = len(pages)

        for i, page in enumerate(pages):
            if stop is not None and stop.is_set():
                raise CancelledRunError(f"Narration stopped before page {page.page_number}")
            position = page_position(i, total)
            try:
                text = self.captioner.caption(page, position).strip()
                if not text:
                    raise ValueError("captioner returned empty text")
            except Exception as exc:
                logger.warning(
                    "Narration failed for page %d (%s); using fallback", page.page_number, exc,
                )
                segments.append(fallback_segment(page))
                continue

            segments.append(NarrationSegment(
                page_number=page.page_number,
                text=text,
                duration=estimate_duration(text, self.words_per_minute, self.min_duration),
            ))

        logger.info("Planned narration for %d page(s)", len(segments))
        return segments
