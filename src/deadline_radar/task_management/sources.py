"""Text source implementations for plain text and HTML pages."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from .interfaces import TextSource
from .models import TextChunk
from .segmenter import TextSegmenter


class _StaticTextSource(TextSource):
    """Shared base for sources whose content is fixed at construction."""

    def __init__(
        self,
        url: str | None = None,
        title: str | None = None,
        segmenter: TextSegmenter | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._url = url
        self._title = title
        self._segmenter = segmenter or TextSegmenter()
        self._clock = clock

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def title(self) -> str | None:
        return self._title

    def now(self) -> datetime:
        return self._clock()


class PlainTextSource(_StaticTextSource):
    """A page given as plain text; each line is one atomic fragment."""

    def __init__(self, text: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._text = text

    def get_chunks(self) -> list[TextChunk]:
        return self._segmenter.segment_text(self._text)


class HtmlTextSource(_StaticTextSource):
    """
    A page given as HTML markup.

    Visible text nodes become fragments; the page title falls back to the
    document's ``<title>`` when none is passed in. The markup is parsed
    once, at construction.
    """

    def __init__(self, html: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._soup = BeautifulSoup(html, "html.parser")
        if self._title is None:
            self._title = _document_title(self._soup)

    def get_chunks(self) -> list[TextChunk]:
        return self._segmenter.segment_html(self._soup)


def _document_title(soup: BeautifulSoup) -> str | None:
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return None
