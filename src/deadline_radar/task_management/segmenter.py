"""Text segmentation: page text to bounded-size context chunks."""

import logging
import re
from collections.abc import Iterable, Iterator

from bs4 import BeautifulSoup
from bs4.element import Comment, Declaration, Doctype, ProcessingInstruction, Tag

from .config import DEFAULT_MAX_CHUNK_SIZE, NON_CONTENT_TAGS
from .models import TextChunk, TextFragment

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# String nodes that never carry visible page text
_SKIPPED_STRING_TYPES = (Comment, Declaration, Doctype, ProcessingInstruction)


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def element_selector(element: Tag | None) -> str:
    """
    Build a short CSS-like locator for an element.

    Uses ``#id`` when the element has one, otherwise the tag name plus
    its first class.
    """
    if element is None or not element.name or element.name == "[document]":
        return "body"

    element_id = element.get("id")
    if element_id:
        return f"#{element_id}"

    selector = element.name
    classes = element.get("class") or []
    if classes:
        selector += f".{classes[0]}"
    return selector


def fragments_from_html(html: str | BeautifulSoup) -> list[TextFragment]:
    """
    Extract visible text nodes from an HTML document.

    Text inside script, style and similar non-content elements is
    dropped, as are comments. Only the body is walked when one exists.

    Args:
        html: Raw HTML markup, or a document already parsed with BeautifulSoup

    Returns:
        One fragment per non-blank text node, in document order
    """
    if isinstance(html, BeautifulSoup):
        soup = html
    elif not html:
        return []
    else:
        soup = BeautifulSoup(html, "html.parser")
    root = soup.body or soup

    fragments = []
    for node in root.find_all(string=True):
        if isinstance(node, _SKIPPED_STRING_TYPES):
            continue
        if node.find_parent(NON_CONTENT_TAGS) is not None:
            continue
        if not node.strip():
            continue
        fragments.append(
            TextFragment(text=str(node), source_ref=element_selector(node.parent))
        )

    logger.debug(f"Extracted {len(fragments)} text fragments from HTML")
    return fragments


def fragments_from_text(text: str, source_ref: str | None = None) -> list[TextFragment]:
    """Treat each non-blank line of plain text as one fragment."""
    return [
        TextFragment(text=line, source_ref=source_ref)
        for line in text.splitlines()
        if line.strip()
    ]


class TextSegmenter:
    """
    Groups consecutive text fragments into chunks of bounded size.

    Fragments are joined with single spaces and never split across chunk
    boundaries, unless one fragment alone exceeds the cap.
    """

    def __init__(self, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> None:
        """
        Initialize the segmenter.

        Args:
            max_chunk_size: Maximum characters per chunk
        """
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be > 0")
        self.max_chunk_size = max_chunk_size

    def segment(self, fragments: Iterable[TextFragment]) -> list[TextChunk]:
        """
        Segment fragments into chunks.

        Args:
            fragments: Atomic text fragments in document order

        Returns:
            Ordered chunks, none empty and none longer than the cap
        """
        chunks: list[TextChunk] = []
        parts: list[str] = []
        size = 0
        chunk_ref: str | None = None

        for fragment in fragments:
            for piece in self._split_oversized(normalize_whitespace(fragment.text)):
                added = len(piece) + (1 if parts else 0)
                if parts and size + added > self.max_chunk_size:
                    chunks.append(TextChunk(text=" ".join(parts), source_ref=chunk_ref))
                    parts = []
                    size = 0
                    added = len(piece)

                if not parts:
                    chunk_ref = fragment.source_ref
                parts.append(piece)
                size += added

        if parts:
            chunks.append(TextChunk(text=" ".join(parts), source_ref=chunk_ref))

        return chunks

    def segment_text(self, text: str, source_ref: str | None = None) -> list[TextChunk]:
        """Segment plain text, one fragment per line."""
        return self.segment(fragments_from_text(text, source_ref=source_ref))

    def segment_html(self, html: str | BeautifulSoup) -> list[TextChunk]:
        """Segment the visible text of an HTML document."""
        return self.segment(fragments_from_html(html))

    def _split_oversized(self, text: str) -> Iterator[str]:
        """Yield the text whole, or cut at word boundaries if it exceeds the cap."""
        if not text:
            return
        if len(text) <= self.max_chunk_size:
            yield text
            return

        current = ""
        for word in text.split(" "):
            while len(word) > self.max_chunk_size:
                if current:
                    yield current
                    current = ""
                yield word[: self.max_chunk_size]
                word = word[self.max_chunk_size :]
            if not word:
                continue
            if current and len(current) + 1 + len(word) > self.max_chunk_size:
                yield current
                current = word
            else:
                current = f"{current} {word}" if current else word
        if current:
            yield current
