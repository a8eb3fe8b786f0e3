"""Tests for text segmentation."""

from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup

from deadline_radar.task_management.models import TextFragment
from deadline_radar.task_management.segmenter import (
    TextSegmenter,
    element_selector,
    fragments_from_html,
    fragments_from_text,
    normalize_whitespace,
)
from deadline_radar.task_management.sources import HtmlTextSource


@pytest.mark.unit
class TestFragmentExtraction:
    """Test cases for turning raw input into text fragments."""

    def test_normalize_whitespace_collapses_runs(self) -> None:
        """Test that whitespace runs collapse and ends are trimmed."""
        assert normalize_whitespace("  Lab   report\n\tdue  ") == "Lab report due"

    def test_plain_text_yields_one_fragment_per_line(self) -> None:
        """Test that blank lines are skipped."""
        fragments = fragments_from_text("first line\n\n   \nsecond line", source_ref="notes")

        assert [fragment.text for fragment in fragments] == ["first line", "second line"]
        assert all(fragment.source_ref == "notes" for fragment in fragments)

    def test_html_skips_script_style_and_comments(self) -> None:
        """Test that only visible text nodes become fragments."""
        html = """
        <html><head><title>Course</title><style>.x { color: red }</style></head>
        <body>
          <p id="intro">Essay due Oct 15</p>
          <script>var due = "Nov 1";</script>
          <!-- submit by Dec 1 -->
          <div class="note extra">Bring your laptop</div>
        </body></html>
        """

        fragments = fragments_from_html(html)
        texts = [fragment.text.strip() for fragment in fragments]

        assert texts == ["Essay due Oct 15", "Bring your laptop"]
        assert fragments[0].source_ref == "#intro"
        assert fragments[1].source_ref == "div.note"

    def test_html_without_body_walks_whole_document(self) -> None:
        """Test that fragments of markup without a body element are still found."""
        fragments = fragments_from_html("<p>Quiz on 2025-05-01</p>")

        assert [fragment.text for fragment in fragments] == ["Quiz on 2025-05-01"]
        assert fragments[0].source_ref == "p"

    def test_empty_html_yields_nothing(self) -> None:
        """Test that empty markup produces no fragments."""
        assert fragments_from_html("") == []

    def test_element_selector_falls_back_to_body(self) -> None:
        """Test the locator for a missing element."""
        assert element_selector(None) == "body"


@pytest.mark.unit
class TestTextSegmenter:
    """Test cases for chunk grouping."""

    def test_rejects_non_positive_cap(self) -> None:
        """Test that the cap must be positive."""
        with pytest.raises(ValueError):
            TextSegmenter(max_chunk_size=0)

    def test_small_fragments_share_a_chunk(self) -> None:
        """Test that consecutive fragments are joined with single spaces."""
        segmenter = TextSegmenter(max_chunk_size=100)
        fragments = [
            TextFragment("Homework 3", source_ref="h2"),
            TextFragment("is due tomorrow", source_ref="p"),
        ]

        chunks = segmenter.segment(fragments)

        assert len(chunks) == 1
        assert chunks[0].text == "Homework 3 is due tomorrow"
        assert chunks[0].source_ref == "h2"

    def test_fragments_are_never_split_across_chunks(self) -> None:
        """Test that a fragment that does not fit starts a new chunk."""
        segmenter = TextSegmenter(max_chunk_size=20)
        fragments = [TextFragment("a" * 12), TextFragment("b" * 12), TextFragment("c" * 5)]

        chunks = segmenter.segment(fragments)

        assert [chunk.text for chunk in chunks] == ["a" * 12, "b" * 12 + " " + "c" * 5]

    def test_separator_counts_toward_cap(self) -> None:
        """Test that two fragments filling the cap exactly without a space do not merge."""
        segmenter = TextSegmenter(max_chunk_size=10)

        chunks = segmenter.segment([TextFragment("x" * 5), TextFragment("y" * 5)])

        assert [chunk.text for chunk in chunks] == ["x" * 5, "y" * 5]

    def test_oversized_fragment_is_split_at_word_boundaries(self) -> None:
        """Test that a fragment longer than the cap is cut between words."""
        segmenter = TextSegmenter(max_chunk_size=12)

        chunks = segmenter.segment([TextFragment("alpha beta gamma delta")])

        assert [chunk.text for chunk in chunks] == ["alpha beta", "gamma delta"]

    def test_single_long_word_is_hard_cut(self) -> None:
        """Test that a word longer than the cap is cut into cap-sized pieces."""
        segmenter = TextSegmenter(max_chunk_size=4)

        chunks = segmenter.segment([TextFragment("abcdefghij")])

        assert [chunk.text for chunk in chunks] == ["abcd", "efgh", "ij"]

    def test_chunks_are_bounded_nonempty_and_ordered(self) -> None:
        """Test chunk properties over a mixed document."""
        segmenter = TextSegmenter(max_chunk_size=50)
        words = [f"word{i}" for i in range(200)]
        fragments = [TextFragment(" ".join(words[i : i + 7])) for i in range(0, 200, 7)]

        chunks = segmenter.segment(fragments)

        assert chunks
        assert all(0 < len(chunk.text) <= 50 for chunk in chunks)
        rejoined = " ".join(chunk.text for chunk in chunks).split()
        assert rejoined == words

    def test_empty_input_yields_no_chunks(self) -> None:
        """Test that blank fragments produce nothing."""
        segmenter = TextSegmenter()

        assert segmenter.segment([]) == []
        assert segmenter.segment([TextFragment("   ")]) == []

    def test_segment_html_uses_visible_text(self) -> None:
        """Test the HTML convenience method."""
        segmenter = TextSegmenter()

        chunks = segmenter.segment_html(
            "<body><h1>Project</h1><p>due 2025-05-01</p><style>p{}</style></body>"
        )

        assert len(chunks) == 1
        assert chunks[0].text == "Project due 2025-05-01"


@pytest.mark.unit
class TestHtmlTextSource:
    """Test the HTML page source."""

    def test_title_and_chunks_share_one_parse(self) -> None:
        """Test that the markup is parsed once for both title and text."""
        html = (
            "<html><head><title> Syllabus </title></head>"
            "<body><p>Quiz on 2099-03-01</p></body></html>"
        )

        with patch(
            "deadline_radar.task_management.sources.BeautifulSoup", wraps=BeautifulSoup
        ) as soup_cls:
            source = HtmlTextSource(html)
            chunks = source.get_chunks()
            chunks_again = source.get_chunks()

        assert soup_cls.call_count == 1
        assert source.title == "Syllabus"
        assert [chunk.text for chunk in chunks] == ["Quiz on 2099-03-01"]
        assert chunks_again == chunks

    def test_explicit_title_wins(self) -> None:
        """Test that a passed-in title overrides the document title."""
        source = HtmlTextSource("<title>Page</title><p>x</p>", title="Course page")

        assert source.title == "Course page"
