"""Tests for markdown normalisation and metadata extraction."""

from __future__ import annotations

import re

import pytest

from mdstudio.processing.markdown import (
    MarkdownProcessor,
    count_words,
    detect_technologies,
    strip_markdown,
)
from mdstudio.processing.topics import CorpusScope, TopicCorpus

SAMPLES = [
    "# Title\n\nSome **bold** and *italic* text.",
    "```python\nprint('hi')\n```\nafter the fence",
    "#<b></b> hidden heading",
    "<div>html <span>inside</span></div>\n\n\n\nnext",
    "![logo](logo.png) and [a link](http://example.com)",
    "---\n\n***\n\n## Section\n`inline` code",
    "`` ` ``",
]


class TestStripMarkdown:
    @pytest.mark.parametrize("text", SAMPLES)
    def test_removes_markup(self, text: str) -> None:
        """No fences, heading markers or HTML tags survive."""
        plain = strip_markdown(text)
        assert "```" not in plain
        assert not re.search(r"^#{1,6}\s", plain, re.MULTILINE)
        assert not re.search(r"<[^>]*>", plain)

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text: str) -> None:
        once = strip_markdown(text)
        assert strip_markdown(once) == once

    def test_markup_exposed_by_tag_removal(self) -> None:
        assert strip_markdown("#<b></b> x") == "x"

    def test_keeps_link_and_image_text(self) -> None:
        assert strip_markdown("![logo](a.png) see [docs](http://x)") == "logo see docs"

    def test_collapses_blank_lines(self) -> None:
        assert strip_markdown("a\n\n\n\nb") == "a\n\nb"


class TestExtractTitle:
    def test_first_h1(self) -> None:
        assert MarkdownProcessor().extract_title("# Hello\nbody", {}) == "Hello"

    def test_frontmatter_title_wins(self) -> None:
        processor = MarkdownProcessor()
        assert processor.extract_title("no heading here", {"title": "Explicit"}) == "Explicit"

    def test_non_string_title_is_stringified(self) -> None:
        assert MarkdownProcessor().extract_title("# H", {"title": 2024}) == "2024"

    def test_falls_back_to_first_line(self) -> None:
        line = "x" * 150
        assert MarkdownProcessor().extract_title(f"{line}\nmore", {}) == "x" * 100

    def test_untitled(self) -> None:
        assert MarkdownProcessor().extract_title("", {}) == "Untitled"


class TestExtractTags:
    def test_hashtags_are_case_folded(self) -> None:
        tags = MarkdownProcessor().extract_tags("Loving #angular and #React!", {})
        assert tags == ["angular", "react"]

    def test_frontmatter_string_and_hashtags_deduplicated(self) -> None:
        tags = MarkdownProcessor().extract_tags("see #python", {"tags": "Python, notes"})
        assert tags == ["python", "notes"]

    def test_frontmatter_list(self) -> None:
        tags = MarkdownProcessor().extract_tags("", {"tags": ["A", " b "]})
        assert tags == ["a", "b"]

    def test_malformed_frontmatter_tags(self) -> None:
        """Scalars are stringified and empty entries dropped."""
        processor = MarkdownProcessor()
        assert processor.extract_tags("", {"tags": 42}) == ["42"]
        assert processor.extract_tags("", {"tags": [None, "x", ""]}) == ["x"]
        assert processor.extract_tags("", {"tags": None}) == []


class TestTopics:
    def test_detect_technologies(self) -> None:
        assert detect_technologies("We use Python and Docker") == ["python", "docker"]

    def test_single_mention_is_not_a_topic_in_small_corpus(self) -> None:
        topics = MarkdownProcessor().extract_topics("We use Python and Docker")
        assert topics == ["python", "docker"]

    def test_frequent_term_becomes_topic(self) -> None:
        topics = MarkdownProcessor().extract_topics("gardening gardening gardening tomatoes")
        assert topics[0] == "gardening"

    def test_document_scope_leaves_shared_corpus_untouched(self) -> None:
        corpus = TopicCorpus()
        processor = MarkdownProcessor(corpus, scope=CorpusScope.DOCUMENT)

        processor.extract_topics("gardening gardening", key="a.md")

        assert len(corpus) == 0

    def test_keyed_topics_are_stable(self) -> None:
        processor = MarkdownProcessor()
        first = processor.extract_topics("gardening gardening soil", key="a.md")
        second = processor.extract_topics("gardening gardening soil", key="a.md")

        assert first == second
        assert len(processor.corpus) == 1

    def test_forget(self) -> None:
        processor = MarkdownProcessor()
        processor.extract_topics("gardening", key="a.md")
        processor.forget("a.md")
        assert "a.md" not in processor.corpus


def test_process_builds_summary() -> None:
    result = MarkdownProcessor().process("# Notes\n\nHello *world* #todo", {"tags": ["x"]})

    assert result.title == "Notes"
    assert result.plain_text == "Notes\n\nHello world #todo"
    assert result.tags == ["x", "todo"]
    assert result.word_count == count_words(result.plain_text) == 4
