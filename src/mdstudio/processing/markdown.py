"""Markdown normalisation and metadata extraction for indexing."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional

from mdstudio.models import ProcessedMarkdown
from mdstudio.processing.topics import CorpusScope, TopicCorpus

LOGGER = logging.getLogger(__name__)

MAX_TOPIC_TERMS = 5
MIN_TOPIC_TERM_LENGTH = 3
MIN_TOPIC_SCORE = 0.5
TITLE_FALLBACK_CHARS = 100

# Applied in order: code must go before generic markup so its contents stay intact.
_STRIP_RULES = [
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"`[^`]*`"), ""),
    (re.compile(r"!\[([^\]]*)\]\([^)]*\)"), r"\1"),
    (re.compile(r"\[([^\]]*)\]\([^)]*\)"), r"\1"),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"(\*\*|__)(.*?)\1"), r"\2"),
    (re.compile(r"(\*|_)(.*?)\1"), r"\2"),
    (re.compile(r"<[^>]*>"), ""),
    (re.compile(r"^-{3,}$", re.MULTILINE), ""),
    (re.compile(r"^\*{3,}$", re.MULTILINE), ""),
    (re.compile(r"\n\s*\n"), "\n\n"),
]

_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_HASHTAG = re.compile(r"#(\w+)")

TECHNOLOGY_PATTERNS = {
    "angular": re.compile(r"\bangular\b|@component|ngmodule", re.IGNORECASE),
    "react": re.compile(r"\breact\b|jsx|usestate|useeffect", re.IGNORECASE),
    "vue": re.compile(r"\bvue\b|vue\.js", re.IGNORECASE),
    "node": re.compile(r"\bnode\.js\b|\bexpress\b", re.IGNORECASE),
    "typescript": re.compile(r"\btypescript\b|\.ts\b", re.IGNORECASE),
    "javascript": re.compile(r"\bjavascript\b|\.js\b", re.IGNORECASE),
    "python": re.compile(r"\bpython\b|\.py\b", re.IGNORECASE),
    "database": re.compile(r"\bsql\b|database|postgres|mongodb", re.IGNORECASE),
    "api": re.compile(r"\bapi\b|rest|graphql|endpoint", re.IGNORECASE),
    "docker": re.compile(r"\bdocker\b|container", re.IGNORECASE),
    "git": re.compile(r"\bgit\b|github|gitlab", re.IGNORECASE),
}


def _strip_once(text: str) -> str:
    for pattern, replacement in _STRIP_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def strip_markdown(markdown: str) -> str:
    """Reduce markdown to plain text suitable for full-text indexing.

    Removal can expose new markup (``#<b></b> x`` only becomes a heading once
    the tag is gone), so the pass is repeated until the text is stable.
    Every rule shortens or preserves the text, which bounds the loop.
    """
    text = _strip_once(markdown)
    while True:
        again = _strip_once(text)
        if again == text:
            return text
        text = again


def detect_technologies(text: str) -> List[str]:
    lowered = text.lower()
    return [name for name, pattern in TECHNOLOGY_PATTERNS.items() if pattern.search(lowered)]


def count_words(text: str) -> int:
    return len(text.split())


def _dedupe(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def _frontmatter_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        raw = value
    else:
        LOGGER.debug("Coercing non-string frontmatter tags value %r", value)
        raw = [value]

    tags = []
    for item in raw:
        if item is None:
            continue
        tag = str(item).strip().lower()
        if tag:
            tags.append(tag)
    return tags


class MarkdownProcessor:
    """Derive title, plain text, tags, topics and word count from markdown."""

    def __init__(
        self,
        corpus: Optional[TopicCorpus] = None,
        *,
        scope: CorpusScope = CorpusScope.CUMULATIVE,
    ) -> None:
        self.corpus = corpus if corpus is not None else TopicCorpus()
        self.scope = CorpusScope(scope)
        self._corpus_lock = threading.Lock()

    def process(
        self,
        markdown: str,
        frontmatter: Optional[Mapping[str, Any]] = None,
        *,
        key: Hashable | None = None,
    ) -> ProcessedMarkdown:
        frontmatter = frontmatter or {}
        plain_text = self.strip_markdown(markdown)
        return ProcessedMarkdown(
            title=self.extract_title(markdown, frontmatter),
            plain_text=plain_text,
            tags=self.extract_tags(markdown, frontmatter),
            topics=self.extract_topics(plain_text, key=key),
            word_count=count_words(plain_text),
        )

    strip_markdown = staticmethod(strip_markdown)
    count_words = staticmethod(count_words)

    def extract_title(self, markdown: str, frontmatter: Mapping[str, Any]) -> str:
        title = frontmatter.get("title")
        if title not in (None, ""):
            return str(title)

        heading = _HEADING.search(markdown)
        if heading:
            return heading.group(1).strip()

        first_line = markdown.split("\n", 1)[0]
        return first_line[:TITLE_FALLBACK_CHARS].strip() or "Untitled"

    def extract_tags(self, markdown: str, frontmatter: Mapping[str, Any]) -> List[str]:
        tags = _frontmatter_tags(frontmatter.get("tags"))
        tags.extend(match.lower() for match in _HASHTAG.findall(markdown))
        return _dedupe(tags)

    def extract_topics(self, plain_text: str, *, key: Hashable | None = None) -> List[str]:
        if self.scope is CorpusScope.DOCUMENT:
            corpus = TopicCorpus()
            ranked = corpus.list_terms(corpus.add_document(plain_text.lower()))
        else:
            with self._corpus_lock:
                ranked = self.corpus.list_terms(self.corpus.add_document(plain_text.lower(), key=key))

        topics = [
            term
            for term, score in ranked[:MAX_TOPIC_TERMS]
            if len(term) > MIN_TOPIC_TERM_LENGTH and score > MIN_TOPIC_SCORE
        ]
        topics.extend(detect_technologies(plain_text))
        return _dedupe(topics)

    def forget(self, key: Hashable) -> None:
        """Drop a document from the shared corpus (e.g. after its file is deleted)."""
        with self._corpus_lock:
            self.corpus.remove(key)

    def reset_corpus(self) -> None:
        with self._corpus_lock:
            self.corpus.reset()
