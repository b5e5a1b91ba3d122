"""HTML to markdown helpers shared by the HTML, DOCX and EPUB converters."""

from __future__ import annotations

import re
from typing import Optional, Tuple

from bs4 import BeautifulSoup
from markdownify import ASTERISK, ATX, markdownify

from mdstudio.utils.text import collapse_newlines

# Document wrapper markup that would otherwise leak into chapter bodies.
_WRAPPER_PATTERNS = [
    re.compile(r"<\?xml[^>]*>", re.IGNORECASE),
    re.compile(r"<!DOCTYPE[^>]*>", re.IGNORECASE),
    re.compile(r"<html[^>]*>", re.IGNORECASE),
    re.compile(r"</html>", re.IGNORECASE),
    re.compile(r"<head>[\s\S]*?</head>", re.IGNORECASE),
    re.compile(r"<body[^>]*>", re.IGNORECASE),
    re.compile(r"</body>", re.IGNORECASE),
]


def html_to_markdown(html: str) -> str:
    """Convert an HTML fragment to markdown.

    ATX headings, fenced code blocks, ``*`` emphasis and ``-`` bullets.
    """
    if not html:
        return ""
    markdown = markdownify(
        html,
        heading_style=ATX,
        bullets="-",
        strong_em_symbol=ASTERISK,
    )
    return collapse_newlines(markdown).strip()


def strip_document_wrapper(html: str) -> str:
    for pattern in _WRAPPER_PATTERNS:
        html = pattern.sub("", html)
    return html


def body_inner_html(html: str) -> str:
    """Return the markup inside ``<body>``, or the input when there is none."""
    soup = BeautifulSoup(html, "html.parser")
    if soup.body is None:
        return html
    return soup.body.decode_contents()


def pop_chapter_title(html: str) -> Tuple[Optional[str], str]:
    """Remove the first ``<h1>`` (else ``<h2>``) and return its text with the remaining body."""
    soup = BeautifulSoup(html, "html.parser")
    heading = soup.find("h1") or soup.find("h2")
    title = None
    if heading is not None:
        title = heading.get_text().strip() or None
        heading.decompose()
    body = soup.body.decode_contents() if soup.body is not None else str(soup)
    return title, body
