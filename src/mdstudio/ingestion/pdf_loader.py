"""PDF text extraction.

Uses PyMuPDF (fitz) for fast page-by-page text extraction, then applies a
light heuristic to recover headings from the flat text.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator

import fitz  # PyMuPDF

from mdstudio.utils.text import collapse_newlines

LOGGER = logging.getLogger(__name__)

MAX_HEADING_CHARS = 50

_SPACE_RUNS = re.compile(r" {2,}")
_HAS_LETTER = re.compile(r"[A-Z]")


def iter_page_texts(path: Path) -> Iterator[str]:
    """Yield the raw text of each page. Opening errors propagate."""
    doc = fitz.open(path)
    try:
        for index in range(len(doc)):
            yield doc[index].get_text() or ""
    finally:
        doc.close()


def _looks_like_heading(line: str) -> bool:
    return len(line) < MAX_HEADING_CHARS and line == line.upper() and bool(_HAS_LETTER.search(line))


def promote_headings(text: str) -> str:
    """Trim every line and turn short all-caps lines into ``##`` headings."""
    lines = []
    for line in _SPACE_RUNS.sub(" ", text).split("\n"):
        trimmed = line.strip()
        if trimmed and _looks_like_heading(trimmed):
            lines.append(f"## {trimmed}")
        else:
            lines.append(trimmed)
    return collapse_newlines("\n".join(lines))


def pdf_to_markdown(path: Path) -> str:
    text = "".join(iter_page_texts(path))
    LOGGER.debug("Extracted %d characters from %s", len(text), path)
    return promote_headings(text)
