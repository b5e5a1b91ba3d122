"""Small text helpers shared by converters."""

from __future__ import annotations

import re

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def collapse_newlines(text: str) -> str:
    """Collapse runs of three or more newlines to a single blank line."""
    return _EXCESS_NEWLINES.sub("\n\n", text)


def slugify(value: str, *, max_length: int = 30) -> str:
    slug = _SLUG_INVALID.sub("-", value.lower()).strip("-")
    return slug[:max_length]
