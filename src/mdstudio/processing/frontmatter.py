"""YAML frontmatter splitting and generation."""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Tuple

import yaml

from mdstudio.errors import FrontmatterError

_OPENING = re.compile(r"\A\ufeff?---[ \t]*\r?\n")
_CLOSING = re.compile(r"^(?:---|\.\.\.)[ \t]*\r?(?:\n|\Z)", re.MULTILINE)


def parse_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split ``text`` into its YAML header mapping and markdown body."""
    opening = _OPENING.match(text)
    if not opening:
        return {}, text

    closing = _CLOSING.search(text, opening.end())
    if not closing:
        return {}, text

    header = text[opening.end() : closing.start()]
    body = text[closing.end() :]
    try:
        data = yaml.safe_load(header) if header.strip() else {}
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"Invalid frontmatter: {exc}") from exc

    if not isinstance(data, dict):
        return {}, body
    return data, body


def build_frontmatter(metadata: Mapping[str, Any]) -> str:
    if not metadata:
        return ""
    dumped = yaml.safe_dump(
        dict(metadata),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{dumped}---\n\n"
