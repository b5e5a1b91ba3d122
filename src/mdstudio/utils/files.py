"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator

IGNORED_DIRECTORIES = frozenset({"node_modules", ".git"})
MARKDOWN_SUFFIX = ".md"


def is_ignored(path: Path, root: Path | None = None) -> bool:
    """Whether any directory component of ``path`` (below ``root``) is ignored."""
    parts = path.resolve().relative_to(root.resolve()).parts if root is not None else path.parts
    return any(part in IGNORED_DIRECTORIES for part in parts[:-1])


def is_markdown_file(path: Path) -> bool:
    return path.name.endswith(MARKDOWN_SUFFIX)


def iter_markdown_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield markdown paths from input paths, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from _walk(item)
        elif item.is_file() and is_markdown_file(item):
            yield item


def _walk(directory: Path) -> Iterator[Path]:
    for child in sorted(directory.iterdir()):
        if child.name in IGNORED_DIRECTORIES:
            continue
        if child.is_dir():
            yield from _walk(child)
        elif child.is_file() and is_markdown_file(child):
            yield child


def relative_key(path: Path, root: Path) -> str:
    """Document key for ``path``: relative to ``root`` with POSIX separators."""
    return path.resolve().relative_to(root.resolve()).as_posix()


def sha256_bytes(data: bytes) -> str:
    """Compute SHA256 hash for an in-memory payload."""
    return hashlib.sha256(data).hexdigest()
