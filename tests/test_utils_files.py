"""Tests for file utility functions."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from mdstudio.utils.files import (
    is_ignored,
    is_markdown_file,
    iter_markdown_paths,
    relative_key,
    sha256_bytes,
)


class TestIterMarkdownPaths:
    def test_single_file(self, tmp_path: Path) -> None:
        note = tmp_path / "a.md"
        note.write_text("# A")
        assert list(iter_markdown_paths([note])) == [note]

    def test_non_markdown_file_skipped(self, tmp_path: Path) -> None:
        other = tmp_path / "a.txt"
        other.write_text("x")
        assert list(iter_markdown_paths([other])) == []

    def test_recursive_and_sorted(self, tmp_path: Path) -> None:
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "z.md").write_text("")
        (tmp_path / "a.md").write_text("")
        (tmp_path / "c.md").write_text("")

        paths = list(iter_markdown_paths([tmp_path]))

        assert paths == [tmp_path / "a.md", tmp_path / "b" / "z.md", tmp_path / "c.md"]

    def test_skips_ignored_directories(self, tmp_path: Path) -> None:
        (tmp_path / "node_modules").mkdir()
        (tmp_path / "node_modules" / "x.md").write_text("")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "y.md").write_text("")

        assert list(iter_markdown_paths([tmp_path])) == []

    def test_missing_input(self, tmp_path: Path) -> None:
        assert list(iter_markdown_paths([tmp_path / "missing"])) == []


class TestPathHelpers:
    def test_is_markdown_file(self) -> None:
        assert is_markdown_file(Path("notes.md"))
        assert not is_markdown_file(Path("notes.markdown"))
        assert not is_markdown_file(Path("notes.md.bak"))

    def test_is_ignored_checks_directories_only(self, tmp_path: Path) -> None:
        assert is_ignored(tmp_path / "node_modules" / "a.md", tmp_path)
        assert is_ignored(tmp_path / "x" / ".git" / "a.md", tmp_path)
        assert not is_ignored(tmp_path / "docs" / "a.md", tmp_path)

    def test_is_ignored_outside_root(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            is_ignored(Path("/somewhere/else.md"), tmp_path)

    def test_relative_key_uses_posix_separators(self, tmp_path: Path) -> None:
        assert relative_key(tmp_path / "a" / "b.md", tmp_path) == "a/b.md"

    def test_sha256_bytes(self) -> None:
        assert sha256_bytes(b"abc") == hashlib.sha256(b"abc").hexdigest()
