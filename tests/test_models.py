"""Tests for core data models."""

from __future__ import annotations

from mdstudio.models import (
    DocumentRecord,
    ImportedDocument,
    LocalizationResult,
    LocalizedImage,
)


class TestDocumentRecord:
    """Test DocumentRecord dataclass."""

    def test_defaults_and_dict(self) -> None:
        """to_dict exposes every column, content_type defaults to markdown."""
        record = DocumentRecord(
            path="notes/a.md",
            title="A",
            content="body",
            raw_content="# A\nbody",
            frontmatter={"draft": True},
            tags=["x"],
            topics=["body"],
            word_count=1,
            created_at=1,
            modified_at=2,
        )

        data = record.to_dict()

        assert data["content_type"] == "markdown"
        assert data["frontmatter"] == {"draft": True}
        assert set(data) == {
            "path", "title", "content", "raw_content", "frontmatter", "tags",
            "topics", "word_count", "created_at", "modified_at", "content_type",
        }

    def test_equality(self) -> None:
        """Records compare by value."""
        kwargs = dict(
            path="a.md", title="A", content="", raw_content="", frontmatter={},
            tags=[], topics=[], word_count=0, created_at=0, modified_at=0,
        )
        assert DocumentRecord(**kwargs) == DocumentRecord(**kwargs)


class TestImportModels:
    def test_imported_document_defaults(self) -> None:
        document = ImportedDocument(markdown="# x")
        assert document.embedded_images == []
        assert document.metadata is None
        assert document.chapter_count == 0

    def test_localized_count(self) -> None:
        result = LocalizationResult(
            markdown="",
            images=[LocalizedImage("id", "src", "a.png", "![a](/api/images/id)")],
        )
        assert result.localized_count == 1
        assert LocalizationResult(markdown="").localized_count == 0
