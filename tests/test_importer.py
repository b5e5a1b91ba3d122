"""Tests for the upload import pipeline."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mdstudio.config import UploadConfig
from mdstudio.errors import ConversionError, UnsupportedFormatError
from mdstudio.images.localizer import ImageLocalizer
from mdstudio.images.repository import ImageRepository
from mdstudio.ingestion.importer import DocumentImporter, _rewrite_image_refs
from mdstudio.models import EmbeddedImage, ImportedDocument, LocalizationResult


@pytest.fixture
def repository(tmp_path: Path) -> ImageRepository:
    return ImageRepository(tmp_path / "images")


@pytest.fixture
def staged(tmp_path: Path) -> Path:
    path = tmp_path / "uploads" / "123-upload.bin"
    path.parent.mkdir()
    path.write_bytes(b"payload")
    return path


def _importer(converter: MagicMock, repository: ImageRepository, localizer=None) -> DocumentImporter:
    return DocumentImporter(converter, localizer or ImageLocalizer(repository), repository, UploadConfig())


class TestImportFile:
    def test_markdown_images_are_localized(self, repository: ImageRepository, staged: Path) -> None:
        converter = MagicMock()
        converter.convert_to_markdown.return_value = ImportedDocument(
            markdown="# Note\n\n![dot](data:image/png;base64,AAAA)"
        )

        result = _importer(converter, repository).import_file(staged, "note.md")

        assert not staged.exists()
        assert result.file_type == ".md"
        assert result.original_filename == "note.md"
        assert result.localized_images == 1
        image = result.images[0]
        assert image["original_url"] == "data:image/png;base64,AAAA"
        assert image["localized_url"] == f"/api/images/{image['id']}"
        assert result.markdown == f"# Note\n\n![dot](/api/images/{image['id']})"
        converter.convert_to_markdown.assert_called_once_with(staged)

    def test_embedded_images_bypass_the_localizer(self, repository: ImageRepository, staged: Path) -> None:
        converter = MagicMock()
        converter.convert_to_markdown.return_value = ImportedDocument(
            markdown="![cover](../images/cover.png)\n\n![remote](https://example.com/x.png)",
            embedded_images=[EmbeddedImage("img1", "OEBPS/images/cover.png", "image/png", b"cover")],
            metadata={"title": "My Book"},
        )
        localizer = MagicMock()

        result = _importer(converter, repository, localizer).import_file(staged, "book.epub")

        localizer.localize_images.assert_not_called()
        image_id = result.images[0]["id"]
        assert result.markdown == (
            f"![cover](/api/images/{image_id})\n\n![remote](https://example.com/x.png)"
        )
        assert result.images[0]["original_url"] == "OEBPS/images/cover.png"
        metadata = repository.get_metadata(image_id)
        assert metadata["original_name"] == "my-book-cover.png"
        assert metadata["used_in_documents"] == ["book.epub"]

    def test_embedded_prefix_falls_back_to_filename(self, repository: ImageRepository, staged: Path) -> None:
        converter = MagicMock()
        converter.convert_to_markdown.return_value = ImportedDocument(
            markdown="text",
            embedded_images=[EmbeddedImage("img1", "pic.gif", "image/gif", b"gif")],
            metadata={},
        )

        result = _importer(converter, repository, MagicMock()).import_file(staged, "Some Book.EPUB")

        assert repository.get_metadata(result.images[0]["id"])["original_name"] == "some-book-pic.gif"

    def test_staged_file_removed_on_failure(self, repository: ImageRepository, staged: Path) -> None:
        converter = MagicMock()
        converter.convert_to_markdown.side_effect = ConversionError("PDF conversion failed: broken")

        with pytest.raises(ConversionError):
            _importer(converter, repository).import_file(staged, "report.pdf")
        assert not staged.exists()

    def test_unsupported_upload(self, repository: ImageRepository, staged: Path) -> None:
        converter = MagicMock()

        with pytest.raises(UnsupportedFormatError):
            _importer(converter, repository).import_file(staged, "virus.exe")
        converter.convert_to_markdown.assert_not_called()
        assert not staged.exists()

    def test_localizer_receives_filename(self, repository: ImageRepository, staged: Path) -> None:
        converter = MagicMock()
        converter.convert_to_markdown.return_value = ImportedDocument(markdown="plain")
        localizer = MagicMock()
        localizer.localize_images.return_value = LocalizationResult(markdown="plain")

        result = _importer(converter, repository, localizer).import_file(staged, "page.html")

        localizer.localize_images.assert_called_once_with("plain", "page.html")
        assert result.images == []
        assert result.localized_images == 0


def test_rewrite_matches_basename_only_inside_images() -> None:
    markdown = "[link](cover.png) ![a](img/cover.png) ![b](other.png)"
    assert _rewrite_image_refs(markdown, "cover.png", "/api/images/x") == (
        "[link](cover.png) ![a](/api/images/x) ![b](other.png)"
    )
