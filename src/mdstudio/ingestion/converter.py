"""Convert foreign document formats into markdown."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

import mammoth

from mdstudio.errors import ConversionError, UnsupportedFormatError
from mdstudio.ingestion.epub_importer import EpubImporter
from mdstudio.ingestion.html import body_inner_html, html_to_markdown
from mdstudio.ingestion.pdf_loader import pdf_to_markdown
from mdstudio.models import ImportedDocument

LOGGER = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ["md", "markdown", "html", "htm", "txt", "pdf", "docx", "epub"]

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _extension(filename: str | Path) -> str:
    return Path(filename).suffix.lstrip(".").lower()


def text_to_markdown(text: str) -> str:
    paragraphs = (p.strip() for p in _PARAGRAPH_BREAK.split(text))
    return "\n\n".join(p for p in paragraphs if p)


class DocumentConverter:
    """Dispatch a file to its format converter by extension."""

    def __init__(self, epub_importer: Optional[EpubImporter] = None) -> None:
        self.epub_importer = epub_importer or EpubImporter()
        self._handlers: Dict[str, Callable[[Path], ImportedDocument]] = {
            "md": self._convert_markdown,
            "markdown": self._convert_markdown,
            "html": self._convert_html,
            "htm": self._convert_html,
            "txt": self._convert_text,
            "pdf": self._convert_pdf,
            "docx": self._convert_docx,
            "epub": self._convert_epub,
        }

    @staticmethod
    def get_supported_extensions() -> List[str]:
        return list(SUPPORTED_EXTENSIONS)

    def is_supported(self, filename: str | Path) -> bool:
        return _extension(filename) in self._handlers

    def convert_to_markdown(
        self, file_path: Path, mime_type: Optional[str] = None
    ) -> ImportedDocument:
        """Convert ``file_path`` to markdown, choosing the converter by extension.

        ``mime_type`` is accepted for callers that have one but the extension
        always decides.
        """
        file_path = Path(file_path)
        ext = _extension(file_path)
        handler = self._handlers.get(ext)
        if handler is None:
            raise UnsupportedFormatError(ext or file_path.name, SUPPORTED_EXTENSIONS)
        LOGGER.info("Converting %s (%s)", file_path.name, mime_type or ext)
        return handler(file_path)

    def _convert_markdown(self, path: Path) -> ImportedDocument:
        try:
            return ImportedDocument(markdown=path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise ConversionError(f"Markdown read failed: {exc}") from exc

    def _convert_html(self, path: Path) -> ImportedDocument:
        try:
            html = path.read_text(encoding="utf-8")
            return ImportedDocument(markdown=html_to_markdown(body_inner_html(html)))
        except Exception as exc:
            raise ConversionError(f"HTML conversion failed: {exc}") from exc

    def _convert_text(self, path: Path) -> ImportedDocument:
        try:
            return ImportedDocument(markdown=text_to_markdown(path.read_text(encoding="utf-8")))
        except (OSError, UnicodeDecodeError) as exc:
            raise ConversionError(f"Text conversion failed: {exc}") from exc

    def _convert_pdf(self, path: Path) -> ImportedDocument:
        try:
            return ImportedDocument(markdown=pdf_to_markdown(path))
        except Exception as exc:
            raise ConversionError(f"PDF conversion failed: {exc}") from exc

    def _convert_docx(self, path: Path) -> ImportedDocument:
        try:
            with path.open("rb") as docx_file:
                result = mammoth.convert_to_html(docx_file)
            markdown = html_to_markdown(result.value)
        except Exception as exc:
            raise ConversionError(f"DOCX conversion failed: {exc}") from exc

        for message in result.messages:
            LOGGER.warning("DOCX conversion warning for %s: %s", path.name, message)
        return ImportedDocument(markdown=markdown)

    def _convert_epub(self, path: Path) -> ImportedDocument:
        return self.epub_importer.import_epub(path)
