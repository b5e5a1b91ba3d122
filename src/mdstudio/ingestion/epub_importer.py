"""EPUB to markdown conversion built on ebooklib."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ebooklib import epub

from mdstudio.errors import ConversionError
from mdstudio.ingestion.html import html_to_markdown, pop_chapter_title, strip_document_wrapper
from mdstudio.models import EmbeddedImage, ImportedDocument
from mdstudio.processing.frontmatter import build_frontmatter

LOGGER = logging.getLogger(__name__)

OPF_SCHEME = "{http://www.idpf.org/2007/opf}scheme"

# Dublin Core element -> frontmatter key, in output order.
_SCALAR_METADATA = [
    ("title", "title"),
    ("creator", "author"),
    ("publisher", "publisher"),
    ("language", "language"),
    ("date", "date"),
    ("description", "description"),
]


@dataclass(slots=True)
class ChapterResult:
    item_id: str
    title: Optional[str] = None
    content: str = ""
    error: Optional[str] = None


def _decode(content: bytes | str) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return content


def _flatten_toc(entries: Iterable[Any], titles: Dict[str, str]) -> Dict[str, str]:
    for entry in entries:
        if isinstance(entry, (tuple, list)):
            section, children = entry[0], entry[1]
            _flatten_toc([section], titles)
            _flatten_toc(children, titles)
            continue
        href = getattr(entry, "href", None)
        title = getattr(entry, "title", None)
        if href and title:
            titles.setdefault(href.split("#", 1)[0], title)
    return titles


def _find_isbn(identifiers: Iterable[tuple]) -> Optional[str]:
    for value, attrs in identifiers:
        if not value:
            continue
        scheme = (attrs or {}).get(OPF_SCHEME) or (attrs or {}).get("scheme") or ""
        if scheme.upper() == "ISBN":
            return value
        if value.lower().startswith("urn:isbn:"):
            return value[len("urn:isbn:"):]
    return None


class EpubImporter:
    """Convert an EPUB book into a single markdown document.

    Chapters and images are read through a bounded thread pool; ``map``
    keeps results in spine order.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self.max_workers = max(1, max_workers)

    def import_epub(
        self,
        path: Path,
        *,
        extract_images: bool = True,
        preserve_chapter_structure: bool = True,
        include_metadata: bool = True,
    ) -> ImportedDocument:
        try:
            book = epub.read_epub(str(path), options={"ignore_ncx": True})
        except Exception as exc:
            raise ConversionError(f"EPUB conversion failed: {exc}") from exc

        metadata = self.extract_metadata(book)
        toc_titles = _flatten_toc(getattr(book, "toc", None) or [], {})
        items = [item for item in (book.get_item_with_id(idref) for idref, *_ in book.spine) if item]

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            results = list(pool.map(lambda item: self._convert_chapter(item, toc_titles), items))
            images = self._extract_images(book, pool) if extract_images else []

        chapters = []
        for result in results:
            if result.error:
                LOGGER.warning("Failed to extract chapter %s: %s", result.item_id, result.error)
            elif result.content:
                chapters.append(result)
        LOGGER.info("Found %d chapters and %d images in %s", len(chapters), len(images), path)

        parts = []
        if include_metadata and metadata:
            parts.append(build_frontmatter(metadata))
        if metadata.get("title"):
            parts.append(f"# {metadata['title']}\n\n")
        for chapter in chapters:
            if preserve_chapter_structure and chapter.title:
                parts.append(f"## {chapter.title}\n\n")
            parts.append(chapter.content + "\n\n")

        return ImportedDocument(
            markdown="".join(parts).strip(),
            embedded_images=images,
            metadata=metadata,
            title=metadata.get("title") or "Imported EPUB",
            chapter_count=len(chapters),
        )

    def extract_metadata(self, book: Any) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        for element, key in _SCALAR_METADATA:
            values = book.get_metadata("DC", element)
            if values and values[0][0]:
                metadata[key] = values[0][0]

        isbn = _find_isbn(book.get_metadata("DC", "identifier") or [])
        if isbn:
            metadata["isbn"] = isbn

        subjects = [value for value, _ in book.get_metadata("DC", "subject") or [] if value]
        if subjects:
            metadata["tags"] = subjects
        return metadata

    def _convert_chapter(self, item: Any, toc_titles: Dict[str, str]) -> ChapterResult:
        item_id = item.get_id()
        try:
            title, body = pop_chapter_title(_decode(item.get_content()))
            content = html_to_markdown(strip_document_wrapper(body))
        except Exception as exc:
            return ChapterResult(item_id=item_id, error=str(exc))
        return ChapterResult(
            item_id=item_id,
            title=title or toc_titles.get(item.get_name()),
            content=content,
        )

    def _extract_images(self, book: Any, pool: ThreadPoolExecutor) -> List[EmbeddedImage]:
        candidates = [
            item for item in book.get_items() if (item.media_type or "").startswith("image/")
        ]

        def load(item: Any) -> Optional[EmbeddedImage]:
            try:
                return EmbeddedImage(
                    id=item.get_id(),
                    href=item.get_name(),
                    media_type=item.media_type,
                    data=item.get_content(),
                )
            except Exception as exc:
                LOGGER.warning("Failed to extract image %s: %s", item.get_id(), exc)
                return None

        return [image for image in pool.map(load, candidates) if image is not None]
