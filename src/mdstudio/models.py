"""Core mdstudio data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class DocumentRecord:
    """Indexed representation of one markdown file under the watch root."""

    path: str
    title: str
    content: str
    raw_content: str
    frontmatter: Dict[str, Any]
    tags: List[str]
    topics: List[str]
    word_count: int
    created_at: int
    modified_at: int
    content_type: str = "markdown"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ProcessedMarkdown:
    """Metadata derived from a markdown body."""

    title: str
    plain_text: str
    tags: List[str]
    topics: List[str]
    word_count: int


@dataclass(slots=True)
class EmbeddedImage:
    id: str
    href: str
    media_type: str
    data: bytes


@dataclass(slots=True)
class ImportedDocument:
    """Result of converting a foreign document into markdown."""

    markdown: str
    embedded_images: List[EmbeddedImage] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    title: Optional[str] = None
    chapter_count: int = 0


@dataclass(slots=True)
class LocalizedImage:
    image_id: str
    original_src: str
    original_name: str
    new_reference: str


@dataclass(slots=True)
class LocalizationResult:
    markdown: str
    images: List[LocalizedImage] = field(default_factory=list)

    @property
    def localized_count(self) -> int:
        return len(self.images)


@dataclass(slots=True)
class StoredImage:
    """Outcome of handing bytes to the image repository."""

    image_id: str
    existed: bool
    metadata: Dict[str, Any]


@dataclass(slots=True)
class ExportResult:
    buffer: bytes
    mime_type: str
    extension: str
