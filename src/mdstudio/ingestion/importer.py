"""Turn an uploaded file into markdown with locally stored images."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

from mdstudio.config import UploadConfig
from mdstudio.images.localizer import ImageLocalizer
from mdstudio.images.repository import ImageRepository
from mdstudio.ingestion.converter import DocumentConverter
from mdstudio.models import EmbeddedImage
from mdstudio.utils.text import slugify

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ImportResult:
    markdown: str
    original_filename: str
    file_type: str
    images: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def localized_images(self) -> int:
        return len(self.images)


def _rewrite_image_refs(markdown: str, basename: str, new_ref: str) -> str:
    pattern = re.compile(r"(!\[[^\]]*\]\()[^)]*" + re.escape(basename) + r"(\))")
    return pattern.sub(lambda m: f"{m.group(1)}{new_ref}{m.group(2)}", markdown)


class DocumentImporter:
    """Convert staged uploads and move their images into the repository."""

    def __init__(
        self,
        converter: DocumentConverter,
        localizer: ImageLocalizer,
        repository: ImageRepository,
        upload_config: Optional[UploadConfig] = None,
    ) -> None:
        self.converter = converter
        self.localizer = localizer
        self.repository = repository
        self.upload_config = upload_config or UploadConfig()

    def import_file(self, path: Path, original_filename: str) -> ImportResult:
        """Convert ``path`` and delete it afterwards, whatever the outcome."""
        path = Path(path)
        try:
            file_type = self.upload_config.validate(original_filename)
            LOGGER.info("Converting file: %s", original_filename)
            document = self.converter.convert_to_markdown(path)
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Could not remove staged upload %s: %s", path, exc)

        markdown = document.markdown
        if document.embedded_images:
            title = (document.metadata or {}).get("title") or re.sub(
                r"\.epub$", "", original_filename, flags=re.IGNORECASE
            )
            markdown, images = self._store_embedded(
                markdown, document.embedded_images, slugify(str(title)), original_filename
            )
        else:
            result = self.localizer.localize_images(markdown, original_filename)
            markdown = result.markdown
            images = [
                {
                    "id": image.image_id,
                    "original_url": image.original_src,
                    "localized_url": f"/api/images/{image.image_id}",
                }
                for image in result.images
            ]
            if result.localized_count:
                LOGGER.info(
                    "Localized %d external image(s) from %s",
                    result.localized_count,
                    original_filename,
                )

        return ImportResult(
            markdown=markdown,
            original_filename=original_filename,
            file_type=file_type,
            images=images,
        )

    def _store_embedded(
        self,
        markdown: str,
        embedded: List[EmbeddedImage],
        prefix: str,
        document_path: str,
    ) -> tuple[str, List[Dict[str, Any]]]:
        images = []
        for image in embedded:
            basename = PurePosixPath(image.href).name
            try:
                stored = self.repository.store_image(
                    image.data, f"{prefix}-{basename}", image.media_type, document_path
                )
            except OSError as exc:
                LOGGER.error("Failed to save embedded image %s: %s", image.id, exc)
                continue
            new_ref = f"/api/images/{stored.image_id}"
            markdown = _rewrite_image_refs(markdown, basename, new_ref)
            images.append({"id": stored.image_id, "original_url": image.href, "localized_url": new_ref})
            LOGGER.debug("Saved embedded image %s -> %s", image.href, new_ref)
        return markdown, images
