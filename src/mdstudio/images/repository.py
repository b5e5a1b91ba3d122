"""Content-addressed image storage on the local filesystem."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from mdstudio.models import StoredImage
from mdstudio.utils.files import sha256_bytes

LOGGER = logging.getLogger(__name__)

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "image/x-icon": "ico",
}

_IMAGE_ID = re.compile(r"^[0-9a-f]{64}$")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def file_extension(mime_type: str) -> str:
    return MIME_EXTENSIONS.get((mime_type or "").lower(), "bin")


class ImageRepository:
    """Store image bytes once per content hash and track who references them.

    Layout under ``base_path``::

        originals/<sha256>.<ext>
        metadata/<sha256>.json
    """

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)
        self.originals_path = self.base_path / "originals"
        self.metadata_path = self.base_path / "metadata"
        self.originals_path.mkdir(parents=True, exist_ok=True)
        self.metadata_path.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _original_file(self, image_id: str, mime_type: str) -> Path:
        return self.originals_path / f"{image_id}.{file_extension(mime_type)}"

    def _metadata_file(self, image_id: str) -> Path:
        return self.metadata_path / f"{image_id}.json"

    def _write_metadata(self, metadata: Dict[str, Any]) -> None:
        self._metadata_file(metadata["image_id"]).write_text(
            json.dumps(metadata, indent=2), encoding="utf-8"
        )

    def store_image(
        self,
        data: bytes,
        original_name: str,
        mime_type: str,
        document_path: Optional[str] = None,
    ) -> StoredImage:
        image_id = sha256_bytes(data)
        with self._lock:
            metadata = self.get_metadata(image_id)
            if metadata is not None:
                metadata["reference_count"] = metadata.get("reference_count", 1) + 1
                metadata["updated_at"] = _now_iso()
                if document_path and document_path not in metadata["used_in_documents"]:
                    metadata["used_in_documents"].append(document_path)
                self._write_metadata(metadata)
                LOGGER.debug(
                    "Image %s already stored, reference count now %d",
                    image_id,
                    metadata["reference_count"],
                )
                return StoredImage(image_id=image_id, existed=True, metadata=metadata)

            self._original_file(image_id, mime_type).write_bytes(data)
            now = _now_iso()
            metadata = {
                "image_id": image_id,
                "original_name": original_name,
                "mime_type": mime_type,
                "size": len(data),
                "extension": file_extension(mime_type),
                "created_at": now,
                "updated_at": now,
                "reference_count": 1,
                "used_in_documents": [document_path] if document_path else [],
            }
            self._write_metadata(metadata)

        LOGGER.info("Stored new image %s (%s)", image_id, original_name)
        return StoredImage(image_id=image_id, existed=False, metadata=metadata)

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        if not _IMAGE_ID.match(image_id):
            return None
        path = self._metadata_file(image_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def get_image(self, image_id: str) -> Optional[bytes]:
        metadata = self.get_metadata(image_id)
        if metadata is None:
            return None
        path = self._original_file(image_id, metadata["mime_type"])
        if not path.exists():
            LOGGER.warning("Image %s has metadata but no file", image_id)
            return None
        return path.read_bytes()

    def delete_image(self, image_id: str, document_path: Optional[str] = None) -> Dict[str, Any]:
        """Drop one reference; the files go away when none remain."""
        with self._lock:
            metadata = self.get_metadata(image_id)
            if metadata is None:
                return {"success": False, "error": "Image not found"}

            metadata["reference_count"] = max(0, metadata.get("reference_count", 1) - 1)
            if document_path in metadata["used_in_documents"]:
                metadata["used_in_documents"].remove(document_path)

            if metadata["reference_count"] == 0:
                self._original_file(image_id, metadata["mime_type"]).unlink(missing_ok=True)
                self._metadata_file(image_id).unlink(missing_ok=True)
                LOGGER.info("Deleted image %s (no more references)", image_id)
                return {"success": True, "deleted": True}

            metadata["updated_at"] = _now_iso()
            self._write_metadata(metadata)
        return {"success": True, "deleted": False, "reference_count": metadata["reference_count"]}

    def list_images(
        self, document_path: Optional[str] = None, mime_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        images = []
        for path in sorted(self.metadata_path.glob("*.json")):
            metadata = json.loads(path.read_text(encoding="utf-8"))
            if document_path and document_path not in metadata.get("used_in_documents", []):
                continue
            if mime_type and metadata.get("mime_type") != mime_type:
                continue
            images.append(metadata)
        return images

    def get_stats(self) -> Dict[str, Any]:
        images = self.list_images()
        by_mime: Dict[str, Dict[str, int]] = defaultdict(lambda: {"count": 0, "size": 0})
        for image in images:
            bucket = by_mime[image["mime_type"]]
            bucket["count"] += 1
            bucket["size"] += image["size"]
        return {
            "total_images": len(images),
            "total_size": sum(image["size"] for image in images),
            "total_references": sum(image.get("reference_count", 1) for image in images),
            "by_mime_type": dict(by_mime),
        }
