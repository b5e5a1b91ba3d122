"""Copy images referenced by markdown into the local image repository."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

import httpx

from mdstudio.errors import ImageFetchError
from mdstudio.images.repository import ImageRepository
from mdstudio.models import LocalizationResult, LocalizedImage

LOGGER = logging.getLogger(__name__)

USER_AGENT = "mdstudio-ImageLocalizer/1.0"
DEFAULT_IMAGE_NAME = "imported-image"
ORIGINAL_SRC_CHARS = 100

IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_DATA_URI = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)

_MIME_TO_EXT = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}


def extension_for_mime(mime_type: str) -> str:
    return _MIME_TO_EXT.get(mime_type.lower(), "png")


def image_reference(image_id: str, alt_text: str) -> str:
    return f"![{alt_text}](/api/images/{image_id})"


@dataclass(slots=True)
class _ImageData:
    data: bytes
    original_name: str
    mime_type: str


class ImageLocalizer:
    """Rewrite ``![alt](src)`` references so they point at stored images.

    Data URIs are decoded and ``http(s)`` URLs downloaded; any other source
    (relative paths, already localized images) is left alone. A failure on
    one image is logged and that reference is kept unchanged.
    """

    def __init__(
        self,
        repository: ImageRepository,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self.repository = repository
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def localize_images(self, markdown: str, document_id: Optional[str] = None) -> LocalizationResult:
        updated = markdown
        images = []

        for match in IMAGE_PATTERN.finditer(markdown):
            full_match, alt_text, src = match.group(0), match.group(1), match.group(2)
            try:
                if src.startswith("data:image/"):
                    image = self._decode_data_uri(src, alt_text or DEFAULT_IMAGE_NAME)
                elif src.startswith(("http://", "https://")):
                    LOGGER.debug("Fetching external image %s", src[:50])
                    image = self._fetch(src)
                else:
                    LOGGER.debug("Skipping local or relative image %s", src[:50])
                    continue

                stored = self.repository.store_image(
                    image.data, image.original_name, image.mime_type, document_id
                )
            except (ImageFetchError, ValueError, OSError) as exc:
                LOGGER.error("Error processing image %s: %s", src[:50], exc)
                continue

            new_reference = image_reference(stored.image_id, alt_text or image.original_name)
            updated = updated.replace(full_match, new_reference, 1)
            images.append(
                LocalizedImage(
                    image_id=stored.image_id,
                    original_src=src[:ORIGINAL_SRC_CHARS],
                    original_name=image.original_name,
                    new_reference=new_reference,
                )
            )
            LOGGER.info("Localized image %s -> %s", image.original_name, stored.image_id)

        return LocalizationResult(markdown=updated, images=images)

    def _decode_data_uri(self, src: str, suggested_name: str) -> _ImageData:
        match = _DATA_URI.match(src)
        if not match:
            raise ValueError("Invalid base64 data URL format")
        mime_type, payload = match.group(1), match.group(2)
        try:
            data = base64.b64decode(payload)
        except binascii.Error as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc

        name = suggested_name
        if "." not in name:
            name = f"{name}.{extension_for_mime(mime_type)}"
        return _ImageData(data=data, original_name=name, mime_type=mime_type)

    def _fetch(self, url: str) -> _ImageData:
        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ImageFetchError(f"Timeout fetching image from {url}") from exc
        except httpx.HTTPError as exc:
            raise ImageFetchError(f"Failed to fetch image from {url}: {exc}") from exc

        mime_type = response.headers.get("content-type", "").split(";", 1)[0].strip() or "image/png"
        basename = PurePosixPath(urlparse(url).path).name
        if "." in basename:
            name = basename
        else:
            name = f"imported-{int(time.time() * 1000)}.{extension_for_mime(mime_type)}"
        return _ImageData(data=response.content, original_name=name, mime_type=mime_type)
