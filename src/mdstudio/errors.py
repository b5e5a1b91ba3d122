"""Exception hierarchy shared by the indexing, import and export pipelines."""

from __future__ import annotations


class MdStudioError(Exception):
    """Base class for all mdstudio errors."""


class UnsupportedFormatError(MdStudioError):
    """Raised when a file extension or export format is not recognised."""

    def __init__(self, fmt: str, supported: list[str] | tuple[str, ...] = ()) -> None:
        self.format = fmt
        self.supported = list(supported)
        message = f"Unsupported format: {fmt}"
        if self.supported:
            message += f" (supported: {', '.join(self.supported)})"
        super().__init__(message)


class UnsupportedExportFormatError(UnsupportedFormatError):
    """Raised when an export is requested for an unknown format name."""


class ConversionError(MdStudioError):
    """A format-specific parse or render failure."""


class IndexingError(MdStudioError):
    """A single file could not be read, parsed or stored."""


class FrontmatterError(IndexingError):
    """The YAML header of a markdown file is malformed."""


class ImageFetchError(MdStudioError):
    """An external image could not be retrieved."""


class UploadTooLargeError(MdStudioError):
    """An uploaded file exceeds the configured size limit."""
