"""Application configuration defaults."""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from mdstudio.errors import UnsupportedFormatError, UploadTooLargeError
from mdstudio.processing.topics import CorpusScope

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("config.json")
IMPORT_EXTENSIONS = (".md", ".markdown", ".html", ".htm", ".txt", ".pdf", ".docx", ".epub")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(slots=True)
class UploadConfig:
    """Where imports are staged and which uploads are accepted."""

    upload_dir: Path = Path("data/uploads")
    max_bytes: int = MAX_UPLOAD_BYTES
    allowed_extensions: tuple[str, ...] = IMPORT_EXTENSIONS

    def validate(self, filename: str, size: Optional[int] = None) -> str:
        """Check an upload, returning its lowercased extension."""
        ext = Path(filename).suffix.lower()
        if ext not in self.allowed_extensions:
            raise UnsupportedFormatError(ext or filename, self.allowed_extensions)
        if size is not None and size > self.max_bytes:
            raise UploadTooLargeError(
                f"{filename} is {size} bytes, the limit is {self.max_bytes} bytes"
            )
        return ext

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        return _UNSAFE_FILENAME_CHARS.sub("_", Path(filename).name)

    def staging_path(self, filename: str) -> Path:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        return self.upload_dir / f"{int(time.time() * 1000)}-{self.sanitize_filename(filename)}"


@dataclass(slots=True)
class AppConfig:
    db_path: Path = Path("data/mdstudio.db")
    watch_dir: Path = field(default_factory=Path.cwd)
    image_dir: Path = Path("data/images")
    upload: UploadConfig = field(default_factory=UploadConfig)
    topic_scope: CorpusScope = CorpusScope.CUMULATIVE
    topic_window: Optional[int] = None
    epub_workers: int = 4
    image_fetch_timeout: float = 30.0

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def set_watch_dir(self, path: Path) -> None:
        path = Path(path).expanduser()
        if not path.is_dir():
            raise ValueError(f"Directory does not exist: {path}")
        self.watch_dir = path.resolve()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "db_path": str(self.db_path),
            "watch_dir": str(self.watch_dir),
            "image_dir": str(self.image_dir),
            "upload_dir": str(self.upload.upload_dir),
            "max_upload_bytes": self.upload.max_bytes,
            "topic_scope": self.topic_scope.value,
            "topic_window": self.topic_window,
            "epub_workers": self.epub_workers,
            "image_fetch_timeout": self.image_fetch_timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        config = cls()
        if "db_path" in data:
            config.db_path = Path(data["db_path"])
        if "watch_dir" in data:
            config.watch_dir = Path(data["watch_dir"])
        if "image_dir" in data:
            config.image_dir = Path(data["image_dir"])
        if "upload_dir" in data:
            config.upload.upload_dir = Path(data["upload_dir"])
        if "max_upload_bytes" in data:
            config.upload.max_bytes = int(data["max_upload_bytes"])
        if "topic_scope" in data:
            config.topic_scope = CorpusScope(data["topic_scope"])
        if data.get("topic_window") is not None:
            config.topic_window = int(data["topic_window"])
        if "epub_workers" in data:
            config.epub_workers = int(data["epub_workers"])
        if "image_fetch_timeout" in data:
            config.image_fetch_timeout = float(data["image_fetch_timeout"])
        return config

    @classmethod
    def load(cls, path: Path = DEFAULT_CONFIG_FILE) -> "AppConfig":
        """Read a JSON config file over the defaults.

        A missing or unreadable file yields the defaults.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            return cls.from_dict(data)
        except (OSError, ValueError) as e:
            LOGGER.error(f"Error loading config {path}: {e}")
            return cls()

    def save(self, path: Path = DEFAULT_CONFIG_FILE) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        LOGGER.info("Configuration saved to %s", path)
