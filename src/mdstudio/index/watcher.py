"""Translate watchdog filesystem events into indexer calls."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from mdstudio.utils.files import is_ignored, is_markdown_file

if TYPE_CHECKING:
    from mdstudio.index.indexer import FileIndexer

LOGGER = logging.getLogger(__name__)


class MarkdownEventHandler(FileSystemEventHandler):
    """Re-index markdown files on add/change, drop them on delete.

    Runs on the observer thread; a failing event is logged and never stops
    the observer.
    """

    def __init__(self, indexer: "FileIndexer") -> None:
        super().__init__()
        self.indexer = indexer

    def _relevant(self, raw_path: str | bytes) -> Path | None:
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if not is_markdown_file(path):
            return None
        try:
            if is_ignored(path, self.indexer.watch_path):
                return None
        except ValueError:
            return None
        return path

    def _index(self, raw_path: str | bytes, action: str) -> None:
        path = self._relevant(raw_path)
        if path is None:
            return
        LOGGER.info("File %s: %s", action, path)
        try:
            self.indexer.index_file(path)
        except Exception as exc:
            LOGGER.error("Failed to index %s: %s", path, exc)

    def _remove(self, raw_path: str | bytes) -> None:
        path = self._relevant(raw_path)
        if path is None:
            return
        LOGGER.info("File deleted: %s", path)
        try:
            self.indexer.remove_file(path)
        except Exception as exc:
            LOGGER.error("Failed to remove %s from index: %s", path, exc)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._index(event.src_path, "added")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._index(event.src_path, "changed")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._remove(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._remove(event.src_path)
        self._index(event.dest_path, "added")
