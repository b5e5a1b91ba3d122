"""Markdown indexing pipeline."""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from watchdog.observers import Observer

from mdstudio.errors import IndexingError
from mdstudio.index.watcher import MarkdownEventHandler
from mdstudio.models import DocumentRecord
from mdstudio.processing.frontmatter import parse_frontmatter
from mdstudio.processing.markdown import MarkdownProcessor
from mdstudio.processing.topics import CorpusScope
from mdstudio.utils.files import iter_markdown_paths, relative_key

LOGGER = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def upsert_document(self, document: DocumentRecord) -> str: ...

    def delete_document(self, path: str) -> bool: ...


class IndexerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    WATCHING = "watching"
    STOPPED = "stopped"


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    @property
    def indexed(self) -> int:
        return self.inserted + self.updated

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


def _timestamps_ms(stat) -> tuple[int, int]:
    created = getattr(stat, "st_birthtime", None) or stat.st_ctime
    return int(created * 1000), int(stat.st_mtime * 1000)


class FileIndexer:
    """Keeps the document store in sync with the markdown files under a root."""

    def __init__(
        self,
        store: DocumentStore,
        watch_path: Path,
        *,
        processor: Optional[MarkdownProcessor] = None,
        scope: CorpusScope = CorpusScope.CUMULATIVE,
        observer_factory: Callable[[], Observer] = Observer,
    ) -> None:
        self.store = store
        self.watch_path = Path(watch_path).resolve()
        self.processor = processor if processor is not None else MarkdownProcessor(scope=scope)
        self.observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._state = IndexerState.IDLE
        self._state_lock = threading.Lock()
        self._path_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._path_locks_guard = threading.Lock()

    @property
    def state(self) -> IndexerState:
        return self._state

    def _lock_for(self, key: str) -> threading.Lock:
        with self._path_locks_guard:
            lock = self._path_locks.get(key)
            if lock is None:
                lock = self._path_locks[key] = threading.Lock()
            return lock

    def _resolve(self, file_path: Path) -> Path:
        path = Path(file_path)
        if not path.is_absolute():
            path = self.watch_path / path
        return path

    def index_existing_files(self) -> IndexStats:
        """Index every markdown file under the watch root, one at a time."""
        LOGGER.info("Scanning existing markdown files in %s", self.watch_path)
        if self.processor.scope is CorpusScope.PER_SCAN:
            self.processor.reset_corpus()

        stats = IndexStats()
        for path in iter_markdown_paths([self.watch_path]):
            try:
                _, status = self._index_single(path)
            except Exception as e:
                LOGGER.error(f"Failed to index {path}: {e}")
                status = "failed"
            stats.increment(status, path)

        LOGGER.info("Indexed %d documents (%d failed)", stats.indexed, stats.failed)
        return stats

    def index_file(self, file_path: Path) -> DocumentRecord:
        """Read, process and upsert a single markdown file."""
        document, _ = self._index_single(self._resolve(file_path))
        return document

    def _index_single(self, path: Path) -> tuple[DocumentRecord, str]:
        try:
            key = relative_key(path, self.watch_path)
        except ValueError as exc:
            raise IndexingError(f"{path} is outside {self.watch_path}") from exc

        with self._lock_for(key):
            try:
                stat = path.stat()
                text = path.read_text(encoding="utf-8")
                frontmatter, body = parse_frontmatter(text)
                processed = self.processor.process(body, frontmatter, key=key)
            except IndexingError:
                raise
            except (OSError, UnicodeDecodeError) as exc:
                raise IndexingError(f"Cannot read {key}: {exc}") from exc

            created_at, modified_at = _timestamps_ms(stat)
            document = DocumentRecord(
                path=key,
                title=processed.title,
                content=processed.plain_text,
                raw_content=body,
                frontmatter=frontmatter,
                tags=processed.tags,
                topics=processed.topics,
                word_count=processed.word_count,
                created_at=created_at,
                modified_at=modified_at,
            )
            status = self.store.upsert_document(document)

        LOGGER.info("Indexed: %s", key)
        return document, status

    def remove_file(self, file_path: Path) -> bool:
        path = self._resolve(file_path)
        key = relative_key(path, self.watch_path)
        with self._lock_for(key):
            self.processor.forget(key)
            removed = self.store.delete_document(key)
        LOGGER.info("Removed from index: %s", key)
        return removed

    def start(self) -> Optional[IndexStats]:
        """Scan the root, then watch it for changes.

        Returns the scan statistics, or ``None`` when the indexer is already
        scanning or watching.
        """
        with self._state_lock:
            if self._state in (IndexerState.SCANNING, IndexerState.WATCHING):
                LOGGER.warning("Indexer for %s is already %s", self.watch_path, self._state.value)
                return None
            self._state = IndexerState.SCANNING

        try:
            stats = self.index_existing_files()
        except Exception:
            self._state = IndexerState.STOPPED
            raise

        with self._state_lock:
            if self._state is not IndexerState.SCANNING:
                LOGGER.info("Indexer for %s stopped during the initial scan", self.watch_path)
                return stats
            try:
                observer = self.observer_factory()
                observer.schedule(MarkdownEventHandler(self), str(self.watch_path), recursive=True)
                observer.start()
            except Exception:
                self._state = IndexerState.STOPPED
                raise
            self._observer = observer
            self._state = IndexerState.WATCHING

        LOGGER.info("Watching for markdown files in %s", self.watch_path)
        return stats

    def stop(self) -> None:
        with self._state_lock:
            observer, self._observer = self._observer, None
            if self._state is IndexerState.IDLE:
                return
            self._state = IndexerState.STOPPED
        if observer is not None:
            observer.stop()
            observer.join()
            LOGGER.info("File watcher stopped")
