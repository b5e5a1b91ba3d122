"""FastAPI application exposing search, indexing and the import/export studio."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from watchdog.observers import Observer

from mdstudio.config import AppConfig
from mdstudio.errors import (
    ConversionError,
    IndexingError,
    UnsupportedFormatError,
    UploadTooLargeError,
)
from mdstudio.export.exporter import DocumentExporter
from mdstudio.images.localizer import ImageLocalizer
from mdstudio.images.repository import ImageRepository
from mdstudio.index.indexer import FileIndexer
from mdstudio.index.search import Searcher
from mdstudio.index.storage import SQLiteDocumentStore
from mdstudio.ingestion.converter import DocumentConverter
from mdstudio.ingestion.epub_importer import EpubImporter
from mdstudio.ingestion.importer import DocumentImporter
from mdstudio.processing.markdown import MarkdownProcessor
from mdstudio.processing.topics import TopicCorpus

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MDSTUDIO_CONFIG"

app = FastAPI(title="mdstudio", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_processor: Optional[MarkdownProcessor] = None
_watcher: Optional[FileIndexer] = None

_UNSAFE_HEADER_CHARS = re.compile(r"[^A-Za-z0-9._ -]")


class SaveDocumentPayload(BaseModel):
    path: str
    content: str


class ExportPayload(BaseModel):
    markdown: str
    format: str
    title: str | None = None


class WatchDirectoryPayload(BaseModel):
    directory: str = ""


def _config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR, "config.json"))


def _load_config() -> AppConfig:
    return AppConfig.load(_config_path())


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _open_store(config: AppConfig) -> SQLiteDocumentStore:
    db_path = config.resolve_db_path(Path.cwd())
    _ensure_db_parent(db_path)
    return SQLiteDocumentStore(db_path)


def _get_processor(config: AppConfig) -> MarkdownProcessor:
    # Shared so topic scores keep seeing the whole corpus across requests.
    global _processor
    if _processor is None:
        _processor = MarkdownProcessor(
            TopicCorpus(max_documents=config.topic_window), scope=config.topic_scope
        )
    return _processor


def _split_csv(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _resolve_inside(root: Path, relative: str) -> Path:
    """Resolve ``relative`` under ``root``, refusing anything that escapes it."""
    if "\0" in relative:
        raise HTTPException(status_code=400, detail="Invalid path: contains null byte")
    real_root = os.path.realpath(str(root))
    real_path = os.path.realpath(os.path.join(real_root, relative))
    if not (real_path + os.sep).startswith(real_root + os.sep) or real_path == real_root:
        raise HTTPException(status_code=403, detail="Access denied: path is outside the watch directory")
    return Path(real_path)


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the exact UTF-8 name."""
    fallback = _UNSAFE_HEADER_CHARS.sub("_", filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _start_watcher(config: AppConfig) -> None:
    """Scan the watch directory, then keep the index in sync with it."""
    global _watcher
    watch_dir = Path(config.watch_dir)
    if not watch_dir.is_dir():
        LOGGER.warning("Watch directory %s does not exist, file watching disabled", watch_dir)
        return

    store = _open_store(config)
    indexer = FileIndexer(
        store, watch_dir, processor=_get_processor(config), observer_factory=Observer
    )
    try:
        indexer.start()
    except Exception:
        store.close()
        raise
    _watcher = indexer


def _stop_watcher() -> None:
    global _watcher
    watcher, _watcher = _watcher, None
    if watcher is None:
        return
    watcher.stop()
    watcher.store.close()


def _restart_watcher(config: AppConfig) -> None:
    _stop_watcher()
    # Document keys are relative to the old root.
    _get_processor(config).reset_corpus()
    _start_watcher(config)


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    await asyncio.to_thread(_start_watcher, _load_config())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await asyncio.to_thread(_stop_watcher)


@app.exception_handler(UnsupportedFormatError)
async def unsupported_format_handler(request: Request, exc: UnsupportedFormatError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc), "supported": exc.supported})


@app.exception_handler(UploadTooLargeError)
async def upload_too_large_handler(request: Request, exc: UploadTooLargeError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConversionError)
async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
    LOGGER.error("Conversion failed: %s", exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/api/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/stats")
async def stats() -> Dict[str, Any]:
    config = _load_config()
    store = _open_store(config)
    try:
        result = store.get_stats()
    finally:
        store.close()
    return {**result, "watch_dir": str(config.watch_dir)}


@app.get("/api/tags")
async def tags() -> Dict[str, Any]:
    store = _open_store(_load_config())
    try:
        return {"tags": store.get_all_tags()}
    finally:
        store.close()


@app.get("/api/topics")
async def topics() -> Dict[str, Any]:
    store = _open_store(_load_config())
    try:
        return {"topics": store.get_all_topics()}
    finally:
        store.close()


@app.get("/api/search")
async def search(
    q: str = "",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    tags: str | None = None,
    topics: str | None = None,
    content_type: str | None = None,
    date_from: int | None = None,
    date_to: int | None = None,
) -> Dict[str, Any]:
    if not q.strip():
        raise HTTPException(status_code=400, detail="Empty query")

    store = _open_store(_load_config())
    try:
        results = Searcher(store).search(
            q,
            limit=limit,
            offset=offset,
            tags=_split_csv(tags),
            topics=_split_csv(topics),
            content_type=content_type,
            date_from=date_from,
            date_to=date_to,
        )
    except sqlite3.OperationalError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid search query: {exc}") from exc
    finally:
        store.close()
    return {"query": q, "count": len(results), "results": results}


@app.get("/api/documents")
async def list_documents(
    limit: int = Query(100, ge=1, le=1000), offset: int = Query(0, ge=0)
) -> Dict[str, Any]:
    store = _open_store(_load_config())
    try:
        documents = store.list_documents(limit=limit, offset=offset)
        totals = store.get_stats()
    finally:
        store.close()
    return {"documents": documents, "stats": totals}


@app.get("/api/document")
async def get_document(path: str) -> Dict[str, Any]:
    store = _open_store(_load_config())
    try:
        document = store.get_document(path)
    finally:
        store.close()
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {path}")
    return document


def _save_and_index(config: AppConfig, target: Path, content: str) -> Dict[str, Any]:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    store = _open_store(config)
    try:
        indexer = FileIndexer(store, config.watch_dir, processor=_get_processor(config))
        return indexer.index_file(target).to_dict()
    finally:
        store.close()


@app.put("/api/document")
async def save_document(payload: SaveDocumentPayload) -> Dict[str, Any]:
    config = _load_config()
    target = _resolve_inside(config.watch_dir, payload.path)
    if target.suffix.lower() != ".md":
        raise HTTPException(status_code=400, detail="Only .md files can be saved")

    try:
        document = await asyncio.to_thread(_save_and_index, config, target, payload.content)
    except IndexingError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"status": "ok", "document": document}


def _run_index_job(config: AppConfig) -> Dict[str, Any]:
    store = _open_store(config)
    try:
        indexer = FileIndexer(store, config.watch_dir, processor=_get_processor(config))
        result = indexer.index_existing_files()
    finally:
        store.close()
    return {
        "inserted": result.inserted,
        "updated": result.updated,
        "failed": result.failed,
        "processed_files": [str(path) for path in result.processed_files],
    }


@app.post("/api/index")
async def index_documents() -> Dict[str, Any]:
    config = _load_config()
    if not Path(config.watch_dir).is_dir():
        raise HTTPException(status_code=404, detail=f"Watch directory not found: {config.watch_dir}")
    result = await asyncio.to_thread(_run_index_job, config)
    return {"status": "ok", "watch_dir": str(config.watch_dir), "stats": result}


@app.get("/api/config")
async def get_config() -> Dict[str, Any]:
    return _load_config().to_dict()


@app.post("/api/config/watch-directory")
async def set_watch_directory(payload: WatchDirectoryPayload) -> Dict[str, Any]:
    if not payload.directory.strip():
        raise HTTPException(status_code=400, detail="Directory is required")

    config = _load_config()
    try:
        config.set_watch_dir(Path(payload.directory))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    config.save(_config_path())

    await asyncio.to_thread(_restart_watcher, config)
    return {"message": "Watch directory updated", "config": config.to_dict()}


def _build_importer(config: AppConfig) -> DocumentImporter:
    repository = ImageRepository(config.image_dir)
    return DocumentImporter(
        DocumentConverter(EpubImporter(max_workers=config.epub_workers)),
        ImageLocalizer(repository, timeout=config.image_fetch_timeout),
        repository,
        config.upload,
    )


@app.post("/api/studio/import")
async def import_document(file: UploadFile = File(...)) -> Dict[str, Any]:
    config = _load_config()
    filename = file.filename or ""
    if not filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    config.upload.validate(filename)
    data = await file.read()
    config.upload.validate(filename, len(data))

    staged = config.upload.staging_path(filename)
    staged.write_bytes(data)

    importer = _build_importer(config)
    try:
        result = await asyncio.to_thread(importer.import_file, staged, filename)
    finally:
        importer.localizer.close()

    return {
        "message": "File converted successfully",
        "markdown": result.markdown,
        "original_filename": result.original_filename,
        "file_type": result.file_type,
        "localized_images": result.localized_images,
        "images": result.images,
    }


@app.post("/api/studio/export")
async def export_document(payload: ExportPayload) -> Response:
    if not payload.markdown:
        raise HTTPException(status_code=400, detail="No markdown content provided")
    if not payload.format:
        raise HTTPException(status_code=400, detail="No export format specified")

    title = payload.title or "document"
    exporter = DocumentExporter()
    result = await asyncio.to_thread(exporter.export_document, payload.markdown, payload.format, title)
    return Response(
        content=result.buffer,
        media_type=result.mime_type,
        headers={"Content-Disposition": _content_disposition(f"{title}{result.extension}")},
    )


@app.get("/api/images")
async def list_images(
    document_path: str | None = None, mime_type: str | None = None
) -> Dict[str, Any]:
    images = ImageRepository(_load_config().image_dir).list_images(document_path, mime_type)
    return {
        "count": len(images),
        "images": [{**image, "url": f"/api/images/{image['image_id']}"} for image in images],
    }


@app.get("/api/images/stats")
async def image_stats() -> Dict[str, Any]:
    return ImageRepository(_load_config().image_dir).get_stats()


@app.delete("/api/images/{image_id}")
async def delete_image(image_id: str, document_path: str | None = None) -> Dict[str, Any]:
    result = ImageRepository(_load_config().image_dir).delete_image(image_id, document_path)
    if not result["success"]:
        raise HTTPException(status_code=404, detail=result["error"])
    if result["deleted"]:
        message = "Image deleted successfully"
    else:
        message = f"Reference removed. {result['reference_count']} reference(s) remaining."
    return {**result, "message": message}


@app.get("/api/images/{image_id}")
async def get_image(image_id: str) -> Response:
    repository = ImageRepository(_load_config().image_dir)
    metadata = repository.get_metadata(image_id)
    data = repository.get_image(image_id) if metadata else None
    if data is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return Response(content=data, media_type=metadata["mime_type"])


@app.get("/api/images/{image_id}/metadata")
async def get_image_metadata(image_id: str) -> Dict[str, Any]:
    metadata = ImageRepository(_load_config().image_dir).get_metadata(image_id)
    if metadata is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return metadata
