"""Command line interface for mdstudio."""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from mdstudio.config import AppConfig
from mdstudio.errors import ConversionError, UnsupportedFormatError
from mdstudio.export.exporter import DocumentExporter
from mdstudio.index.indexer import FileIndexer
from mdstudio.index.search import Searcher
from mdstudio.index.storage import SQLiteDocumentStore
from mdstudio.ingestion.converter import DocumentConverter
from mdstudio.processing.markdown import MarkdownProcessor
from mdstudio.processing.topics import CorpusScope
from mdstudio.web.app import CONFIG_ENV_VAR

console = Console()
app = typer.Typer(help="mdstudio - index, search and convert markdown notes")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_db(db: Optional[Path]) -> Path:
    config = AppConfig(db_path=db) if db is not None else AppConfig()
    return config.resolve_db_path(Path.cwd())


def _build_indexer(store: SQLiteDocumentStore, root: Path, scope: CorpusScope) -> FileIndexer:
    return FileIndexer(store, root, processor=MarkdownProcessor(scope=scope))


@app.command()
def index(
    root: Path = typer.Argument(..., help="Directory of markdown files.", exists=True, file_okay=False, resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    scope: CorpusScope = typer.Option(CorpusScope.CUMULATIVE, help="Topic corpus scope"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index every markdown file under ROOT."""
    _setup_logging(verbose)
    resolved_db = _resolve_db(db)
    _ensure_db_parent(resolved_db)

    store = SQLiteDocumentStore(resolved_db)
    console.print(f"Indexing [bold]{root}[/bold] into [bold]{resolved_db}[/bold]...")
    try:
        stats = _build_indexer(store, root, scope).index_existing_files()
    finally:
        store.close()

    if not stats.processed_files:
        console.print("[yellow]No markdown files found.[/yellow]")
        return
    console.print(f"Inserted: {stats.inserted}, updated: {stats.updated}, failed: {stats.failed}")


@app.command()
def watch(
    root: Path = typer.Argument(..., help="Directory to watch.", exists=True, file_okay=False, resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    scope: CorpusScope = typer.Option(CorpusScope.CUMULATIVE, help="Topic corpus scope"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index ROOT, then keep the index in sync until interrupted."""
    _setup_logging(verbose)
    resolved_db = _resolve_db(db)
    _ensure_db_parent(resolved_db)

    store = SQLiteDocumentStore(resolved_db)
    indexer = _build_indexer(store, root, scope)
    try:
        stats = indexer.start()
        if stats is not None:
            console.print(f"Indexed {stats.indexed} documents ({stats.failed} failed)")
        console.print(f"Watching [bold]{root}[/bold], press Ctrl-C to stop.")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        indexer.stop()
        store.close()


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text (FTS5 syntax)"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    limit: int = typer.Option(10, help="Number of results to display"),
    tag: List[str] = typer.Option([], "--tag", help="Only documents with this tag"),
    topic: List[str] = typer.Option([], "--topic", help="Only documents with this topic"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a full-text search."""
    _setup_logging(verbose)
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    store = SQLiteDocumentStore(resolved_db)
    try:
        results = Searcher(store).search(query, limit=limit, tags=tag, topics=topic)
    except (ValueError, sqlite3.OperationalError) as exc:
        raise typer.BadParameter(f"Invalid query: {exc}") from exc
    finally:
        store.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Title")
    table.add_column("Snippet")

    for result in results:
        snippet = result.snippet.replace("\n", " ")
        table.add_row(f"{result.score:.4f}", result.path, result.title, snippet[:180])

    console.print(table)


@app.command()
def prune(
    root: Path = typer.Argument(..., help="Watch root the stored paths are relative to.", file_okay=False, resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove documents whose files no longer exist under ROOT."""
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to prune.[/yellow]")
        return

    store = SQLiteDocumentStore(resolved_db)
    try:
        removed = store.remove_missing_files(root)
    finally:
        store.close()
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def convert(
    file: Path = typer.Argument(..., help="Document to convert.", exists=True, dir_okay=False),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write markdown here instead of stdout"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Convert HTML, TXT, PDF, DOCX or EPUB to markdown."""
    _setup_logging(verbose)
    try:
        document = DocumentConverter().convert_to_markdown(file)
    except (UnsupportedFormatError, ConversionError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if output is None:
        typer.echo(document.markdown)
        return
    output.write_text(document.markdown, encoding="utf-8")
    console.print(f"Wrote [bold]{output}[/bold]")


@app.command()
def export(
    file: Path = typer.Argument(..., help="Markdown file to export.", exists=True, dir_okay=False),
    fmt: str = typer.Option(..., "--format", "-f", help="html, pdf, docx, txt or md"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file"),
    title: Optional[str] = typer.Option(None, help="Document title (defaults to the file name)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Export a markdown file to another format."""
    _setup_logging(verbose)
    title = title or file.stem
    try:
        result = DocumentExporter().export_document(file.read_text(encoding="utf-8"), fmt, title)
    except (UnsupportedFormatError, ConversionError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    target = output or file.with_suffix(result.extension)
    if target.resolve() == file.resolve():
        target = file.with_name(f"{file.stem}-export{result.extension}")
    target.write_bytes(result.buffer)
    console.print(f"Wrote [bold]{target}[/bold] ({result.mime_type})")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    if config is not None:
        os.environ[CONFIG_ENV_VAR] = str(config)
    resolved = AppConfig.load(config) if config is not None else AppConfig.load()

    console.print(
        f"Starting API on http://{host}:{port} "
        f"(watching: {resolved.watch_dir}, database: {resolved.db_path})"
    )
    uvicorn.run(
        "mdstudio.web.app:app",
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
