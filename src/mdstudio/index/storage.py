"""SQLite + FTS5 document store."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from collections import Counter
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from mdstudio.models import DocumentRecord


def _now_ms() -> int:
    return int(time.time() * 1000)


def _loads(value: Optional[str], default: Any) -> Any:
    return json.loads(value) if value else default


class SQLiteDocumentStore:
    """Persistence layer for indexed markdown documents.

    The connection is shared between the caller and the filesystem watch
    thread, so every access goes through one re-entrant lock.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    raw_content TEXT NOT NULL,
                    frontmatter TEXT,
                    tags TEXT,
                    topics TEXT,
                    content_type TEXT,
                    word_count INTEGER,
                    created_at INTEGER NOT NULL,
                    modified_at INTEGER NOT NULL,
                    indexed_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
                    path UNINDEXED,
                    title,
                    content,
                    tags,
                    topics,
                    content='documents',
                    content_rowid='rowid'
                )
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN
                    INSERT INTO documents_fts(rowid, path, title, content, tags, topics)
                    VALUES (new.rowid, new.path, new.title, new.content, new.tags, new.topics);
                END;
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN
                    INSERT INTO documents_fts(documents_fts, rowid, path, title, content, tags, topics)
                    VALUES ('delete', old.rowid, old.path, old.title, old.content, old.tags, old.topics);
                END;
                """
            )
            conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS documents_au AFTER UPDATE ON documents BEGIN
                    INSERT INTO documents_fts(documents_fts, rowid, path, title, content, tags, topics)
                    VALUES ('delete', old.rowid, old.path, old.title, old.content, old.tags, old.topics);
                    INSERT INTO documents_fts(rowid, path, title, content, tags, topics)
                    VALUES (new.rowid, new.path, new.title, new.content, new.tags, new.topics);
                END;
                """
            )

    def upsert_document(self, document: DocumentRecord) -> str:
        """Insert or replace a document by path.

        Returns:
            'inserted' or 'updated'. ``created_at`` of an existing row is kept.
        """
        with self.transaction() as conn:
            existing = conn.execute(
                "SELECT 1 FROM documents WHERE path = ?", (document.path,)
            ).fetchone()
            conn.execute(
                """
                INSERT INTO documents (
                    path, title, content, raw_content, frontmatter, tags, topics,
                    content_type, word_count, created_at, modified_at, indexed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    raw_content = excluded.raw_content,
                    frontmatter = excluded.frontmatter,
                    tags = excluded.tags,
                    topics = excluded.topics,
                    content_type = excluded.content_type,
                    word_count = excluded.word_count,
                    modified_at = excluded.modified_at,
                    indexed_at = excluded.indexed_at
                """,
                (
                    document.path,
                    document.title,
                    document.content,
                    document.raw_content,
                    json.dumps(document.frontmatter, default=str),
                    json.dumps(document.tags),
                    json.dumps(document.topics),
                    document.content_type,
                    document.word_count,
                    document.created_at,
                    document.modified_at,
                    _now_ms(),
                ),
            )
        return "updated" if existing else "inserted"

    def delete_document(self, path: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        return cursor.rowcount > 0

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM documents WHERE path = ?", (path,)).fetchone()
        if row is None:
            return None
        return {
            "path": row["path"],
            "title": row["title"],
            "content": row["content"],
            "raw_content": row["raw_content"],
            "frontmatter": _loads(row["frontmatter"], {}),
            "tags": _loads(row["tags"], []),
            "topics": _loads(row["topics"], []),
            "content_type": row["content_type"],
            "word_count": row["word_count"],
            "created_at": row["created_at"],
            "modified_at": row["modified_at"],
            "indexed_at": row["indexed_at"],
        }

    def list_documents(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT path, title, tags, topics, content_type, word_count, modified_at
                FROM documents
                ORDER BY modified_at DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()
        return [
            {
                "path": row["path"],
                "title": row["title"],
                "tags": _loads(row["tags"], []),
                "topics": _loads(row["topics"], []),
                "content_type": row["content_type"],
                "word_count": row["word_count"],
                "modified_at": row["modified_at"],
            }
            for row in rows
        ]

    def search(
        self,
        fts_query: str,
        *,
        limit: int = 20,
        offset: int = 0,
        tags: Sequence[str] = (),
        topics: Sequence[str] = (),
        content_type: Optional[str] = None,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        sql = """
            SELECT
                d.path AS path,
                d.title AS title,
                d.tags AS tags,
                d.topics AS topics,
                d.content_type AS content_type,
                d.word_count AS word_count,
                d.modified_at AS modified_at,
                snippet(documents_fts, 2, '<mark>', '</mark>', '...', 30) AS snippet,
                bm25(documents_fts) AS score
            FROM documents_fts
            JOIN documents d ON d.rowid = documents_fts.rowid
            WHERE documents_fts MATCH ?
        """
        params: List[Any] = [fts_query]

        for tag in tags:
            sql += " AND d.tags LIKE ?"
            params.append(f'%"{tag.lower()}"%')
        for topic in topics:
            sql += " AND d.topics LIKE ?"
            params.append(f'%"{topic.lower()}"%')
        if content_type:
            sql += " AND d.content_type = ?"
            params.append(content_type)
        if date_from is not None:
            sql += " AND d.modified_at >= ?"
            params.append(date_from)
        if date_to is not None:
            sql += " AND d.modified_at <= ?"
            params.append(date_to)

        sql += " ORDER BY score LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [
            {
                "path": row["path"],
                "title": row["title"],
                "tags": _loads(row["tags"], []),
                "topics": _loads(row["topics"], []),
                "content_type": row["content_type"],
                "word_count": row["word_count"],
                "modified_at": row["modified_at"],
                "snippet": row["snippet"],
                "score": row["score"],
            }
            for row in rows
        ]

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS count, COALESCE(SUM(word_count), 0) AS words FROM documents"
            ).fetchone()
        return {"total_documents": row["count"], "total_words": row["words"]}

    def _count_json_column(self, column: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {column} FROM documents WHERE {column} IS NOT NULL"
            ).fetchall()
        counts: Counter[str] = Counter()
        for row in rows:
            counts.update(json.loads(row[column]))
        return [{"name": name, "count": count} for name, count in counts.most_common()]

    def get_all_tags(self) -> List[Dict[str, Any]]:
        return self._count_json_column("tags")

    def get_all_topics(self) -> List[Dict[str, Any]]:
        return self._count_json_column("topics")

    def remove_missing_files(self, root: Path) -> int:
        """Remove documents whose files no longer exist under ``root``."""
        root = Path(root)
        with self.transaction() as conn:
            rows = conn.execute("SELECT path FROM documents").fetchall()
            missing = [row["path"] for row in rows if not (root / row["path"]).exists()]
            for path in missing:
                conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        return len(missing)
