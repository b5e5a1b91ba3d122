"""Full-text search interface."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from mdstudio.index.storage import SQLiteDocumentStore

_OPERATORS = [
    (re.compile(r"\bAND\b", re.IGNORECASE), "AND"),
    (re.compile(r"\bOR\b", re.IGNORECASE), "OR"),
    (re.compile(r"\bNOT\b", re.IGNORECASE), "NOT"),
    (re.compile(r"\s-(\w+)"), r" NOT \1"),
    (re.compile(r"\s\+(\w+)"), r" AND \1"),
]


def parse_search_query(query: str) -> str:
    """Translate user-friendly query syntax into an FTS5 MATCH expression.

    FTS5 already understands phrases, ``word*`` prefixes and ``column:term``;
    this only normalises boolean operators and the ``-word``/``+word`` forms.
    """
    fts_query = query
    for pattern, replacement in _OPERATORS:
        fts_query = pattern.sub(replacement, fts_query)
    return fts_query


@dataclass(slots=True)
class SearchResult:
    path: str
    title: str
    snippet: str
    score: float
    word_count: int
    modified_at: int
    content_type: str = "markdown"
    tags: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)


class Searcher:
    """High-level API to query the document store."""

    def __init__(self, store: SQLiteDocumentStore) -> None:
        self.store = store

    def search(
        self,
        query: str,
        *,
        limit: int = 20,
        offset: int = 0,
        tags: Sequence[str] = (),
        topics: Sequence[str] = (),
        content_type: Optional[str] = None,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
    ) -> List[SearchResult]:
        if not query or not query.strip():
            raise ValueError("Empty query")

        rows = self.store.search(
            parse_search_query(query.strip()),
            limit=limit,
            offset=offset,
            tags=tags,
            topics=topics,
            content_type=content_type,
            date_from=date_from,
            date_to=date_to,
        )
        return [
            SearchResult(
                path=row["path"],
                title=row["title"],
                snippet=row["snippet"] or "",
                score=float(row["score"]),
                word_count=row["word_count"] or 0,
                modified_at=row["modified_at"],
                content_type=row["content_type"] or "markdown",
                tags=row["tags"],
                topics=row["topics"],
            )
            for row in rows
        ]
