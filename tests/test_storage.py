"""Tests for SQLiteDocumentStore."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from mdstudio.index.storage import SQLiteDocumentStore
from mdstudio.models import DocumentRecord


def make_record(path: str = "notes/a.md", **overrides) -> DocumentRecord:
    values = dict(
        path=path,
        title="Alpha",
        content="alpha beta gamma",
        raw_content="# Alpha\n\nalpha beta gamma",
        frontmatter={"title": "Alpha"},
        tags=["python", "notes"],
        topics=["alpha"],
        word_count=3,
        created_at=1_000,
        modified_at=2_000,
    )
    values.update(overrides)
    return DocumentRecord(**values)


@pytest.fixture
def store(tmp_path: Path):
    """Create a temporary database for testing."""
    store = SQLiteDocumentStore(tmp_path / "test.db")
    yield store
    store.close()


class TestSchema:
    def test_init_creates_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "new.db"
        store = SQLiteDocumentStore(db_path)
        assert db_path.exists()
        store.close()

    def test_tables_and_triggers(self, store: SQLiteDocumentStore) -> None:
        names = {
            row[0]
            for row in store.connection.execute("SELECT name FROM sqlite_master").fetchall()
        }
        assert {"documents", "documents_fts", "documents_ai", "documents_ad", "documents_au"} <= names

    def test_wal_mode(self, store: SQLiteDocumentStore) -> None:
        mode = store.connection.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_reopen_existing_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "again.db"
        SQLiteDocumentStore(db_path).close()
        store = SQLiteDocumentStore(db_path)
        assert store.get_stats()["total_documents"] == 0
        store.close()


class TestUpsert:
    def test_insert_then_update(self, store: SQLiteDocumentStore) -> None:
        assert store.upsert_document(make_record()) == "inserted"
        assert store.upsert_document(make_record(title="Renamed")) == "updated"
        assert store.get_document("notes/a.md")["title"] == "Renamed"

    def test_update_keeps_created_at(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record(created_at=1_000))
        store.upsert_document(make_record(created_at=9_999, modified_at=5_000))

        document = store.get_document("notes/a.md")
        assert document["created_at"] == 1_000
        assert document["modified_at"] == 5_000

    def test_round_trips_json_columns(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record())
        document = store.get_document("notes/a.md")

        assert document["frontmatter"] == {"title": "Alpha"}
        assert document["tags"] == ["python", "notes"]
        assert document["topics"] == ["alpha"]
        assert document["content_type"] == "markdown"
        assert document["indexed_at"] > 0

    def test_non_json_frontmatter_values_are_stringified(self, store: SQLiteDocumentStore) -> None:
        import datetime

        store.upsert_document(make_record(frontmatter={"date": datetime.date(2024, 1, 2)}))
        assert store.get_document("notes/a.md")["frontmatter"] == {"date": "2024-01-02"}

    def test_get_missing_document(self, store: SQLiteDocumentStore) -> None:
        assert store.get_document("nope.md") is None


class TestDelete:
    def test_delete_existing(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record())
        assert store.delete_document("notes/a.md") is True
        assert store.get_document("notes/a.md") is None

    def test_delete_missing(self, store: SQLiteDocumentStore) -> None:
        assert store.delete_document("nope.md") is False

    def test_deleted_document_leaves_search(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record())
        store.delete_document("notes/a.md")
        assert store.search("alpha") == []


class TestSearch:
    def test_full_text_match_with_snippet(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record())
        store.upsert_document(make_record("b.md", title="Other", content="unrelated words"))

        results = store.search("gamma")

        assert [row["path"] for row in results] == ["notes/a.md"]
        assert "<mark>gamma</mark>" in results[0]["snippet"]

    def test_update_refreshes_index(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record())
        store.upsert_document(make_record(content="delta epsilon"))

        assert store.search("gamma") == []
        assert len(store.search("delta")) == 1

    def test_tag_and_topic_filters(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record("a.md", tags=["python"], topics=["alpha"]))
        store.upsert_document(make_record("b.md", tags=["rust"], topics=["alpha"]))

        assert [r["path"] for r in store.search("alpha", tags=["rust"])] == ["b.md"]
        assert len(store.search("alpha", topics=["alpha"])) == 2

    def test_filters_ignore_case(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record("a.md", tags=["angular"], topics=["alpha"]))

        assert [r["path"] for r in store.search("alpha", tags=["Angular"])] == ["a.md"]
        assert [r["path"] for r in store.search("alpha", topics=["ALPHA"])] == ["a.md"]

    def test_date_and_type_filters(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record("old.md", modified_at=100))
        store.upsert_document(make_record("new.md", modified_at=900))

        assert [r["path"] for r in store.search("alpha", date_from=500)] == ["new.md"]
        assert [r["path"] for r in store.search("alpha", date_to=500)] == ["old.md"]
        assert store.search("alpha", content_type="pdf") == []

    def test_limit_and_offset(self, store: SQLiteDocumentStore) -> None:
        for index in range(5):
            store.upsert_document(make_record(f"{index}.md"))

        assert len(store.search("alpha", limit=2)) == 2
        assert len(store.search("alpha", limit=10, offset=3)) == 2

    def test_bad_fts_syntax_raises(self, store: SQLiteDocumentStore) -> None:
        with pytest.raises(sqlite3.OperationalError):
            store.search('"unbalanced')


class TestAggregates:
    def test_stats(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record("a.md", word_count=3))
        store.upsert_document(make_record("b.md", word_count=7))
        assert store.get_stats() == {"total_documents": 2, "total_words": 10}

    def test_tag_and_topic_counts(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record("a.md", tags=["python", "notes"], topics=["x"]))
        store.upsert_document(make_record("b.md", tags=["python"], topics=["y"]))

        assert store.get_all_tags() == [
            {"name": "python", "count": 2},
            {"name": "notes", "count": 1},
        ]
        assert {t["name"] for t in store.get_all_topics()} == {"x", "y"}

    def test_list_documents_newest_first(self, store: SQLiteDocumentStore) -> None:
        store.upsert_document(make_record("old.md", modified_at=1))
        store.upsert_document(make_record("new.md", modified_at=2))

        assert [d["path"] for d in store.list_documents()] == ["new.md", "old.md"]
        assert [d["path"] for d in store.list_documents(limit=1, offset=1)] == ["old.md"]


def test_remove_missing_files(store: SQLiteDocumentStore, tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    (root / "kept.md").write_text("# kept")
    store.upsert_document(make_record("kept.md"))
    store.upsert_document(make_record("gone.md"))

    assert store.remove_missing_files(root) == 1
    assert store.get_document("kept.md") is not None
    assert store.get_document("gone.md") is None
