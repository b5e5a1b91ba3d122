"""Tests for the keyed TF-IDF topic corpus."""

from __future__ import annotations

import math

import pytest

from mdstudio.processing.topics import CorpusScope, TopicCorpus, tokenize


class TestTokenize:
    def test_lowercases_and_drops_stopwords(self) -> None:
        """Stopwords and single characters never become terms."""
        assert tokenize("The Quick brown fox is a 1 x") == ["quick", "brown", "fox"]

    def test_keeps_cyrillic_words(self) -> None:
        assert tokenize("Привет world") == ["привет", "world"]


class TestTopicCorpus:
    def test_idf_formula(self) -> None:
        """idf is 1 + ln(N / (1 + df))."""
        corpus = TopicCorpus()
        corpus.add_document("python python code", key="a")
        corpus.add_document("java code", key="b")

        assert corpus.idf("python") == pytest.approx(1.0)
        assert corpus.idf("code") == pytest.approx(1 + math.log(2 / 3))

    def test_list_terms_sorted_by_score(self) -> None:
        corpus = TopicCorpus()
        corpus.add_document("python python code", key="a")
        corpus.add_document("java code", key="b")

        terms = corpus.list_terms("a")

        assert [term for term, _ in terms] == ["python", "code"]
        assert terms[0][1] == pytest.approx(2.0)

    def test_equal_scores_keep_first_seen_order(self) -> None:
        corpus = TopicCorpus()
        corpus.add_document("zebra apple mango", key="a")

        assert [term for term, _ in corpus.list_terms("a")] == ["zebra", "apple", "mango"]

    def test_readding_key_replaces_document(self) -> None:
        """Re-indexing the same path must not grow the corpus."""
        corpus = TopicCorpus()
        corpus.add_document("first version", key="notes.md")
        before = corpus.list_terms(corpus.add_document("second version", key="notes.md"))
        after = corpus.list_terms(corpus.add_document("second version", key="notes.md"))

        assert len(corpus) == 1
        assert before == after

    def test_anonymous_documents_get_distinct_keys(self) -> None:
        corpus = TopicCorpus()
        first = corpus.add_document("alpha")
        second = corpus.add_document("alpha")

        assert first != second
        assert len(corpus) == 2

    def test_window_evicts_oldest(self) -> None:
        corpus = TopicCorpus(max_documents=2)
        corpus.add_document("one", key="a")
        corpus.add_document("two", key="b")
        corpus.add_document("three", key="c")

        assert "a" not in corpus
        assert "b" in corpus and "c" in corpus

    def test_window_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            TopicCorpus(max_documents=0)

    def test_remove_and_reset(self) -> None:
        corpus = TopicCorpus()
        corpus.add_document("alpha", key="a")
        corpus.add_document("beta", key="b")

        assert corpus.remove("a") is True
        assert corpus.remove("a") is False
        assert len(corpus) == 1

        corpus.reset()
        assert len(corpus) == 0

    def test_removal_invalidates_idf(self) -> None:
        corpus = TopicCorpus()
        corpus.add_document("shared", key="a")
        corpus.add_document("shared", key="b")
        with_both = corpus.idf("shared")

        corpus.remove("b")

        assert corpus.idf("shared") != with_both


def test_scope_values() -> None:
    assert CorpusScope("per_scan") is CorpusScope.PER_SCAN
    assert CorpusScope.CUMULATIVE.value == "cumulative"
