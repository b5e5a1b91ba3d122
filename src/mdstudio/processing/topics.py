"""TF-IDF topic scoring over an explicit, keyed document corpus."""

from __future__ import annotations

import itertools
import math
import re
from collections import Counter, OrderedDict
from enum import Enum
from typing import Dict, Hashable, List, Optional, Tuple

TOKEN_PATTERN = re.compile(r"[A-Za-zА-Яа-я0-9_]+")

STOPWORDS = frozenset(
    """
    about above after again all also am an and another any are as at be because
    been before being below between both but by came can cannot come could did
    do does doing during each few for from further get got has had he have her
    here him himself his how if in into is it its itself like make many me might
    more most much must my myself never now of on only or other our ours
    ourselves out over own said same see should since so some still such take
    than that the their theirs them themselves then there these they this those
    through to too under until up very was way we well were what where when
    which while who whom with would why you your yours yourself
    a b c d e f g h i j k l m n o p q r s t u v w x y z
    0 1 2 3 4 5 6 7 8 9 _
    """.split()
)


class CorpusScope(str, Enum):
    """How much indexing history a document's topic scores are measured against."""

    CUMULATIVE = "cumulative"
    PER_SCAN = "per_scan"
    DOCUMENT = "document"


def tokenize(text: str) -> List[str]:
    return [token for token in TOKEN_PATTERN.findall(text.lower()) if token not in STOPWORDS]


class TopicCorpus:
    """Term-frequency / inverse-document-frequency accumulator.

    Every document is stored under a key; adding a key that already exists
    replaces the earlier term counts instead of growing the corpus. With
    ``max_documents`` set the corpus behaves as a sliding window and evicts
    the oldest keys first.
    """

    def __init__(self, max_documents: Optional[int] = None) -> None:
        if max_documents is not None and max_documents < 1:
            raise ValueError("max_documents must be positive")
        self.max_documents = max_documents
        self._documents: "OrderedDict[Hashable, Counter[str]]" = OrderedDict()
        self._anonymous = itertools.count()
        self._idf_cache: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._documents

    def add_document(self, text: str, key: Hashable | None = None) -> Hashable:
        """Add (or replace) a document and return the key it is stored under."""
        if key is None:
            key = ("__anonymous__", next(self._anonymous))
        self._documents.pop(key, None)
        self._documents[key] = Counter(tokenize(text))
        if self.max_documents is not None:
            while len(self._documents) > self.max_documents:
                self._documents.popitem(last=False)
        self._idf_cache.clear()
        return key

    def remove(self, key: Hashable) -> bool:
        removed = self._documents.pop(key, None) is not None
        if removed:
            self._idf_cache.clear()
        return removed

    def reset(self) -> None:
        self._documents.clear()
        self._idf_cache.clear()

    def idf(self, term: str) -> float:
        cached = self._idf_cache.get(term)
        if cached is not None:
            return cached
        docs_with_term = sum(1 for counts in self._documents.values() if term in counts)
        value = 1 + math.log(len(self._documents) / (1 + docs_with_term))
        self._idf_cache[term] = value
        return value

    def list_terms(self, key: Hashable) -> List[Tuple[str, float]]:
        """Return ``(term, score)`` pairs of one document, best first."""
        counts = self._documents[key]
        scored = [(term, count * self.idf(term)) for term, count in counts.items()]
        # sorted() is stable, so equal scores keep first-seen order
        return sorted(scored, key=lambda item: item[1], reverse=True)
