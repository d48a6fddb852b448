"""Name matching and ranking for customer lookup."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from datastore.records import UserRecord

MIN_QUERY_LENGTH = 2

EXACT = 0
PARTIAL = 1


def normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def tokenize(text: Optional[str]) -> List[str]:
    return normalize(text).split()


@dataclass(frozen=True)
class SearchResult:
    record: UserRecord
    rank: int

    @property
    def is_exact(self) -> bool:
        return self.rank == EXACT


def _names(record: UserRecord):
    return normalize(record.first_name), normalize(record.last_name), normalize(record.full_name)


def is_match(record: UserRecord, query: str, tokens: List[str]) -> bool:
    first, last, full = _names(record)

    if len(tokens) == 1:
        word = tokens[0]
        # Equality and prefix matches are substrings too.
        return word in first or word in last

    if len(tokens) >= 2:
        word1, word2 = tokens[0], tokens[1]
        return (
            (word1 in first and word2 in last)
            or (word2 in first and word1 in last)
            or (first == word1 and last == word2)
            or (first == word2 and last == word1)
            or query in full
        )

    return query in first or query in last or query in full


def _rank(record: UserRecord, query: str) -> int:
    first, last, _ = _names(record)
    return EXACT if query in (first, last) else PARTIAL


def _ranked(records: Iterable[UserRecord], query: str) -> List[SearchResult]:
    results = [SearchResult(record, _rank(record, query)) for record in records]
    results.sort(key=lambda result: (result.rank, normalize(result.record.first_name)))
    return results


def match(records: Iterable[UserRecord], query_text: Optional[str]) -> List[SearchResult]:
    """Records whose names match ``query_text``, exact matches first."""

    query = normalize(query_text)
    if len(query) < MIN_QUERY_LENGTH:
        return []
    tokens = tokenize(query)
    return _ranked((record for record in records if is_match(record, query, tokens)), query)


def substring_match(records: Iterable[UserRecord], query_text: Optional[str]) -> List[SearchResult]:
    """Plain substring filter over first, last and full name."""

    query = normalize(query_text)
    if len(query) < MIN_QUERY_LENGTH:
        return []

    def _contains(record: UserRecord) -> bool:
        return any(query in name for name in _names(record))

    return _ranked(filter(_contains, records), query)
