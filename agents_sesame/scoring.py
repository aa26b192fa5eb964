"""Relevance scoring and filter predicates used by the session index."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from agents_sesame.query import DateFilter, DateOp, Filter

BM25_K1 = 1.2
BM25_B = 0.75
SECONDS_PER_DAY = 86400.0


def bm25_idf(doc_count: int, doc_freq: int) -> float:
    """Inverse document frequency of a term found in ``doc_freq`` of ``doc_count`` documents."""
    if doc_count < 0 or doc_freq < 0:
        raise ValueError("document counts must not be negative")
    if doc_freq > doc_count:
        raise ValueError("doc_freq cannot exceed doc_count")
    return math.log(1.0 + (doc_count - doc_freq + 0.5) / (doc_freq + 0.5))


def bm25_term_score(term_freq: float, doc_length: float, avg_length: float, idf: float) -> float:
    """BM25 contribution of one term to one document's score."""
    if term_freq < 0 or doc_length < 0:
        raise ValueError("term frequency and document length must not be negative")
    if avg_length <= 0:
        raise ValueError("average document length must be positive")
    if term_freq == 0:
        return 0.0
    norm = BM25_K1 * (1.0 - BM25_B + BM25_B * doc_length / avg_length)
    return idf * term_freq * (BM25_K1 + 1.0) / (term_freq + norm)


def fuzzy_prefix_match(query_term: str, term: str, max_distance: int) -> bool:
    """Whether some prefix of ``term`` is within ``max_distance`` edits of ``query_term``.

    Insertions, deletions, substitutions and adjacent transpositions each cost one.
    """
    if max_distance < 0:
        raise ValueError("max_distance must not be negative")

    # Rows follow the query; the last row holds the distance to every prefix of term.
    prev_prev: list[int] | None = None
    prev = list(range(len(term) + 1))
    for i, qc in enumerate(query_term, start=1):
        row = [i]
        for j, tc in enumerate(term, start=1):
            cost = 0 if qc == tc else 1
            best = min(prev[j] + 1, row[j - 1] + 1, prev[j - 1] + cost)
            if (
                prev_prev is not None
                and j > 1
                and qc == term[j - 2]
                and query_term[i - 2] == tc
            ):
                best = min(best, prev_prev[j - 2] + 1)
            row.append(best)
        if min(row) > max_distance:
            return False
        prev_prev, prev = prev, row
    return min(prev) <= max_distance


def agent_matches(agent_filter: Filter | None, agent: str) -> bool:
    """Whether an agent name passes an include/exclude filter (exact names)."""
    if agent_filter is None:
        return True
    if agent_filter.include and agent not in agent_filter.include:
        return False
    return agent not in agent_filter.exclude


def directory_matches(directory_filter: Filter | None, directory: str) -> bool:
    """Whether a directory passes a filter of case-insensitive substrings."""
    if directory_filter is None:
        return True
    folded = directory.casefold()
    if directory_filter.include and not any(
        pattern.casefold() in folded for pattern in directory_filter.include
    ):
        return False
    return not any(pattern.casefold() in folded for pattern in directory_filter.exclude)


def _cutoff_seconds(cutoff: datetime) -> float:
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=timezone.utc)
    return float(math.floor(cutoff.timestamp()))


def date_matches(date_filter: DateFilter | None, timestamp: float) -> bool:
    """Whether a Unix timestamp passes a date filter; naive cutoffs are read as UTC."""
    if date_filter is None:
        return True
    cutoff = _cutoff_seconds(date_filter.cutoff)
    if date_filter.op is DateOp.EXACT:
        inside = cutoff <= timestamp < cutoff + SECONDS_PER_DAY
    elif date_filter.op is DateOp.LESS_THAN:
        inside = timestamp >= cutoff
    else:
        inside = timestamp < cutoff
    return inside != date_filter.negated