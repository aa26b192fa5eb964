"""Parsing of search queries with ``agent:``, ``dir:`` and ``date:`` keywords."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum


class DateOp(Enum):
    """How a date filter compares session timestamps with its cutoff."""

    EXACT = "exact"
    LESS_THAN = "less_than"
    GREATER_THAN = "greater_than"


@dataclass
class DateFilter:
    op: DateOp
    cutoff: datetime
    negated: bool = False


@dataclass
class Filter:
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


@dataclass
class ParsedQuery:
    text: str = ""
    exact_terms: list[str] = field(default_factory=list)
    """Quoted words: exact token match only, no substring or fuzzy matching."""
    agent: Filter | None = None
    directory: Filter | None = None
    date: DateFilter | None = None


_KEYWORD_RE = re.compile(r'(-?)(agent|dir|date):(?:"([^"]+)"|(\S+))')
_RELATIVE_TIME_RE = re.compile(r"([<>])?(\d+)(m|h|d|w|mo|y)")

_UNIT_DAYS = {"mo": 30, "y": 365}


def _parse_filter_value(value: str) -> Filter:
    result = Filter()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if part[0] in "!-":
            result.exclude.append(part[1:].lower())
        else:
            result.include.append(part.lower())
    return result


def _relative_delta(unit: str, amount: int) -> timedelta:
    if unit == "m":
        return timedelta(minutes=amount)
    if unit == "h":
        return timedelta(hours=amount)
    if unit == "d":
        return timedelta(days=amount)
    if unit == "w":
        return timedelta(weeks=amount)
    return timedelta(days=amount * _UNIT_DAYS[unit])


def _parse_date_value(value: str, now: datetime) -> DateFilter | None:
    negated = value.startswith("!")
    if negated:
        value = value[1:]

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    lowered = value.lower()
    if lowered == "today":
        return DateFilter(DateOp.EXACT, midnight, negated)
    if lowered == "yesterday":
        return DateFilter(DateOp.EXACT, midnight - timedelta(days=1), negated)

    match = _RELATIVE_TIME_RE.fullmatch(value)
    if match is None:
        return None
    op_str, amount_str, unit = match.groups()
    try:
        cutoff = now - _relative_delta(unit, int(amount_str))
    except OverflowError:
        return None
    op = DateOp.GREATER_THAN if op_str == ">" else DateOp.LESS_THAN
    return DateFilter(op, cutoff, negated)


def _split_quoted(text: str) -> tuple[list[str], list[str]]:
    """Split text into unquoted parts and trimmed quoted terms."""
    exact_terms: list[str] = []
    text_parts: list[str] = []
    chars = iter(text)
    buf: list[str] = []
    for c in chars:
        if c != '"':
            buf.append(c)
            continue
        if buf:
            text_parts.append("".join(buf))
            buf = []
        quoted = []
        for qc in chars:
            if qc == '"':
                break
            quoted.append(qc)
        term = "".join(quoted).strip()
        if term:
            exact_terms.append(term)
    if buf:
        text_parts.append("".join(buf))
    return text_parts, exact_terms


def parse_query(query: str, now: datetime | None = None) -> ParsedQuery:
    """Parse a query string; relative dates are taken from ``now`` (local time by default)."""
    if now is None:
        now = datetime.now()
    result = ParsedQuery()
    remaining = _KEYWORD_RE.sub("", query)

    for match in _KEYWORD_RE.finditer(query):
        negated_prefix = match.group(1) == "-"
        keyword = match.group(2)
        value = match.group(3) if match.group(3) is not None else match.group(4) or ""

        if keyword in ("agent", "dir"):
            filt = _parse_filter_value(value)
            if negated_prefix:
                filt.exclude.extend(filt.include)
                filt.include = []
            if keyword == "agent":
                result.agent = filt
            else:
                result.directory = filt
        else:
            date_filter = _parse_date_value(value, now)
            if date_filter is not None:
                if negated_prefix:
                    date_filter.negated = not date_filter.negated
                result.date = date_filter

    text_parts, result.exact_terms = _split_quoted(remaining)
    result.text = " ".join(" ".join(text_parts).split())
    return result