from datetime import datetime, timedelta

import pytest

from agents_sesame.query import DateOp, parse_query

NOW = datetime(2025, 1, 15, 10, 30, 0)


def test_simple_text():
    q = parse_query("hello world")
    assert q.text == "hello world"
    assert q.agent is None


def test_agent_filter():
    q = parse_query("agent:claude hello")
    assert q.text == "hello"
    assert q.agent.include == ["claude"]


def test_agent_exclude():
    q = parse_query("agent:!codex")
    assert q.agent.include == []
    assert q.agent.exclude == ["codex"]


def test_negated_prefix():
    q = parse_query("-agent:claude")
    assert q.agent.include == []
    assert q.agent.exclude == ["claude"]


def test_dir_filter():
    q = parse_query("dir:projects search")
    assert q.text == "search"
    assert q.directory.include == ["projects"]


def test_date_today():
    q = parse_query("date:today", NOW)
    assert q.date.op == DateOp.EXACT
    assert q.date.negated is False
    assert q.date.cutoff == datetime(2025, 1, 15)


def test_date_today_default_now():
    q = parse_query("date:today")
    assert q.date.op == DateOp.EXACT
    assert q.date.cutoff.hour == 0 and q.date.cutoff.minute == 0


def test_date_relative():
    q = parse_query("date:<1h", NOW)
    assert q.date.op == DateOp.LESS_THAN
    assert q.date.cutoff == NOW - timedelta(hours=1)


def test_multiple_filters():
    q = parse_query("agent:claude dir:fast-resume date:<1d hello")
    assert q.text == "hello"
    assert q.agent is not None
    assert q.directory.include == ["fast-resume"]
    assert q.date.op == DateOp.LESS_THAN


def test_date_yesterday():
    q = parse_query("date:yesterday", NOW)
    assert q.date.op == DateOp.EXACT
    assert q.date.cutoff == datetime(2025, 1, 14)


@pytest.mark.parametrize(
    "value, delta",
    [
        ("30m", timedelta(minutes=30)),
        ("2d", timedelta(days=2)),
        ("3w", timedelta(weeks=3)),
        ("2mo", timedelta(days=60)),
        ("1y", timedelta(days=365)),
    ],
)
def test_date_units(value, delta):
    q = parse_query(f"date:{value}", NOW)
    assert q.date.cutoff == NOW - delta
    assert q.date.op == DateOp.LESS_THAN


def test_date_greater_than():
    q = parse_query("date:>1w", NOW)
    assert q.date.op == DateOp.GREATER_THAN


def test_date_negations_cancel():
    q = parse_query("-date:!today", NOW)
    assert q.date.negated is False
    q = parse_query("date:!today", NOW)
    assert q.date.negated is True


def test_invalid_date_ignored_and_removed():
    q = parse_query("date:someday hello", NOW)
    assert q.date is None
    assert q.text == "hello"


def test_filter_values_lowercased_and_split():
    q = parse_query("agent:Claude,!Codex,,-Gemini")
    assert q.agent.include == ["claude"]
    assert q.agent.exclude == ["codex", "gemini"]


def test_quoted_keyword_value():
    q = parse_query('dir:"My Project" fix')
    assert q.directory.include == ["my project"]
    assert q.text == "fix"


def test_quoted_exact_terms():
    q = parse_query('fix "  parser bug " now')
    assert q.exact_terms == ["parser bug"]
    assert q.text == "fix now"


def test_unclosed_quote_taken_to_end():
    q = parse_query('hello "world')
    assert q.exact_terms == ["world"]
    assert q.text == "hello"


def test_whitespace_collapsed():
    q = parse_query("  hello    agent:claude   world ")
    assert q.text == "hello world"