# agents-sesame

A small library with no third-party dependencies for indexing and searching
the session history of coding agents. Sessions from different agents are kept
in one on-disk index and can be searched with a compact query language.

## Installation

```
pip install agents-sesame
```

## Sessions

`agents_sesame.session.Session` is a dataclass holding an id, the agent name,
a title, the working directory, a `timestamp` (`datetime`), the conversation
`content`, a `message_count`, the source file's modification time `mtime`
(Unix seconds) and a `yolo` flag. `RawAdapterStats` and `ParseError` are
plain records for describing a data directory and a file that failed to
parse.

`truncate_title(text, max_length)` strips the text and, if it is longer than
`max_length` characters, cuts it to that length and appends `...`. When the
cut text has a space past its middle, it is cut at the last space instead.

## Query language

`agents_sesame.query.parse_query(query, now=None)` returns a `ParsedQuery`
with free `text`, quoted `exact_terms` and optional `agent`, `directory` and
`date` filters:

| Syntax                         | Meaning                                            |
|--------------------------------|----------------------------------------------------|
| `agent:claude`                 | include the agent `claude`                         |
| `agent:claude,codex`           | include either agent                               |
| `agent:!codex`, `-agent:codex` | exclude an agent                                   |
| `dir:projects`                 | directory filter, same include/exclude forms       |
| `agent:"some value"`           | a quoted value may contain spaces                  |
| `date:today`, `date:yesterday` | the day starting at that midnight (`DateOp.EXACT`) |
| `date:<2h`, `date:2h`          | newer than the age (`DateOp.LESS_THAN`)            |
| `date:>1w`                     | older than the age (`DateOp.GREATER_THAN`)         |
| `date:!today`, `-date:today`   | negate a date filter                               |
| `"exact phrase"`               | an exact term, matched by tokens only              |

Age units are `m`, `h`, `d`, `w`, `mo` (30 days) and `y` (365 days). Filter
values are lower-cased. Relative dates are computed from `now`, which
defaults to the current local time. An unrecognised date value is ignored.

```python
from agents_sesame.query import parse_query

q = parse_query("agent:claude dir:fast-resume date:<1d hello")
q.text              # "hello"
q.agent.include     # ["claude"]
q.directory.include # ["fast-resume"]
```

## Tokenizing

`agents_sesame.tokenizer.tokenize(text)` returns a list of `Token`s
(`text`, `offset_from`, `offset_to`, `position`; offsets are character
positions). Runs of letters and digits form words and are lower-cased; within
a word each Chinese, Japanese or Korean character becomes its own token, so
CJK text is searchable without a dictionary. `is_cjk(char)` tells whether a
character belongs to those script blocks.

## The index

`agents_sesame.index.SessionIndex(index_path)` keeps sessions in a JSON file
inside `index_path`, together with a schema version file; a directory with a
missing or different version is wiped and started afresh.

```python
from agents_sesame.index import SessionIndex
from agents_sesame.query import Filter

index = SessionIndex("/tmp/sessions-index")
index.add_sessions(sessions)

# newest first when there is no text; every score is 0.0
recent = index.search("", [], None, None, None, 10, 6)

# ranked by relevance
hits = index.search("compositor", [], Filter(include=["claude"]), None, None, 10, 6)
for session_id, score in hits:
    print(session_id, score)
```

Writing:

- `add_sessions(sessions)` appends, keeping earlier entries with the same id.
- `update_sessions(sessions)` replaces entries by id and adds new ones.
- `delete_sessions(ids)` removes entries.
- `batch_update(delete_ids, upsert)` does both in a single write.
- `clear()` removes everything.

Writes take a lock file in the index directory; a lock left behind is removed
and retried once, and if the lock still cannot be taken the write is skipped.
A session's `mtime` is stored as its timestamp.

Reading:

- `get_all_sessions()` returns metadata with empty `content`; each
  `timestamp` is rebuilt from `mtime` as a naive UTC `datetime` in whole
  seconds.
- `get_session_content(session_id)` returns the stored content or `None`.
- `get_known_sessions()` maps each id to `(mtime, agent)`.
- `get_session_count(agent_filter=None)` counts sessions, optionally of one
  agent.

Searching with `search(query_text, exact_terms, agent_filter,
directory_filter, date_filter, limit, fuzzy_min_length)` returns up to
`limit` `(id, score)` pairs; a `limit` of zero or less raises `ValueError`.
A session matches the query text when any word has a BM25 token match in the
title or content (weighted five times), or when every word is a substring of
some token or, for words of at least `fuzzy_min_length` UTF-8 bytes, within
one edit of a prefix of some token. Every quoted exact term must have a BM25
token match. Agent names must match exactly; directory patterns match as
case-insensitive substrings; naive date cutoffs are read as UTC. Filters
narrow the results without changing scores.

`is_fresh(max_age_secs)`, `touch_scan_marker()` and
`invalidate_scan_marker()` record when the sources were last scanned.

## Scoring helpers

`agents_sesame.scoring` provides `bm25_idf`, `bm25_term_score`,
`fuzzy_prefix_match` (edit distance counting adjacent transpositions as one)
and the filter predicates `agent_matches`, `directory_matches` and
`date_matches`.

## What this package does not do

It does not read any agent's own session files or databases: sessions have to
be built and passed to the index by the caller. There is no command-line tool
and no interactive screen.

## Running the tests

```
pip install -e ".[test]"
pytest
```