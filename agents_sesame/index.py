"""On-disk session index with BM25, substring and fuzzy search."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable, Sequence

from agents_sesame.query import DateFilter, Filter
from agents_sesame.scoring import (
    agent_matches,
    bm25_idf,
    bm25_term_score,
    date_matches,
    directory_matches,
    fuzzy_prefix_match,
)
from agents_sesame.session import Session
from agents_sesame.tokenizer import tokenize

SCHEMA_VERSION = 23
VERSION_FILE = ".schema_version"
DATA_FILE = "sessions.json"
LOCK_FILE = ".writer.lock"
SCAN_MARKER = ".last_scan"

EXACT_BOOST = 5.0
FUZZY_DISTANCE = 1
_TEXT_FIELDS = ("title", "content")
_EPOCH = datetime(1970, 1, 1)


@dataclass
class _Document:
    """A stored session as the index keeps it."""

    id: str
    agent: str
    title: str
    directory: str
    content: str
    timestamp: float
    message_count: int
    mtime: float
    yolo: bool
    field_tokens: dict[str, list[str]] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self.field_tokens = {
            name: [tok.text for tok in tokenize(getattr(self, name))] for name in _TEXT_FIELDS
        }

    @classmethod
    def from_session(cls, session: Session) -> _Document:
        return cls(
            id=session.id,
            agent=session.agent,
            title=session.title,
            directory=session.directory,
            content=session.content,
            timestamp=float(session.mtime),
            message_count=int(session.message_count),
            mtime=float(session.mtime),
            yolo=bool(session.yolo),
        )

    @classmethod
    def from_json(cls, data: dict) -> _Document:
        return cls(
            id=str(data["id"]),
            agent=str(data["agent"]),
            title=str(data["title"]),
            directory=str(data["directory"]),
            content=str(data["content"]),
            timestamp=float(data["timestamp"]),
            message_count=int(data["message_count"]),
            mtime=float(data["mtime"]),
            yolo=bool(data.get("yolo", False)),
        )

    def to_json(self) -> dict:
        data = asdict(self)
        del data["field_tokens"]
        return data

    def to_session(self, with_content: bool = False) -> Session | None:
        try:
            timestamp = _EPOCH + timedelta(seconds=int(self.timestamp))
        except (OverflowError, ValueError):
            return None
        return Session(
            id=self.id,
            agent=self.agent,
            title=self.title,
            directory=self.directory,
            timestamp=timestamp,
            content=self.content if with_content else "",
            message_count=self.message_count,
            mtime=self.mtime,
            yolo=self.yolo,
        )


@dataclass
class _CorpusStats:
    doc_count: int
    doc_freq: dict[str, Counter]
    avg_length: dict[str, float]

    @classmethod
    def of(cls, docs: Sequence[_Document]) -> _CorpusStats:
        doc_freq: dict[str, Counter] = {}
        avg_length: dict[str, float] = {}
        for name in _TEXT_FIELDS:
            freq: Counter = Counter()
            total = 0
            for doc in docs:
                tokens = doc.field_tokens[name]
                freq.update(set(tokens))
                total += len(tokens)
            doc_freq[name] = freq
            avg_length[name] = total / len(docs) if docs else 0.0
        return cls(len(docs), doc_freq, avg_length)


def _windows(tokens: list[str], size: int) -> Iterable[tuple[str, ...]]:
    return zip(*(tokens[offset:] for offset in range(size)))


class SessionIndex:
    """Persistent index of sessions stored under ``index_path``."""

    def __init__(self, index_path: str | os.PathLike[str]) -> None:
        self._path = Path(index_path)
        self._docs: list[_Document] = []
        self._signature: tuple[int, int] | None = None
        self._ensure_index()

    # -- storage -----------------------------------------------------------

    @property
    def _data_file(self) -> Path:
        return self._path / DATA_FILE

    def _check_version(self) -> bool:
        try:
            return int((self._path / VERSION_FILE).read_text().strip()) == SCHEMA_VERSION
        except (OSError, ValueError):
            return False

    def _wipe(self) -> None:
        shutil.rmtree(self._path, ignore_errors=True)
        self._path.mkdir(parents=True, exist_ok=True)

    def _ensure_index(self) -> None:
        self._path.mkdir(parents=True, exist_ok=True)
        if not self._check_version():
            self._wipe()
        try:
            self._reload()
        except (OSError, ValueError, KeyError, TypeError):
            self._wipe()
            self._docs, self._signature = [], None
        (self._path / VERSION_FILE).write_text(str(SCHEMA_VERSION))

    def _file_signature(self) -> tuple[int, int] | None:
        try:
            st = self._data_file.stat()
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    def _read_file(self) -> list[_Document]:
        try:
            raw = self._data_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        return [_Document.from_json(item) for item in json.loads(raw)]

    def _reload(self) -> None:
        self._docs = self._read_file()
        self._signature = self._file_signature()

    def _documents(self) -> list[_Document]:
        if self._file_signature() != self._signature:
            try:
                self._reload()
            except (OSError, ValueError, KeyError, TypeError):
                self._docs, self._signature = [], self._file_signature()
        return self._docs

    def _write_file(self, docs: list[_Document]) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._path, prefix=".sessions-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump([doc.to_json() for doc in docs], handle, ensure_ascii=False)
            os.replace(tmp_name, self._data_file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self._docs = docs
        self._signature = self._file_signature()

    def _acquire_lock(self) -> bool:
        lock_path = self._path / LOCK_FILE
        try:
            os.close(os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY))
            return True
        except FileExistsError:
            pass
        except OSError:
            return False
        # A lock left behind by a crashed writer: remove it and try once more.
        try:
            lock_path.unlink()
            os.close(os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY))
            return True
        except OSError:
            return False

    def _commit(self, mutate: Callable[[list[_Document]], list[_Document]]) -> None:
        """Apply ``mutate`` to the stored documents under the writer lock."""
        if not self._acquire_lock():
            return
        try:
            try:
                current = self._read_file()
            except (OSError, ValueError, KeyError, TypeError):
                current = []
            self._write_file(mutate(current))
        finally:
            (self._path / LOCK_FILE).unlink(missing_ok=True)

    # -- scan marker -------------------------------------------------------

    def is_fresh(self, max_age_secs: int) -> bool:
        """Whether the last scan happened less than ``max_age_secs`` seconds ago."""
        try:
            modified = (self._path / SCAN_MARKER).stat().st_mtime
        except OSError:
            return False
        age = time.time() - modified
        return age >= 0 and int(age) < max_age_secs

    def touch_scan_marker(self) -> None:
        """Record the current time as the time of the last scan."""
        try:
            (self._path / SCAN_MARKER).write_text("")
        except OSError:
            pass

    def invalidate_scan_marker(self) -> None:
        """Forget the last scan so the next one reads every source again."""
        try:
            (self._path / SCAN_MARKER).unlink()
        except OSError:
            pass

    # -- reading -----------------------------------------------------------

    def get_known_sessions(self) -> dict[str, tuple[float, str]]:
        """Map of session id to ``(mtime, agent)``."""
        return {doc.id: (doc.mtime, doc.agent) for doc in self._documents()}

    def get_all_sessions(self) -> list[Session]:
        """All sessions with metadata only; content is left empty."""
        return [
            session
            for session in (doc.to_session() for doc in self._documents())
            if session is not None
        ]

    def get_session_content(self, session_id: str) -> str | None:
        """Stored content of a session, or None if it is not indexed."""
        return next((doc.content for doc in self._documents() if doc.id == session_id), None)

    def get_session_count(self, agent_filter: str | None = None) -> int:
        """Number of indexed sessions, optionally only those of one agent."""
        return sum(
            1 for doc in self._documents() if agent_filter is None or doc.agent == agent_filter
        )

    # -- writing -----------------------------------------------------------

    def add_sessions(self, sessions: Sequence[Session]) -> None:
        """Append sessions without removing earlier entries with the same id."""
        if not sessions:
            return
        new_docs = [_Document.from_session(s) for s in sessions]
        self._commit(lambda docs: docs + new_docs)

    def update_sessions(self, sessions: Sequence[Session]) -> None:
        """Replace sessions by id, adding those not yet indexed."""
        self.batch_update((), sessions)

    def delete_sessions(self, ids: Sequence[str]) -> None:
        """Remove every entry whose id is listed."""
        self.batch_update(ids, ())

    def batch_update(self, delete_ids: Sequence[str], upsert: Sequence[Session]) -> None:
        """Delete ``delete_ids`` and upsert ``upsert`` in a single commit."""
        if not delete_ids and not upsert:
            return
        doomed = set(delete_ids) | {s.id for s in upsert}
        new_docs = [_Document.from_session(s) for s in upsert]

        def mutate(docs: list[_Document]) -> list[_Document]:
            return [doc for doc in docs if doc.id not in doomed] + new_docs

        self._commit(mutate)

    def clear(self) -> None:
        """Remove every session from the index."""
        self._commit(lambda docs: [])

    # -- searching ---------------------------------------------------------

    def search(
        self,
        query_text: str,
        exact_terms: Sequence[str] = (),
        agent_filter: Filter | None = None,
        directory_filter: Filter | None = None,
        date_filter: DateFilter | None = None,
        limit: int = 100,
        fuzzy_min_length: int = 6,
    ) -> list[tuple[str, float]]:
        """Return up to ``limit`` ``(id, score)`` pairs.

        With query text, results are ranked by relevance; without it they are
        ordered newest first and every score is 0.0.
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        docs = self._documents()
        stats = _CorpusStats.of(docs)
        words = query_text.split()
        exact_words = [term.split() for term in exact_terms]

        hits: list[tuple[_Document, float]] = []
        for doc in docs:
            if not (
                agent_matches(agent_filter, doc.agent)
                and directory_matches(directory_filter, doc.directory)
                and date_matches(date_filter, doc.timestamp)
            ):
                continue
            score = 0.0
            if query_text:
                text_score = self._hybrid_score(doc, words, stats, fuzzy_min_length)
                if text_score is None:
                    continue
                score += text_score
            rejected = False
            for term_words in exact_words:
                term_score = self._exact_score(doc, term_words, stats)
                if term_score is None:
                    rejected = True
                    break
                score += term_score
            if not rejected:
                hits.append((doc, score))

        if not query_text:
            hits.sort(key=lambda hit: hit[0].timestamp, reverse=True)
            return [(doc.id, 0.0) for doc, _ in hits[:limit]]
        hits.sort(key=lambda hit: hit[1], reverse=True)
        return [(doc.id, score) for doc, score in hits[:limit]]

    def _hybrid_score(
        self,
        doc: _Document,
        words: list[str],
        stats: _CorpusStats,
        fuzzy_min_length: int,
    ) -> float | None:
        """Exact BM25 match (boosted) or substring/fuzzy match on every word."""
        score = 0.0
        matched = False
        exact = self._exact_score(doc, words, stats)
        if exact is not None:
            score += EXACT_BOOST * exact
            matched = True
        fuzzy = self._fuzzy_score(doc, words, fuzzy_min_length)
        if fuzzy is not None:
            score += fuzzy
            matched = True
        return score if matched else None

    @staticmethod
    def _exact_score(doc: _Document, words: list[str], stats: _CorpusStats) -> float | None:
        """BM25 score over title and content; any word may match."""
        score = 0.0
        matched = False
        for word in words:
            word_tokens = [tok.text for tok in tokenize(word)]
            if not word_tokens:
                continue
            for name in _TEXT_FIELDS:
                tokens = doc.field_tokens[name]
                if len(word_tokens) == 1:
                    freq = tokens.count(word_tokens[0])
                else:
                    target = tuple(word_tokens)
                    freq = sum(1 for window in _windows(tokens, len(target)) if window == target)
                if freq == 0:
                    continue
                idf = sum(
                    bm25_idf(stats.doc_count, stats.doc_freq[name][tok]) for tok in word_tokens
                )
                score += bm25_term_score(freq, len(tokens), stats.avg_length[name], idf)
                matched = True
        return score if matched else None

    @staticmethod
    def _fuzzy_score(doc: _Document, words: list[str], fuzzy_min_length: int) -> float | None:
        """Every word must appear as a substring of, or a fuzzy prefix of, some token."""
        if not words:
            return None
        score = 0.0
        for word in words:
            lower = word.lower()
            use_fuzzy = len(lower.encode("utf-8")) >= fuzzy_min_length
            word_score = 0.0
            for name in _TEXT_FIELDS:
                terms = set(doc.field_tokens[name])
                if any(lower in term for term in terms):
                    word_score += 1.0
                if use_fuzzy and any(
                    fuzzy_prefix_match(lower, term, FUZZY_DISTANCE) for term in terms
                ):
                    word_score += 1.0
            if word_score == 0.0:
                return None
            score += word_score
        return score