"""Session records shared by the index and the search layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Session:
    """One conversation with a coding agent."""

    id: str
    agent: str
    title: str
    directory: str
    timestamp: datetime
    content: str = ""
    message_count: int = 0
    mtime: float = 0.0
    yolo: bool = False


@dataclass
class RawAdapterStats:
    """Raw on-disk statistics for one agent's data directory."""

    agent: str
    data_dir: str
    available: bool
    file_count: int
    total_bytes: int


@dataclass
class ParseError:
    """A session file that could not be parsed."""

    agent: str
    file_path: str
    error_type: str
    message: str


def truncate_title(text: str, max_length: int) -> str:
    """Shorten a title to ``max_length`` characters, preferring a word boundary."""
    text = text.strip()
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length // 2:
        return f"{truncated[:last_space]}..."
    return f"{truncated}..."