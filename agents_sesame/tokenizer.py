"""Text analysis for the index: word splitting with CJK unigrams and lower-casing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import groupby

_CJK_RANGES = (
    ("\u4e00", "\u9fff"),  # CJK Unified Ideographs
    ("\u3400", "\u4dbf"),  # Extension A
    ("\uf900", "\ufaff"),  # Compatibility
    ("\u3000", "\u303f"),  # CJK Symbols
    ("\u3040", "\u309f"),  # Hiragana
    ("\u30a0", "\u30ff"),  # Katakana
    ("\uac00", "\ud7af"),  # Hangul
)

_WORD_RE = re.compile(r"[^\W_]+")


@dataclass(frozen=True)
class Token:
    """A token; offsets are character positions in the analysed text."""

    text: str
    offset_from: int
    offset_to: int
    position: int


def is_cjk(char: str) -> bool:
    """Whether a single character belongs to a CJK script block."""
    return any(low <= char <= high for low, high in _CJK_RANGES)


def tokenize(text: str) -> list[Token]:
    """Split text into lower-cased tokens.

    Runs of alphanumeric characters form words; inside a word every CJK
    character becomes its own token and non-CJK runs stay together.
    """
    tokens: list[Token] = []
    for word_match in _WORD_RE.finditer(text):
        start = word_match.start()
        for cjk, group in groupby(enumerate(word_match.group()), key=lambda p: is_cjk(p[1])):
            chars = list(group)
            pieces = [[c] for c in chars] if cjk else [chars]
            for piece in pieces:
                first = piece[0][0]
                segment = "".join(ch for _, ch in piece)
                tokens.append(
                    Token(
                        text=segment.lower(),
                        offset_from=start + first,
                        offset_to=start + first + len(segment),
                        position=len(tokens),
                    )
                )
    return tokens