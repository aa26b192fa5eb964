"""Session records, query parsing, tokenizing, scoring and an on-disk session index."""

__version__ = "0.1.2"

__all__ = ["index", "query", "scoring", "session", "tokenizer"]