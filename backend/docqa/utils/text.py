"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")
TOKEN_RE = re.compile(r"\w+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens."""
    return TOKEN_RE.findall(text.lower())


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """Cut ``text`` to ``limit`` characters, appending ``marker`` when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def preview(text: str, width: int = 50) -> str:
    """Short single-line rendering for log messages."""
    flat = normalize(text)
    return flat if len(flat) <= width else flat[:width] + "..."
