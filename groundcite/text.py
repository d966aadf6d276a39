"""Tokenization and text/label helpers shared across the pipeline."""

from __future__ import annotations

import math
import re

MAX_SNIPPET_LENGTH = 280
ELLIPSIS = "…"

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "if", "then", "than", "that", "this", "these",
        "those", "to", "of", "in", "on", "at", "for", "from", "by", "with", "without", "about",
        "is", "are", "was", "were", "be", "been", "being", "as", "it", "its", "they", "them",
        "their", "he", "she", "his", "her", "you", "your", "we", "our", "i", "me", "my", "do",
        "does", "did", "can", "could", "should", "would", "will", "just", "not", "no", "yes",
        "into", "out", "over", "under", "up", "down", "what", "which", "who", "whom", "when",
        "where", "why", "how", "also", "there", "here",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")
_NON_TOKEN_RE = re.compile(r"[^a-z0-9]")


def normalize_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def truncate_for_snippet(value: str, limit: int = MAX_SNIPPET_LENGTH) -> str:
    if len(value) <= limit:
        return value
    return f"{value[: limit - 1].rstrip()}{ELLIPSIS}"


def tokenize(value: str) -> list[str]:
    """
    Returns distinct lowercase content tokens in first-occurrence order.

    Tokens shorter than three characters and stop-words are dropped.
    """
    tokens: list[str] = []
    seen: set[str] = set()
    for token in _NON_TOKEN_RE.sub(" ", value.lower()).split():
        if len(token) < 3 or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


def format_seconds_label(seconds: float) -> str:
    if not isinstance(seconds, (int, float)) or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    total = int(math.floor(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def parse_timestamp_label(label: str) -> float | None:
    """Parses ``M:SS`` or ``H:MM:SS`` into seconds."""
    parts = [part.strip() for part in label.strip().split(":")]
    if len(parts) < 2 or len(parts) > 3:
        return None

    numbers: list[float] = []
    for part in parts:
        try:
            number = float(part)
        except ValueError:
            return None
        if not math.isfinite(number) or number < 0:
            return None
        numbers.append(number)

    if len(numbers) == 2:
        return numbers[0] * 60 + numbers[1]
    return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
