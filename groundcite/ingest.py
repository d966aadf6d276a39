"""Context loading, transcript normalization and snippet building."""

from __future__ import annotations

import html
import json
import logging
import math
import re
from pathlib import Path
from typing import Any

import fitz

from groundcite.config import MAX_CONTEXT_CHARS
from groundcite.models import Snippet, TabContext, TranscriptSegment
from groundcite.security import sanitize_text, validate_extension, validate_upload_size
from groundcite.text import (
    MAX_SNIPPET_LENGTH,
    format_seconds_label,
    normalize_whitespace,
    truncate_for_snippet,
)

log = logging.getLogger(__name__)

MAX_WEB_SNIPPETS = 240
MIN_WEB_LINE_LENGTH = 30
WEB_MERGE_SLACK = 50
FALLBACK_BLOB_CHARS = 1400
MIN_TRANSCRIPT_SNIPPET_LENGTH = 8
DUPLICATE_SEGMENT_WINDOW_S = 0.2
MIN_TRANSCRIPT_SEGMENTS = 3


def build_web_snippets(text: str) -> list[Snippet]:
    lines = [normalize_whitespace(line) for line in re.split(r"\n+", text)]
    lines = [line for line in lines if len(line) >= MIN_WEB_LINE_LENGTH]
    merge_limit = MAX_SNIPPET_LENGTH + WEB_MERGE_SLACK

    snippets: list[Snippet] = []
    pending = ""

    def flush() -> None:
        cleaned = normalize_whitespace(pending)
        if cleaned:
            snippets.append(
                Snippet(id=f"w-{len(snippets) + 1}", text=truncate_for_snippet(cleaned))
            )

    for line in lines:
        if not pending:
            pending = line
            continue
        candidate = f"{pending} {line}"
        if len(candidate) > merge_limit:
            flush()
            pending = line
            continue
        pending = candidate
    flush()

    if not snippets:
        fallback = normalize_whitespace(text)[:FALLBACK_BLOB_CHARS]
        if fallback:
            snippets.append(Snippet(id="w-1", text=truncate_for_snippet(fallback)))

    return snippets[:MAX_WEB_SNIPPETS]


def _usable_start(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def build_transcript_snippets(segments: list[TranscriptSegment]) -> list[Snippet]:
    usable = [
        segment
        for segment in segments
        if _usable_start(segment.start_sec) and segment.text.strip()
    ]
    snippets: list[Snippet] = []
    for idx, segment in enumerate(usable, start=1):
        text = truncate_for_snippet(normalize_whitespace(segment.text))
        if len(text) < MIN_TRANSCRIPT_SNIPPET_LENGTH:
            continue
        snippets.append(
            Snippet(
                id=f"t-{idx}",
                text=text,
                timestamp_sec=segment.start_sec,
                timestamp_label=segment.start_label.strip()
                or format_seconds_label(segment.start_sec),
            )
        )
    return snippets


def build_snippets(
    raw_text: str,
    transcript_segments: list[TranscriptSegment] | None = None,
) -> list[Snippet]:
    if transcript_segments:
        return build_transcript_snippets(transcript_segments)
    return build_web_snippets(raw_text)


def _decode_entities(value: str) -> str:
    # Double-encoded text such as "&amp;#39;" needs more than one pass.
    for _ in range(3):
        decoded = html.unescape(value)
        if decoded == value:
            break
        value = decoded
    return value


def clean_transcript_text(value: str) -> str:
    return normalize_whitespace(_decode_entities(value).replace("\u200b", ""))


def _row_start(row: dict[str, Any]) -> float | None:
    for key in ("startSec", "start_sec", "offset", "start"):
        if key not in row:
            continue
        try:
            return float(row[key])
        except (TypeError, ValueError):
            return None
    return None


def normalize_transcript_segments(rows: list[dict[str, Any]]) -> list[TranscriptSegment]:
    normalized: list[TranscriptSegment] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        start = _row_start(row)
        text = clean_transcript_text(str(row.get("text") or ""))
        if start is None or not _usable_start(start) or not text:
            continue
        label = str(row.get("startLabel") or row.get("start_label") or "").strip()
        normalized.append(
            TranscriptSegment(
                id=f"{round(start * 1000)}-{text[:24]}",
                start_sec=start,
                start_label=label or format_seconds_label(start),
                text=text,
            )
        )
    normalized.sort(key=lambda segment: segment.start_sec)

    deduped: list[TranscriptSegment] = []
    for segment in normalized:
        if deduped:
            previous = deduped[-1]
            if (
                abs(previous.start_sec - segment.start_sec) < DUPLICATE_SEGMENT_WINDOW_S
                and previous.text == segment.text
            ):
                continue
        deduped.append(segment)
    return deduped


def validate_transcript_segments(
    segments: list[TranscriptSegment],
    minimum: int = MIN_TRANSCRIPT_SEGMENTS,
) -> tuple[bool, str | None]:
    if len(segments) < minimum:
        return False, "too_few_segments"
    last = -1.0
    for segment in segments:
        if segment.start_sec < last:
            return False, "non_monotonic_timestamps"
        last = segment.start_sec
    return True, None


def _read_pdf(path: Path) -> str:
    with fitz.open(path) as pdf:
        return "\n".join(page.get_text("text") for page in pdf)


def _transcript_rows(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get("segments", [])
    if not isinstance(payload, list):
        raise ValueError("Transcript JSON must be a list of rows or an object with 'segments'.")
    return payload


def _sanitize_segments(segments: list[TranscriptSegment]) -> tuple[list[TranscriptSegment], int]:
    kept: list[TranscriptSegment] = []
    filtered = 0
    for segment in segments:
        _, dropped = sanitize_text(segment.text)
        if dropped:
            filtered += dropped
            continue
        kept.append(segment)
    return kept, filtered


def _build_context(
    *,
    text: str,
    segments: list[TranscriptSegment],
    url: str,
    title: str,
) -> TabContext:
    if segments:
        valid, reason = validate_transcript_segments(segments)
        text = "\n".join(segment.text for segment in segments)
        if not valid:
            log.warning("Transcript rejected (%s); falling back to page text.", reason)
            segments = []
    truncated = len(text) > MAX_CONTEXT_CHARS
    text = text[:MAX_CONTEXT_CHARS]
    return TabContext(
        url=url,
        title=title,
        text=text,
        transcript_segments=segments,
        snippets=build_snippets(text, segments),
        truncated=truncated,
    )


def _extract_context(ext: str, path: Path, *, url: str, title: str) -> tuple[TabContext, int]:
    if ext == ".json":
        rows = _transcript_rows(json.loads(path.read_text(encoding="utf-8")))
        segments, filtered = _sanitize_segments(normalize_transcript_segments(rows))
        return _build_context(text="", segments=segments, url=url, title=title), filtered

    text = _read_pdf(path) if ext == ".pdf" else path.read_text(encoding="utf-8", errors="ignore")
    cleaned, filtered = sanitize_text(text)
    return _build_context(text=cleaned, segments=[], url=url, title=title), filtered


def load_context(raw_path: str, *, url: str = "", title: str = "") -> TabContext:
    path = Path(raw_path).expanduser().resolve()
    if not path.exists() or not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    ext = validate_extension(path.name)
    validate_upload_size(path.stat().st_size)
    context, filtered = _extract_context(
        ext, path, url=url or path.as_uri(), title=title or path.stem
    )
    if filtered:
        log.warning("Filtered %d suspicious line(s) from %s.", filtered, path.name)
    if context.truncated:
        log.warning("Context text truncated to %d chars.", MAX_CONTEXT_CHARS)
    return context
