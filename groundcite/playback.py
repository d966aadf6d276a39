"""Turn a message's citations into playable, merged video time ranges."""

from __future__ import annotations

import logging
import math
import re

from groundcite.models import Citation, PlaybackRange, TranscriptSegment
from groundcite.text import format_seconds_label, parse_timestamp_label

log = logging.getLogger(__name__)

MIN_RANGE_DURATION_S = 0.5
FALLBACK_RANGE_DURATION_S = 8.0
RANGE_MERGE_GAP_S = 0.35

_RANGE_LABEL_RE = re.compile(r"^\s*([0-9:.]+)\s*[-–—]\s*([0-9:.]+)\s*$")


def parse_range_label(label: str | None) -> PlaybackRange | None:
    """Parses labels such as ``1:02 - 1:10`` or ``0:20-0:34``."""
    if not label:
        return None
    match = _RANGE_LABEL_RE.match(label)
    if match is None:
        return None

    start_label, end_label = match.group(1), match.group(2)
    start = parse_timestamp_label(start_label)
    end = parse_timestamp_label(end_label)
    if start is None or end is None or end - start <= MIN_RANGE_DURATION_S:
        return None
    return PlaybackRange(
        start_sec=start,
        end_sec=end,
        start_label=start_label,
        end_label=end_label,
    )


def _citation_start(citation: Citation) -> float | None:
    value = citation.timestamp_sec
    if value is not None and math.isfinite(value) and value >= 0:
        return value
    if citation.timestamp_label:
        return parse_timestamp_label(citation.timestamp_label)
    return None


def _start_label(citation: Citation, start: float) -> str:
    label = (citation.timestamp_label or "").strip()
    if label and parse_timestamp_label(label) is not None:
        return label
    return format_seconds_label(start)


def resolve_citation_range(
    citation: Citation,
    transcript_segments: list[TranscriptSegment],
) -> PlaybackRange | None:
    explicit = parse_range_label(citation.timestamp_label)
    if explicit is not None:
        return explicit

    start = _citation_start(citation)
    if start is None:
        return None
    start_label = _start_label(citation, start)

    for segment in transcript_segments:
        if segment.start_sec - start > MIN_RANGE_DURATION_S:
            return PlaybackRange(
                start_sec=start,
                end_sec=segment.start_sec,
                start_label=start_label,
                end_label=segment.start_label or format_seconds_label(segment.start_sec),
            )

    end = start + FALLBACK_RANGE_DURATION_S
    return PlaybackRange(
        start_sec=start,
        end_sec=end,
        start_label=start_label,
        end_label=format_seconds_label(end),
    )


def merge_playback_ranges(ranges: list[PlaybackRange]) -> list[PlaybackRange]:
    ordered = sorted(ranges, key=lambda item: (item.start_sec, item.end_sec))
    merged: list[PlaybackRange] = []
    for item in ordered:
        if merged and item.start_sec <= merged[-1].end_sec + RANGE_MERGE_GAP_S:
            current = merged[-1]
            if item.end_sec > current.end_sec:
                merged[-1] = current.model_copy(
                    update={"end_sec": item.end_sec, "end_label": item.end_label}
                )
            continue
        merged.append(item)
    return merged


def resolve_playback_ranges(
    citations: list[Citation],
    transcript_segments: list[TranscriptSegment] | None = None,
    video_duration_sec: float | None = None,
) -> list[PlaybackRange]:
    """
    Resolves every citation to a start/end range and merges overlapping ones.

    An end comes from an explicit ``start-end`` label, else from the next
    transcript segment, else from a fixed fallback duration. Ranges are not
    clamped to ``video_duration_sec`` here; see ``clamp_playback_ranges``.
    """
    del video_duration_sec
    segments = sorted(transcript_segments or [], key=lambda segment: segment.start_sec)

    candidates: list[PlaybackRange] = []
    for citation in citations:
        resolved = resolve_citation_range(citation, segments)
        if resolved is None:
            log.debug("Citation %s has no usable timestamp; skipping range.", citation.id)
            continue
        candidates.append(resolved)
    return merge_playback_ranges(candidates)


def clamp_playback_ranges(
    ranges: list[PlaybackRange],
    video_duration_sec: float,
) -> list[PlaybackRange]:
    if not math.isfinite(video_duration_sec) or video_duration_sec <= 0:
        return list(ranges)

    clamped: list[PlaybackRange] = []
    for item in ranges:
        start = min(max(0.0, item.start_sec), video_duration_sec)
        end = min(max(0.0, item.end_sec), video_duration_sec)
        if end - start < MIN_RANGE_DURATION_S:
            continue
        clamped.append(
            item.model_copy(
                update={
                    "start_sec": start,
                    "end_sec": end,
                    "start_label": (
                        item.start_label if start == item.start_sec else format_seconds_label(start)
                    ),
                    "end_label": item.end_label if end == item.end_sec else format_seconds_label(end),
                }
            )
        )
    return clamped
