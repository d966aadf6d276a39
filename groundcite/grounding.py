"""Citation grounding: reconcile model-claimed sources and collapse nearby timestamps."""

from __future__ import annotations

import logging
import math
from typing import Any

from groundcite.models import Citation, ModelClaim, ScoredSnippet
from groundcite.text import format_seconds_label, normalize_whitespace

log = logging.getLogger(__name__)

MAX_CITATIONS = 5
MAX_UNTIMED_FALLBACK = 3
TIMESTAMP_GROUP_GAP_S = 5.0
MAX_MERGED_TEXTS = 3
MERGED_TEXT_SEPARATOR = " ... "


def _timestamp_of(citation: Citation) -> float | None:
    value = citation.timestamp_sec
    if value is None or not math.isfinite(value) or value < 0:
        return None
    return value


def _merge_group(group: list[tuple[Citation, float]]) -> Citation:
    first, first_ts = group[0]
    last, last_ts = group[-1]
    strongest = sorted(group, key=lambda item: item[0].score, reverse=True)[0][0]

    start_label = first.timestamp_label or format_seconds_label(first_ts)
    end_label = last.timestamp_label or format_seconds_label(last_ts)
    label = start_label if start_label == end_label else f"{start_label}-{end_label}"

    texts: list[str] = []
    for citation, _ in group:
        text = normalize_whitespace(citation.text)
        if text and text not in texts:
            texts.append(text)
    merged_text = MERGED_TEXT_SEPARATOR.join(texts[:MAX_MERGED_TEXTS])

    return strongest.model_copy(
        update={
            "id": first.id,
            "timestamp_sec": first_ts,
            "timestamp_label": label,
            "text": merged_text or strongest.text,
            "score": max(citation.score for citation, _ in group),
        }
    )


def collapse_timestamp_citations(citations: list[Citation]) -> list[Citation]:
    """
    Merges timestamped citations that sit within a few seconds of each other.

    Untimed citations are only returned when none of the input is timestamped.
    """
    if len(citations) <= 1:
        return citations[:MAX_CITATIONS]

    timestamped = [
        (citation, ts) for citation in citations if (ts := _timestamp_of(citation)) is not None
    ]
    if not timestamped:
        return citations[:MAX_CITATIONS]
    timestamped.sort(key=lambda item: item[1])

    groups: list[list[tuple[Citation, float]]] = []
    current: list[tuple[Citation, float]] = []
    for item in timestamped:
        if current and item[1] - current[-1][1] > TIMESTAMP_GROUP_GAP_S:
            groups.append(current)
            current = []
        current.append(item)
    if current:
        groups.append(current)

    collapsed = [group[0][0] if len(group) == 1 else _merge_group(group) for group in groups]
    return collapsed[:MAX_CITATIONS]


def _timestamped(snippets: list[ScoredSnippet]) -> list[ScoredSnippet]:
    return [snippet for snippet in snippets if snippet.has_timestamp]


def reconcile_citations(ranked_pool: list[ScoredSnippet], model_claims: Any) -> list[Citation]:
    """
    Maps the model's claimed sources back onto the ranked snippet pool.

    Claimed ids that are not in the pool are dropped, duplicates are ignored and
    model scores are clamped to [0, 1]. When the model gives nothing usable the
    pool itself supplies the citations, preferring timestamped snippets.
    """
    pool_timestamped = _timestamped(ranked_pool)

    if not isinstance(model_claims, list) or not ranked_pool:
        if pool_timestamped:
            return collapse_timestamp_citations(pool_timestamped[:MAX_CITATIONS])
        return collapse_timestamp_citations(ranked_pool[:MAX_UNTIMED_FALLBACK])

    by_id = {snippet.id: snippet for snippet in ranked_pool}
    picked: list[Citation] = []
    picked_ids: set[str] = set()

    for raw in model_claims:
        claim = ModelClaim.from_raw(raw)
        base = by_id.get(claim.id or "")
        if base is None:
            log.debug("Discarding citation with unknown id %r.", claim.id)
            continue
        if base.id in picked_ids:
            continue
        score = min(1.0, max(0.0, claim.score)) if claim.score is not None else base.score
        picked.append(base.model_copy(update={"score": score}))
        picked_ids.add(base.id)

    if picked:
        if pool_timestamped:
            timestamped_picked = _timestamped(picked)
            if timestamped_picked:
                return collapse_timestamp_citations(timestamped_picked[:MAX_CITATIONS])
            log.info("Model cited no timestamped snippets; using timestamped pool instead.")
            return collapse_timestamp_citations(pool_timestamped[:MAX_CITATIONS])
        return collapse_timestamp_citations(picked[:MAX_CITATIONS])

    log.warning("No model citation matched the snippet pool; falling back to ranked snippets.")
    if pool_timestamped:
        return collapse_timestamp_citations(pool_timestamped[:MAX_CITATIONS])
    return collapse_timestamp_citations(ranked_pool[:MAX_UNTIMED_FALLBACK])


def parse_model_reply(payload: Any) -> tuple[str, Any]:
    """Splits a raw reply object into the answer text and its claimed sources."""
    if not isinstance(payload, dict):
        return "", None
    answer = payload.get("answer")
    answer_text = normalize_whitespace(answer) if isinstance(answer, str) else ""
    return answer_text, payload.get("sources")
