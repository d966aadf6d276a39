"""End-to-end grounded Q&A over one page or video context."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from groundcite.config import MAX_CONTEXT_CHARS
from groundcite.grounding import parse_model_reply, reconcile_citations
from groundcite.ingest import build_snippets, load_context
from groundcite.llm_client import LLMClient, get_llm_client
from groundcite.models import ChatAnswer, PlaybackRange, TabContext
from groundcite.playback import clamp_playback_ranges, resolve_playback_ranges
from groundcite.prompts import SYSTEM_PROMPT, build_grounded_prompt
from groundcite.retrieval import rank_snippets
from groundcite.text import normalize_whitespace

log = logging.getLogger(__name__)

NO_ANSWER_MESSAGE = (
    "I could not produce a reliable grounded answer from the current page/video context."
)


def answer_question(
    context: TabContext,
    question: str,
    llm: LLMClient | None = None,
) -> ChatAnswer:
    question = normalize_whitespace(question)
    if not question:
        raise ValueError("Question cannot be empty.")

    snippets = context.snippets or build_snippets(
        context.text[:MAX_CONTEXT_CHARS],
        context.transcript_segments,
    )
    if not snippets:
        raise ValueError("Context has no readable text to answer from.")

    ranked = rank_snippets(question, snippets)
    prompt = build_grounded_prompt(
        url=context.url,
        title=context.title,
        question=question,
        snippets=ranked,
    )

    client = llm or get_llm_client()
    payload = client.generate_json(prompt=prompt, system=SYSTEM_PROMPT)
    answer, claims = parse_model_reply(payload)
    sources = reconcile_citations(ranked, claims)

    if not answer:
        log.warning("Model reply had no usable answer text.")
        answer = NO_ANSWER_MESSAGE
    return ChatAnswer(answer=answer, sources=sources)


def answer_ranges(
    context: TabContext,
    answer: ChatAnswer,
    video_duration_sec: float | None = None,
) -> list[PlaybackRange]:
    ranges = resolve_playback_ranges(answer.sources, context.transcript_segments)
    if video_duration_sec is None:
        return ranges
    return clamp_playback_ranges(ranges, video_duration_sec)


def run_qa(
    question: str,
    context_path: str,
    *,
    url: str = "",
    title: str = "",
    video_duration_sec: float | None = None,
    output_json_path: str | None = None,
) -> dict:
    context = load_context(context_path, url=url, title=title)
    answer = answer_question(context, question)
    result = answer.to_payload()
    if context.is_video:
        result["ranges"] = [
            item.model_dump(by_alias=True)
            for item in answer_ranges(context, answer, video_duration_sec)
        ]

    if output_json_path:
        out_path = Path(output_json_path).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(result, indent=2, ensure_ascii=True), encoding="utf-8")
    return result
