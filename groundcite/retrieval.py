"""Lexical relevance scoring and ranking of context snippets."""

from __future__ import annotations

from groundcite.models import ScoredSnippet, Snippet
from groundcite.text import normalize_whitespace, tokenize

MAX_RANKED_SNIPPETS = 10
MAX_FALLBACK_SNIPPETS = 5
PHRASE_BONUS = 0.1
PHRASE_TOKENS = 4


def score_snippet(question_tokens: list[str], snippet: Snippet) -> float:
    if not question_tokens:
        return 0.0

    snippet_tokens = set(tokenize(snippet.text))
    if not snippet_tokens:
        return 0.0

    overlap = sum(1 for token in question_tokens if token in snippet_tokens)
    overlap_score = overlap / max(1, len(question_tokens))

    phrase = " ".join(question_tokens[:PHRASE_TOKENS])
    bonus = PHRASE_BONUS if phrase in normalize_whitespace(snippet.text).lower() else 0.0
    return min(1.0, overlap_score + bonus)


def _with_score(snippet: Snippet, score: float) -> ScoredSnippet:
    return ScoredSnippet(**snippet.model_dump(exclude={"score"}), score=score)


def rank_snippets(question: str, snippets: list[Snippet]) -> list[ScoredSnippet]:
    """
    Orders snippets by lexical overlap with the question.

    Python's sort is stable, so equal scores keep their input order. When no
    snippet overlaps at all, the first few snippets are returned in input
    order with small descending placeholder scores so callers always have
    candidates to show.
    """
    if not question.strip():
        raise ValueError("Question cannot be empty.")

    question_tokens = tokenize(question)
    scored = [_with_score(snippet, score_snippet(question_tokens, snippet)) for snippet in snippets]

    positive = sorted(
        (snippet for snippet in scored if snippet.score > 0),
        key=lambda snippet: snippet.score,
        reverse=True,
    )
    if positive:
        return positive[:MAX_RANKED_SNIPPETS]

    return [
        snippet.model_copy(update={"score": max(0.05, 0.1 - idx * 0.01)})
        for idx, snippet in enumerate(scored[:MAX_FALLBACK_SNIPPETS])
    ]
