from groundcite.grounding import (
    collapse_timestamp_citations,
    parse_model_reply,
    reconcile_citations,
)
from groundcite.llm_client import parse_json_with_recovery
from groundcite.models import ScoredSnippet
from groundcite.prompts import SYSTEM_PROMPT, build_grounded_prompt


def _web(idx: int, score: float, text: str = "") -> ScoredSnippet:
    return ScoredSnippet(id=f"w-{idx}", text=text or f"web text {idx}", score=score)


def _timed(idx: int, ts: float, score: float = 0.5, text: str = "", label: str = "") -> ScoredSnippet:
    minutes, seconds = divmod(int(ts), 60)
    return ScoredSnippet(
        id=f"t-{idx}",
        text=text or f"spoken text {idx}",
        score=score,
        timestamp_sec=ts,
        timestamp_label=label or f"{minutes}:{seconds:02d}",
    )


def test_prompt_template_includes_snippets_and_rules() -> None:
    prompt = build_grounded_prompt(
        url="https://example.org",
        title="Example",
        question="What happened?",
        snippets=[_web(1, 0.5, "Something happened.")],
    )
    assert "QUESTION: What happened?" in prompt
    assert 'SNIPPETS_JSON: [{"id": "w-1"' in prompt
    assert "timestampLabel when available" not in prompt
    assert "untrusted" in prompt.lower()
    assert "json" in SYSTEM_PROMPT.lower()


def test_prompt_template_prefers_timestamps_for_video_pools() -> None:
    prompt = build_grounded_prompt(url="u", title="t", question="q", snippets=[_timed(1, 12.0)])
    assert "timestampLabel when available" in prompt
    assert '"timestampSec": 12.0' in prompt


def test_reconcile_discards_unknown_ids_and_falls_back_to_top_three() -> None:
    pool = [_web(1, 0.9), _web(2, 0.5), _web(3, 0.3)]
    sources = reconcile_citations(pool, [{"id": "w-9", "score": 2}])
    assert [source.id for source in sources] == ["w-1", "w-2", "w-3"]
    assert [source.score for source in sources] == [0.9, 0.5, 0.3]


def test_reconcile_clamps_scores_and_drops_duplicates() -> None:
    pool = [_web(1, 0.9), _web(2, 0.5), _web(3, 0.3)]
    claims = [
        {"id": "w-2", "score": 2},
        {"id": "w-1", "score": -1},
        {"id": "w-2", "score": 0.1},
    ]
    sources = reconcile_citations(pool, claims)
    assert [(source.id, source.score) for source in sources] == [("w-2", 1.0), ("w-1", 0.0)]


def test_reconcile_uses_pool_score_for_unusable_model_scores() -> None:
    pool = [_web(1, 0.9), _web(2, 0.5), _web(3, 0.3)]
    claims = [
        {"id": "w-3", "score": "nan"},
        {"id": "w-1"},
        {"id": "w-2", "score": True},
        {"id": 7, "score": 0.4},
        "garbage",
    ]
    sources = reconcile_citations(pool, claims)
    assert [(source.id, source.score) for source in sources] == [
        ("w-3", 0.3),
        ("w-1", 0.9),
        ("w-2", 0.5),
    ]


def test_reconcile_clamps_huge_integer_scores() -> None:
    pool = [_web(1, 0.9), _web(2, 0.5)]
    reply = parse_json_with_recovery(
        '{"sources": [{"id": "w-1", "score": 1' + "0" * 400 + '}, {"id": "w-2", "score": -1' + "0" * 400 + "}]}"
    )
    sources = reconcile_citations(pool, reply["sources"])
    assert [(source.id, source.score) for source in sources] == [("w-1", 1.0), ("w-2", 0.0)]


def test_reconcile_keeps_pool_text() -> None:
    pool = [_web(1, 0.9, "Original extracted snippet text.")]
    sources = reconcile_citations(pool, [{"id": "w-1", "quote": "made up quote", "score": 0.7}])
    assert sources[0].text == "Original extracted snippet text."
    assert sources[0].score == 0.7


def test_reconcile_unusable_reply_falls_back() -> None:
    pool = [_web(idx, 1 - idx / 10) for idx in range(1, 6)]
    assert [source.id for source in reconcile_citations(pool, None)] == ["w-1", "w-2", "w-3"]
    assert [source.id for source in reconcile_citations(pool, [])] == ["w-1", "w-2", "w-3"]
    assert reconcile_citations([], [{"id": "w-1"}]) == []


def test_reconcile_prefers_timestamped_pool_over_untimed_picks() -> None:
    pool = [_web(1, 0.9), _timed(2, 30), _timed(3, 90, score=0.4)]
    sources = reconcile_citations(pool, [{"id": "w-1", "score": 0.8}])
    assert [source.id for source in sources] == ["t-2", "t-3"]


def test_reconcile_keeps_timestamped_picks() -> None:
    pool = [_web(1, 0.9), _timed(2, 30), _timed(3, 90, score=0.4)]
    sources = reconcile_citations(pool, [{"id": "t-3", "score": 0.6}, {"id": "w-1"}])
    assert [(source.id, source.score) for source in sources] == [("t-3", 0.6)]


def test_reconcile_fallback_prefers_timestamped_snippets() -> None:
    pool = [_web(1, 0.9), _timed(2, 30), _timed(3, 33)]
    sources = reconcile_citations(pool, "not a list")
    assert len(sources) == 1
    assert sources[0].id == "t-2"
    assert sources[0].timestamp_label == "0:30-0:33"


def test_reconcile_never_exceeds_five_or_duplicates() -> None:
    pool = [_web(idx, 0.5) for idx in range(1, 11)]
    claims = [{"id": f"w-{idx}"} for idx in range(1, 11)] * 2
    sources = reconcile_citations(pool, claims)
    ids = [source.id for source in sources]
    assert len(ids) == 5
    assert len(set(ids)) == 5
    assert set(ids) <= {snippet.id for snippet in pool}


def test_collapse_merges_nearby_timestamps() -> None:
    first = _timed(1, 10.0, score=0.4, text="alpha")
    second = _timed(2, 12.0, score=0.8, text="beta")
    collapsed = collapse_timestamp_citations([second, first])
    assert len(collapsed) == 1
    merged = collapsed[0]
    assert merged.id == "t-1"
    assert merged.timestamp_sec == 10.0
    assert merged.timestamp_label == "0:10-0:12"
    assert merged.score == 0.8
    assert merged.text == "alpha ... beta"


def test_collapse_keeps_distant_timestamps_apart() -> None:
    collapsed = collapse_timestamp_citations([_timed(1, 10.0), _timed(2, 20.0)])
    assert [citation.id for citation in collapsed] == ["t-1", "t-2"]


def test_collapse_single_citation_is_unchanged() -> None:
    citation = _timed(1, 42.0)
    assert collapse_timestamp_citations([citation]) == [citation]


def test_collapse_chains_and_limits_merged_text() -> None:
    citations = [_timed(idx, ts, text=f"part {idx}") for idx, ts in enumerate([0, 4, 8, 12], start=1)]
    collapsed = collapse_timestamp_citations(citations)
    assert len(collapsed) == 1
    assert collapsed[0].text == "part 1 ... part 2 ... part 3"
    assert collapsed[0].timestamp_label == "0:00-0:12"


def test_collapse_identical_labels_are_not_repeated() -> None:
    collapsed = collapse_timestamp_citations(
        [_timed(1, 10.0, text="same"), _timed(2, 10.4, text="same")]
    )
    assert collapsed[0].timestamp_label == "0:10"
    assert collapsed[0].text == "same"


def test_collapse_untimed_citations_pass_through_capped() -> None:
    citations = [_web(idx, 0.5) for idx in range(1, 8)]
    assert collapse_timestamp_citations(citations) == citations[:5]


def test_parse_model_reply() -> None:
    answer, sources = parse_model_reply({"answer": "  Paris \n is the capital. ", "sources": []})
    assert answer == "Paris is the capital."
    assert sources == []
    assert parse_model_reply({"answer": 42}) == ("", None)
    assert parse_model_reply(["not", "a", "dict"]) == ("", None)
