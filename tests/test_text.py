from groundcite.text import (
    STOP_WORDS,
    format_seconds_label,
    normalize_whitespace,
    parse_timestamp_label,
    tokenize,
    truncate_for_snippet,
)


def test_tokenize_drops_stop_words_short_tokens_and_duplicates() -> None:
    tokens = tokenize("The quick, brown fox! The FOX jumps over 42 lazy dogs")
    assert tokens == ["quick", "brown", "fox", "jumps", "lazy", "dogs"]


def test_tokenize_is_idempotent_and_order_stable() -> None:
    text = "Solar-panel efficiency (2024) rose; efficiency of panels in Spain rose too."
    first = tokenize(text)
    assert tokenize(text) == first
    assert tokenize(" ".join(first)) == first
    assert all(len(token) >= 3 and token not in STOP_WORDS for token in first)


def test_tokenize_empty_and_punctuation_only() -> None:
    assert tokenize("") == []
    assert tokenize("?!, -- ...") == []


def test_truncate_for_snippet_appends_single_ellipsis() -> None:
    assert truncate_for_snippet("short text") == "short text"
    long_text = "word " * 100
    truncated = truncate_for_snippet(long_text)
    assert len(truncated) <= 280
    assert truncated.endswith("…")
    assert truncated.count("…") == 1


def test_normalize_whitespace_collapses_runs() -> None:
    assert normalize_whitespace("  a\n\tb   c ") == "a b c"


def test_format_seconds_label() -> None:
    assert format_seconds_label(0) == "0:00"
    assert format_seconds_label(65.9) == "1:05"
    assert format_seconds_label(3725) == "1:02:05"
    assert format_seconds_label(-3) == "0:00"
    assert format_seconds_label(float("nan")) == "0:00"


def test_parse_timestamp_label() -> None:
    assert parse_timestamp_label("1:05") == 65
    assert parse_timestamp_label(" 1:02:05 ") == 3725
    assert parse_timestamp_label("65") is None
    assert parse_timestamp_label("a:bc") is None
    assert parse_timestamp_label("1:-5") is None
