"""Shared data models for groundcite."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TranscriptSegment(_Record):
    id: str
    start_sec: float = Field(..., alias="startSec")
    start_label: str = Field("", alias="startLabel")
    text: str


class Snippet(_Record):
    id: str = Field(..., description="Stable id within one context (w-<n> or t-<n>).")
    text: str
    timestamp_sec: float | None = Field(None, alias="timestampSec")
    timestamp_label: str | None = Field(None, alias="timestampLabel")

    @property
    def has_timestamp(self) -> bool:
        return bool(self.timestamp_label)

    def to_source_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ScoredSnippet(Snippet):
    score: float = Field(..., description="Lexical relevance, or citation confidence, in [0, 1].")


# A citation is a scored snippet attached to an answer.
Citation = ScoredSnippet


class PlaybackRange(_Record):
    start_sec: float = Field(..., alias="startSec")
    end_sec: float = Field(..., alias="endSec")
    start_label: str = Field(..., alias="startLabel")
    end_label: str = Field(..., alias="endLabel")


class ModelClaim(_Record):
    """One citation as claimed by the language model. Never trusted as-is."""

    id: str | None = None
    quote: str | None = None
    score: float | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> ModelClaim:
        if isinstance(raw, ModelClaim):
            return raw
        if not isinstance(raw, dict):
            return cls()

        claim_id = raw.get("id")
        quote = raw.get("quote")
        return cls(
            id=claim_id if isinstance(claim_id, str) else None,
            quote=quote if isinstance(quote, str) else None,
            score=_finite_or_none(raw.get("score")),
        )


def _finite_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except OverflowError:
        return 1.0 if value > 0 else 0.0
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class ChatAnswer(BaseModel):
    answer: str
    sources: list[Citation] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [source.to_source_dict() for source in self.sources],
        }


class TabContext(BaseModel):
    url: str = ""
    title: str = ""
    text: str = ""
    transcript_segments: list[TranscriptSegment] = Field(default_factory=list)
    snippets: list[Snippet] = Field(default_factory=list)
    truncated: bool = False

    @property
    def is_video(self) -> bool:
        return bool(self.transcript_segments)
