"""Provider-agnostic LLM client used as the grounded-answer collaborator."""

from __future__ import annotations

import json
import logging
import os
import random
import re
import time
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_SNIPPETS_LINE_RE = re.compile(r"^SNIPPETS_JSON:\s*(?P<body>.*)$", re.MULTILINE)
_QUESTION_LINE_RE = re.compile(r"^QUESTION:\s*(?P<body>.*)$", re.MULTILINE)


class LLMServiceError(RuntimeError):
    """Raised when an LLM call fails after retries."""


@dataclass(frozen=True)
class LLMResponse:
    text: str
    input_tokens: int
    output_tokens: int


def extract_balanced_json(text: str) -> str | None:
    start = next((idx for idx, ch in enumerate(text) if ch in "{["), -1)
    if start == -1:
        return None

    stack: list[str] = []
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack or {"{": "}", "[": "]"}[stack[-1]] != ch:
                return None
            stack.pop()
            if not stack:
                return text[start : idx + 1].strip()
    return None


def extract_json_block(text: str) -> str:
    fenced = _FENCED_JSON_RE.search(text)
    if fenced and fenced.group(1):
        inner = fenced.group(1).strip()
        return extract_balanced_json(inner) or inner
    return extract_balanced_json(text) or text.strip()


def _strip_fence_markers(text: str) -> str:
    text = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE)
    return re.sub(r"`{3,}", "", text).strip()


def _normalize_json_candidate(text: str) -> str:
    text = text.lstrip("\ufeff")
    text = re.sub("[\u201c\u201d]", '"', text)
    text = re.sub("[\u2018\u2019]", "'", text)
    return re.sub(r",\s*([}\]])", r"\1", text).strip()


def parse_json_with_recovery(raw: str) -> Any:
    """
    Parses model output that is supposed to be JSON but often is not quite.

    Tries the raw text, fence-stripped text, the first balanced JSON document,
    and normalized variants of each (smart quotes, trailing commas).
    """
    stripped = _strip_fence_markers(raw)
    extracted = extract_json_block(raw)
    stripped_extracted = _strip_fence_markers(extracted)
    candidates = [raw, stripped, extracted, stripped_extracted]
    candidates += [_normalize_json_candidate(candidate) for candidate in candidates]

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc
    raise ValueError(f"Failed to parse model JSON response: {last_error}")


class LLMClient:
    """Abstract base class for LLM providers."""

    provider: str = "base"
    _last_call_ts: float = 0.0

    def _throttle(self) -> None:
        from groundcite.config import LLM_MIN_CALL_INTERVAL_S

        if LLM_MIN_CALL_INTERVAL_S <= 0:
            return
        elapsed = time.time() - self._last_call_ts
        if elapsed < LLM_MIN_CALL_INTERVAL_S:
            time.sleep(LLM_MIN_CALL_INTERVAL_S - elapsed)

    def _sleep_backoff(self, attempt: int) -> None:
        from groundcite.config import LLM_BACKOFF_BASE_S, LLM_BACKOFF_MAX_S

        base = max(0.1, LLM_BACKOFF_BASE_S)
        max_wait = max(base, LLM_BACKOFF_MAX_S)
        wait = min(max_wait, base * (2**attempt))
        jitter = random.uniform(0.0, base)  # nosec B311
        time.sleep(wait + jitter)

    def _is_retryable_error(self, exc: Exception) -> tuple[bool, str]:
        name = exc.__class__.__name__
        status_code = getattr(exc, "status_code", None)
        body = str(exc).lower()
        retryable_status = {408, 409, 429, 500, 502, 503, 504}
        retryable_name_markers = (
            "RateLimitError",
            "APITimeoutError",
            "APIConnectionError",
            "InternalServerError",
        )

        if status_code in retryable_status:
            return True, f"status={status_code}"
        if any(marker in name for marker in retryable_name_markers):
            return True, name
        if "rate limit" in body or "too many requests" in body or "timeout" in body:
            return True, name
        return False, name

    def _chat_completion_with_retry(self, client, kwargs: dict):
        from groundcite.config import LLM_MAX_RETRIES

        attempts = max(1, LLM_MAX_RETRIES + 1)
        for attempt in range(attempts):
            try:
                self._throttle()
                resp = client.chat.completions.create(**kwargs)
                self._last_call_ts = time.time()
                return resp
            except Exception as exc:
                retryable, reason = self._is_retryable_error(exc)
                is_last = attempt == attempts - 1
                if not retryable or is_last:
                    msg = (
                        f"{self.__class__.__name__} failed after "
                        f"{attempt + 1}/{attempts} attempts: {exc}"
                    )
                    raise LLMServiceError(msg) from exc
                log.warning(
                    "%s transient error (attempt %d/%d, reason=%s). Retrying...",
                    self.__class__.__name__,
                    attempt + 1,
                    attempts,
                    reason,
                )
                self._sleep_backoff(attempt)

        raise LLMServiceError(f"{self.__class__.__name__} failed unexpectedly.")

    def generate(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        raise NotImplementedError

    def generate_json(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> Any:
        """
        Requests a JSON reply, retrying once in strict JSON mode on a parse failure.
        """
        from groundcite.prompts import STRICT_RETRY_SUFFIX

        last_error: ValueError | None = None
        for attempt in range(2):
            strict = attempt == 1
            response = self.generate(
                prompt=f"{prompt}{STRICT_RETRY_SUFFIX}" if strict else prompt,
                system=system,
                model=model,
                temperature=0.0 if strict else None,
                max_tokens=max_tokens,
                json_mode=strict,
            )
            text = response.text.strip()
            if not text:
                raise LLMServiceError(f"{self.provider} response did not contain text content.")
            try:
                return parse_json_with_recovery(extract_json_block(text))
            except ValueError as exc:
                last_error = exc
                if not strict:
                    log.warning("%s returned invalid JSON; retrying in strict mode.", self.provider)
        raise LLMServiceError(
            f"{self.provider} response was not valid JSON after strict retry: {last_error}"
        ) from last_error


class OpenRouterClient(LLMClient):
    provider = "openrouter"

    def __init__(self) -> None:
        from openai import OpenAI

        from groundcite.config import (
            LLM_TIMEOUT_S,
            OPENROUTER_API_KEY,
            OPENROUTER_APP_TITLE,
            OPENROUTER_ENDPOINT,
        )

        if not OPENROUTER_API_KEY:
            raise ValueError("OPENROUTER_API_KEY is required when LLM_PROVIDER=openrouter.")
        self._client = OpenAI(
            base_url=OPENROUTER_ENDPOINT,
            api_key=OPENROUTER_API_KEY,
            timeout=LLM_TIMEOUT_S,
            default_headers={"X-Title": OPENROUTER_APP_TITLE},
        )

    def generate(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        from groundcite.config import GENERATION_TEMPERATURE, LLM_MAX_TOKENS, OPENROUTER_MODEL

        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict = {
            "model": model or OPENROUTER_MODEL,
            "messages": messages,
            "temperature": temperature if temperature is not None else GENERATION_TEMPERATURE,
            "max_tokens": max_tokens if max_tokens is not None else LLM_MAX_TOKENS,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        resp = self._chat_completion_with_retry(self._client, kwargs)
        usage = resp.usage
        return LLMResponse(
            text=resp.choices[0].message.content or "",
            input_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
            output_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
        )


class MockOfflineClient(LLMClient):
    """Deterministic stand-in that cites the leading snippets of the prompt."""

    provider = "mock"

    def _extract_snippets(self, prompt: str) -> list[dict[str, Any]]:
        match = _SNIPPETS_LINE_RE.search(prompt)
        if match is None:
            return []
        try:
            rows = json.loads(match.group("body"))
        except json.JSONDecodeError:
            return []
        return [row for row in rows if isinstance(row, dict) and row.get("id")]

    def _build_payload(self, prompt: str) -> dict:
        rows = self._extract_snippets(prompt)
        question_match = _QUESTION_LINE_RE.search(prompt)
        question = question_match.group("body").strip() if question_match else ""
        if not rows:
            return {
                "answer": "The page/video does not contain enough evidence to answer.",
                "sources": [],
            }

        cited = rows[:2]
        sources = [
            {
                "id": row["id"],
                "quote": " ".join(str(row.get("text", "")).split()[:24]),
                "score": row.get("score", 0.5),
            }
            for row in cited
        ]
        return {
            "answer": (
                f"Offline deterministic answer to {question!r} "
                f"grounded in {len(cited)} of {len(rows)} snippets."
            ),
            "sources": sources,
        }

    def generate(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        del system, model, temperature, max_tokens, json_mode
        payload = self._build_payload(prompt)
        return LLMResponse(text=json.dumps(payload), input_tokens=0, output_tokens=0)


def get_llm_client() -> LLMClient:
    from groundcite.config import LLM_PROVIDER, OFFLINE_MODE

    provider = os.getenv("LLM_PROVIDER", LLM_PROVIDER).strip().lower()
    offline = os.getenv("OFFLINE_MODE", "1" if OFFLINE_MODE else "0").strip().lower() in {
        "1",
        "true",
        "yes",
    }
    if offline:
        return MockOfflineClient()

    if provider == "openrouter":
        return OpenRouterClient()
    if provider == "mock":
        return MockOfflineClient()
    raise ValueError(f"Unknown LLM_PROVIDER={provider!r}")
