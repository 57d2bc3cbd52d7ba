"""
Completion Gateway (OpenAI-compatible chat completions)
Issues the LLM request and manages its operational envelope.

RULES:
- Completion cache is checked first; a hit makes no network call
- Rate limit is advisory: overflow is logged, the call still proceeds
- Transport / non-2xx failures are retried, then reported as UNAVAILABLE
- Never raises to the caller
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Sequence

import httpx

from govairn.infrastructure.cache.completion_cache import CompletionCache
from govairn.infrastructure.llm.retry import RetryPolicy
from govairn.utils.text import strip_markup
from govairn.utils.time import Clock, monotonic_clock

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60.0

Sleep = Callable[[float], Awaitable[None]]


class CompletionStatus(str, Enum):
    OK = "ok"
    CACHED = "cached"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CompletionOutcome:
    status: CompletionStatus
    text: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def available(self) -> bool:
        return self.status != CompletionStatus.UNAVAILABLE

    @property
    def from_cache(self) -> bool:
        return self.status == CompletionStatus.CACHED


class _TransientFailure(Exception):
    """Retryable HTTP status"""


class _PermanentFailure(Exception):
    """Non-retryable HTTP status"""


class RateWindow:
    """Rolling 60s call counter. Reports overflow, never blocks."""

    def __init__(self, limit: int, clock: Clock = monotonic_clock, window_seconds: float = RATE_WINDOW_SECONDS):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._calls: Deque[float] = deque()

    def record(self) -> int:
        now = self._clock()
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()
        self._calls.append(now)
        return len(self._calls)

    def exceeded(self, count: int) -> bool:
        return self.limit > 0 and count > self.limit


class CompletionGateway:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        max_tokens_ceiling: int = 1500,
        timeout_seconds: float = 30.0,
        json_mode: bool = True,
        rate_limit_per_minute: int = 10,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[CompletionCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = monotonic_clock,
    ):
        self.api_key = (api_key or "").strip() or None
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens_ceiling = max_tokens_ceiling
        self.max_tokens = min(max_tokens, max_tokens_ceiling)
        self.timeout_seconds = timeout_seconds
        self.json_mode = json_mode
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache = cache if cache is not None else CompletionCache(clock=clock)
        self.rate_window = RateWindow(rate_limit_per_minute, clock=clock)
        self._transport = transport
        self._sleep = sleep

        self.network_calls = 0
        self.cache_hits = 0
        self.failures = 0

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "CompletionGateway":
        kwargs: Dict[str, Any] = dict(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.LLM_BASE_URL,
            model=settings.LLM_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            max_tokens_ceiling=settings.LLM_MAX_TOKENS_CEILING,
            timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
            json_mode=settings.LLM_JSON_MODE,
            rate_limit_per_minute=settings.LLM_RATE_LIMIT_PER_MINUTE,
            retry_policy=RetryPolicy(
                max_attempts=settings.LLM_RETRY_ATTEMPTS,
                backoff_seconds=settings.LLM_RETRY_BACKOFF_SECONDS,
            ),
        )
        kwargs.update(overrides)
        if "cache" not in kwargs:
            kwargs["cache"] = CompletionCache(
                ttl_seconds=settings.COMPLETION_CACHE_TTL_SECONDS,
                context_messages=settings.COMPLETION_CACHE_CONTEXT_MESSAGES,
                clock=kwargs.get("clock", monotonic_clock),
            )
        return cls(**kwargs)

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "network_calls": self.network_calls,
            "cache_hits": self.cache_hits,
            "failures": self.failures,
        }

    # ------------------------------------------------------------------
    # COMPLETION
    # ------------------------------------------------------------------

    async def complete(
        self,
        messages: Sequence[Mapping[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionOutcome:
        cached = self.cache.get(messages)
        if cached is not None:
            self.cache_hits += 1
            return CompletionOutcome(CompletionStatus.CACHED, text=cached)

        if not self.api_key:
            self.failures += 1
            logger.warning("LLM API key missing; completion unavailable")
            return CompletionOutcome(CompletionStatus.UNAVAILABLE, error="api key not configured")

        body = self._request_body(messages, temperature, max_tokens)
        last_error = "no attempt made"
        attempt = 0
        for attempt in self.retry_policy.attempts():
            count = self.rate_window.record()
            if self.rate_window.exceeded(count):
                logger.warning(
                    f"LLM rate limit exceeded: {count} calls in the last minute "
                    f"(limit {self.rate_window.limit}); proceeding anyway"
                )
            self.network_calls += 1
            logger.info(
                f"LLM call #{self.network_calls} (attempt {attempt}/{self.retry_policy.max_attempts}): "
                f"model={self.model} messages={len(messages)} max_tokens={body['max_tokens']}"
            )
            try:
                text = await self._post(body)
            except _TransientFailure as exc:
                last_error = str(exc)
            except _PermanentFailure as exc:
                last_error = str(exc)
                break
            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                if not self.retry_policy.is_retryable_error(exc):
                    break
            except ValueError as exc:
                # Non-JSON body or unexpected envelope
                last_error = f"invalid response body: {exc}"
                break
            else:
                cleaned = strip_markup(text)
                if cleaned:
                    self.cache.set(messages, cleaned)
                return CompletionOutcome(CompletionStatus.OK, text=cleaned, attempts=attempt)

            if self.retry_policy.should_retry(attempt):
                delay = self.retry_policy.delay_for(attempt)
                logger.warning(f"LLM attempt {attempt} failed ({last_error}); retrying in {delay:.1f}s")
                await self._sleep(delay)

        self.failures += 1
        logger.warning(f"LLM completion unavailable after {attempt} attempt(s): {last_error}")
        return CompletionOutcome(CompletionStatus.UNAVAILABLE, error=last_error, attempts=attempt)

    def _request_body(
        self,
        messages: Sequence[Mapping[str, str]],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> Dict[str, Any]:
        requested = max_tokens if max_tokens is not None else self.max_tokens
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max(1, min(requested, self.max_tokens_ceiling)),
        }
        if self.json_mode:
            body["response_format"] = {"type": "json_object"}
        return body

    async def _post(self, body: Dict[str, Any]) -> str:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            resp = await client.post(url, headers=headers, json=body)

        if not resp.is_success:
            message = f"HTTP {resp.status_code}"
            if self.retry_policy.is_retryable_status(resp.status_code):
                raise _TransientFailure(message)
            raise _PermanentFailure(message)
        return _extract_message_text(resp.json())


def _extract_message_text(payload: Any) -> str:
    if not isinstance(payload, Mapping):
        raise ValueError("response body is not an object")
    choices: List[Any] = payload.get("choices") or []
    if not isinstance(choices, list) or not choices:
        raise ValueError("response has no choices")
    first = choices[0]
    if not isinstance(first, Mapping):
        raise ValueError("response choice is not an object")
    message = first.get("message")
    if not isinstance(message, Mapping):
        raise ValueError("response choice has no message object")
    content = message.get("content")
    if not isinstance(content, str):
        raise ValueError("response message has no text content")
    return content
