"""
Completion cache: raw completion text keyed by the tail of the conversation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from govairn.utils.time import Clock, monotonic_clock

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_CONTEXT_MESSAGES = 3


class CompletionCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        context_messages: int = DEFAULT_CONTEXT_MESSAGES,
        clock: Clock = monotonic_clock,
    ):
        self.ttl_seconds = ttl_seconds
        self.context_messages = context_messages
        self._clock = clock
        self._cache: Dict[str, Tuple[float, str]] = {}

    def key_for(self, messages: Sequence[Mapping[str, str]]) -> str:
        tail: List[Dict[str, str]] = [
            {"role": str(m.get("role", "")), "content": str(m.get("content", ""))}
            for m in list(messages)[-self.context_messages:]
        ]
        raw = json.dumps(tail, sort_keys=True, ensure_ascii=False)
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def get(self, messages: Sequence[Mapping[str, str]]) -> Optional[str]:
        key = self.key_for(messages)
        cached = self._cache.get(key)
        if not cached:
            return None
        ts, value = cached
        if self._clock() - ts > self.ttl_seconds:
            del self._cache[key]
            return None
        logger.debug(f"Completion cache hit: {key[:12]}")
        return value

    def set(self, messages: Sequence[Mapping[str, str]], completion: str) -> None:
        self._cache[self.key_for(messages)] = (self._clock(), completion)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (ts, _) in self._cache.items() if now - ts > self.ttl_seconds]
        for key in expired:
            del self._cache[key]
        return len(expired)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
