"""
Decision cache: at most one stored and one in-flight decision per key.

Key = proposal id (+ persona fingerprint). No TTL; entries live until
invalidated or replaced by a forced regeneration.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from govairn.domain.models import Decision, Persona
from govairn.utils.time import utc_now

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    decision: Decision
    created_at: datetime = field(default_factory=utc_now)


def cache_key(proposal_id: str, persona: Optional[Persona] = None) -> CacheKey:
    return (proposal_id, persona.fingerprint() if persona is not None else None)


class DecisionCache:
    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._locks: Dict[CacheKey, asyncio.Lock] = {}

    def get(self, proposal_id: str, persona: Optional[Persona] = None) -> Optional[Decision]:
        entry = self._entries.get(cache_key(proposal_id, persona))
        return entry.decision if entry else None

    def entry(self, proposal_id: str, persona: Optional[Persona] = None) -> Optional[CacheEntry]:
        return self._entries.get(cache_key(proposal_id, persona))

    def put(self, proposal_id: str, decision: Decision, persona: Optional[Persona] = None) -> CacheEntry:
        """Replace wholesale; entries are never patched in place."""
        key = cache_key(proposal_id, persona)
        entry = CacheEntry(key=key, decision=decision)
        self._entries[key] = entry
        return entry

    def invalidate(self, proposal_id: str, persona: Optional[Persona] = None) -> int:
        """Drop one persona's entry, or every entry for the proposal when persona is None."""
        if persona is not None:
            target = cache_key(proposal_id, persona)
            matches: Callable[[CacheKey], bool] = lambda key: key == target
        else:
            matches = lambda key: key[0] == proposal_id

        keys = [k for k in self._entries if matches(k)]
        for key in keys:
            del self._entries[key]
        removed = len(keys)
        self._drop_idle_locks(matches)
        if removed:
            logger.info(f"Invalidated {removed} cached decision(s) for proposal {proposal_id}")
        return removed

    def lock_for(self, proposal_id: str, persona: Optional[Persona] = None) -> asyncio.Lock:
        key = cache_key(proposal_id, persona)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _drop_idle_locks(self, matches: Callable[[CacheKey], bool]) -> None:
        # A held lock stays so its waiters and later callers share one synthesis
        for key in [k for k, lock in self._locks.items() if matches(k) and not lock.locked()]:
            del self._locks[key]

    def clear(self) -> None:
        self._entries.clear()
        self._drop_idle_locks(lambda key: True)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, proposal_id: object) -> bool:
        return any(k[0] == proposal_id for k in self._entries)
