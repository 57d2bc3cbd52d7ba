"""
DECISION PIPELINE - CORE ORCHESTRATOR
(proposal, persona) -> validated Decision

RESPONSIBILITIES:
- Consult DecisionCache before anything else
- Prompt -> completion -> parse -> normalize
- Route every failure to the deterministic fallback
- Pace batch requests with a random stagger

RULES:
- Never raises to the caller (cancellation excepted)
- Cache is written only with a complete Decision
- At most one synthesis in flight per (proposal, persona)
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from govairn.domain.models import (
    Decision,
    FallbackReason,
    MatchResult,
    Persona,
    ProposalContext,
    Provenance,
)
from govairn.domain.services.fallback_synthesizer import FallbackSynthesizer
from govairn.domain.services.heuristic_matcher import HeuristicMatcher
from govairn.domain.services.persona_descriptor import PersonaDescriptor
from govairn.domain.services.prompt_builder import PromptBuilder
from govairn.domain.services.response_normalizer import ResponseNormalizer, parse_completion_json
from govairn.infrastructure.cache.decision_cache import DecisionCache
from govairn.infrastructure.llm.completion_gateway import CompletionGateway

logger = logging.getLogger(__name__)

DEFAULT_STAGGER_SECONDS = (1.0, 3.0)
DEFAULT_BATCH_LIMIT = 3


class DecisionPipeline:
    """
    Decision Pipeline
    Wraps gateway, normalizer and fallback behind a per-persona decision cache
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        prompt_builder: Optional[PromptBuilder] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        fallback: Optional[FallbackSynthesizer] = None,
        decision_cache: Optional[DecisionCache] = None,
        matcher: Optional[HeuristicMatcher] = None,
        stagger_seconds: Tuple[float, float] = DEFAULT_STAGGER_SECONDS,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        descriptor = PersonaDescriptor()
        self.gateway = gateway
        self.matcher = matcher or HeuristicMatcher()
        self.prompt_builder = prompt_builder or PromptBuilder(descriptor=descriptor)
        self.normalizer = normalizer or ResponseNormalizer()
        self.fallback = fallback or FallbackSynthesizer(descriptor=descriptor, matcher=self.matcher)
        self.decision_cache = decision_cache if decision_cache is not None else DecisionCache()
        self.stagger_seconds = stagger_seconds
        self.batch_limit = batch_limit
        self._sleep = sleep
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # SINGLE PROPOSAL
    # ------------------------------------------------------------------

    async def decide(
        self,
        proposal: ProposalContext,
        persona: Persona,
        force_regenerate: bool = False,
    ) -> Decision:
        if not force_regenerate:
            cached = self.decision_cache.get(proposal.id, persona)
            if cached is not None:
                logger.debug(f"Decision cache hit for proposal {proposal.id}")
                return cached.with_provenance(Provenance.CACHE)

        async with self.decision_cache.lock_for(proposal.id, persona):
            # A concurrent caller may have finished while we waited
            if not force_regenerate:
                cached = self.decision_cache.get(proposal.id, persona)
                if cached is not None:
                    return cached.with_provenance(Provenance.CACHE)

            decision = await self._synthesize(proposal, persona)
            self.decision_cache.put(proposal.id, decision, persona)
            return decision

    async def _synthesize(self, proposal: ProposalContext, persona: Persona) -> Decision:
        try:
            prompt = self.prompt_builder.build(proposal, persona)
            outcome = await self.gateway.complete(prompt.messages())
            if not outcome.available:
                return self._fallback(proposal, persona, FallbackReason.UNAVAILABLE, outcome.error)

            raw = parse_completion_json(outcome.text)
            if raw is None:
                return self._fallback(proposal, persona, FallbackReason.MALFORMED_OUTPUT, "no JSON object in completion")

            result = self.normalizer.normalize(raw, proposal)
            if result.decision is None:
                return self._fallback(proposal, persona, FallbackReason.UNREPAIRABLE, "; ".join(result.repairs))

            decision = result.decision
            if outcome.from_cache:
                decision = decision.with_provenance(Provenance.CACHE)
            logger.info(
                f"Decision for proposal {proposal.id}: {decision.decision.value} "
                f"({decision.confidence}% confidence, {decision.persona_match}% match, "
                f"provenance={decision.provenance.value})"
            )
            return decision
        except Exception as exc:
            logger.exception(f"Decision pipeline error for proposal {proposal.id}")
            return self._fallback(proposal, persona, FallbackReason.INTERNAL_ERROR, str(exc))

    def _fallback(
        self,
        proposal: ProposalContext,
        persona: Persona,
        reason: FallbackReason,
        detail: Optional[str] = None,
    ) -> Decision:
        logger.warning(f"Using fallback for proposal {proposal.id}: {reason.value} ({detail or 'no detail'})")
        return self.fallback.synthesize(proposal, persona, reason)

    # ------------------------------------------------------------------
    # BATCH
    # ------------------------------------------------------------------

    async def decide_batch(
        self,
        proposals: Sequence[ProposalContext],
        persona: Persona,
        force_regenerate: bool = False,
    ) -> List[Decision]:
        """
        Sequential, at most `batch_limit` proposals.
        A random stagger precedes every proposal that is not a cache hit.
        """
        selected = list(proposals)[: self.batch_limit]
        if len(proposals) > len(selected):
            logger.info(f"Batch truncated to {len(selected)} of {len(proposals)} proposals")

        decisions: List[Decision] = []
        for proposal in selected:
            if force_regenerate or self.decision_cache.get(proposal.id, persona) is None:
                low, high = self.stagger_seconds
                delay = self._rng.uniform(low, high)
                logger.debug(f"Staggering {delay:.2f}s before proposal {proposal.id}")
                await self._sleep(delay)
            decisions.append(await self.decide(proposal, persona, force_regenerate=force_regenerate))
        return decisions

    # ------------------------------------------------------------------
    # MISC
    # ------------------------------------------------------------------

    def match(self, proposal: ProposalContext, persona: Persona) -> MatchResult:
        """Network-free persona match"""
        return self.matcher.match(proposal, persona)

    def invalidate(self, proposal_id: str, persona: Optional[Persona] = None) -> int:
        return self.decision_cache.invalidate(proposal_id, persona)


def build_decision_pipeline(settings: Optional[Any] = None, **overrides: Any) -> DecisionPipeline:
    """
    Wire a pipeline from application settings.

    Keyword overrides are passed to the gateway (e.g. `transport`, `sleep`, `clock`).
    """
    if settings is None:
        from govairn.config import settings as app_settings
        settings = app_settings

    gateway = CompletionGateway.from_settings(settings, **overrides)
    return DecisionPipeline(
        gateway=gateway,
        prompt_builder=PromptBuilder(body_char_limit=settings.PROMPT_BODY_CHAR_LIMIT),
        stagger_seconds=(settings.BATCH_STAGGER_MIN_SECONDS, settings.BATCH_STAGGER_MAX_SECONDS),
        batch_limit=settings.BATCH_MAX_PROPOSALS,
        sleep=overrides.get("sleep", asyncio.sleep),
    )
