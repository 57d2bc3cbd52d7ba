import asyncio
import random

import httpx
import pytest

from govairn.config import Settings
from govairn.domain.models import Persona, ProposalContext, Provenance, VoteDecision
from govairn.domain.services.decision_pipeline import DecisionPipeline, build_decision_pipeline
from govairn.domain.services.response_normalizer import ResponseNormalizer
from govairn.infrastructure.llm.retry import RetryPolicy

GOOD_RESPONSE = {
    "decision": "against",
    "confidence": 64,
    "persona_match": 58,
    "reasoning": "The allocator concentrates risk. Audits are pending.",
    "summary": "Deploys a new treasury allocator.",
    "recommendation": "Vote against until audits land.",
    "factors": [
        {"factor_name": "Yield", "factor_value": 4, "factor_weight": 5, "explanation": "Higher returns"},
        {"factor_name": "Audit Gap", "factor_value": -7, "factor_weight": 8, "explanation": "Unaudited code"},
    ],
    "chain_of_thought": "1. Read proposal\n2. Weighed audit status",
}


@pytest.fixture
def make_pipeline(make_gateway, sleep):
    def _make(server=None, gateway_options=None, **kwargs):
        gateway = make_gateway(server, **(gateway_options or {}))
        params = dict(sleep=sleep, rng=random.Random(7))
        params.update(kwargs)
        return DecisionPipeline(gateway, **params)

    return _make


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unavailable_service_falls_back_then_caches(make_pipeline, completion_server, sleep, treasury_proposal, neutral_persona):
    server = completion_server(httpx.Response(503))
    pipeline = make_pipeline(server)

    first = await pipeline.decide(treasury_proposal, neutral_persona)

    assert first.provenance == Provenance.FALLBACK
    assert first.decision == VoteDecision.FOR
    assert (first.confidence, first.persona_match) == (75, 68)
    assert [f.value for f in first.factors] == [6, -4, 2]
    assert first.chain_of_thought.endswith("(unavailable).")
    assert sleep.delays == [1.0, 2.0]
    assert pipeline.gateway.network_calls == 3

    second = await pipeline.decide(treasury_proposal, neutral_persona)

    assert second.provenance == Provenance.CACHE
    assert pipeline.gateway.network_calls == 3
    assert second.as_payload() | {"provenance": "fallback"} == first.as_payload()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_well_formed_response(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    server = completion_server(GOOD_RESPONSE)
    pipeline = make_pipeline(server)

    decision = await pipeline.decide(treasury_proposal, neutral_persona)

    assert decision.provenance == Provenance.LLM
    assert decision.decision == VoteDecision.AGAINST
    assert (decision.confidence, decision.persona_match) == (64, 58)
    assert decision.cons == ["Unaudited code"]
    assert decision.impact_level == "Low"
    user_prompt = server.requests[0]["messages"][1]["content"]
    assert "Deploy New Treasury Allocator" in user_prompt


@pytest.mark.asyncio
@pytest.mark.integration
async def test_run_together_field_names_are_normalized(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    server = completion_server({
        "proposalsummary": "x",
        "personamatch": 70,
        "decision": "for",
        "confidence": 80,
        "factorname": "A",
        "factorvalue": 5,
    })
    pipeline = make_pipeline(server)

    decision = await pipeline.decide(treasury_proposal, neutral_persona)

    assert decision.provenance == Provenance.LLM
    assert (decision.summary, decision.persona_match, decision.confidence) == ("x", 70, 80)
    assert decision.decision == VoteDecision.FOR
    assert any(f.is_pro for f in decision.factors)
    assert any(f.is_con for f in decision.factors)


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("completion,reason", [
    ("I think you should vote for it.", "malformed_output"),
    ({"confidence": 80, "reasoning": "Looks fine."}, "unrepairable"),
])
async def test_unusable_completion_falls_back(make_pipeline, completion_server, treasury_proposal, neutral_persona, completion, reason):
    pipeline = make_pipeline(completion_server(completion))

    decision = await pipeline.decide(treasury_proposal, neutral_persona)

    assert decision.provenance == Provenance.FALLBACK
    assert decision.chain_of_thought.endswith(f"({reason}).")
    assert pipeline.gateway.network_calls == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_broken_envelope_is_reported_unavailable(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    pipeline = make_pipeline(completion_server(httpx.Response(200, json={"choices": [{"message": "hello"}]})))

    decision = await pipeline.decide(treasury_proposal, neutral_persona)

    assert decision.provenance == Provenance.FALLBACK
    assert decision.chain_of_thought.endswith("(unavailable).")
    assert pipeline.gateway.failures == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_internal_error_falls_back(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    class BrokenNormalizer(ResponseNormalizer):
        def normalize(self, raw, proposal):
            raise RuntimeError("boom")

    pipeline = make_pipeline(completion_server(GOOD_RESPONSE), normalizer=BrokenNormalizer())

    decision = await pipeline.decide(treasury_proposal, neutral_persona)

    assert decision.provenance == Provenance.FALLBACK
    assert decision.chain_of_thought.endswith("(internal_error).")
    assert pipeline.decision_cache.get(treasury_proposal.id, neutral_persona) is not None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalidate_reuses_completion_cache(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    pipeline = make_pipeline(completion_server(GOOD_RESPONSE))

    await pipeline.decide(treasury_proposal, neutral_persona)
    assert pipeline.invalidate(treasury_proposal.id) == 1

    again = await pipeline.decide(treasury_proposal, neutral_persona)

    assert again.provenance == Provenance.CACHE
    assert pipeline.gateway.stats == {"network_calls": 1, "cache_hits": 1, "failures": 0}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_force_regenerate_bypasses_decision_cache(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    pipeline = make_pipeline(
        completion_server(httpx.Response(503), GOOD_RESPONSE),
        gateway_options={"retry_policy": RetryPolicy(max_attempts=1)},
    )

    first = await pipeline.decide(treasury_proposal, neutral_persona)
    regenerated = await pipeline.decide(treasury_proposal, neutral_persona, force_regenerate=True)

    assert first.provenance == Provenance.FALLBACK
    assert regenerated.provenance == Provenance.LLM
    assert pipeline.decision_cache.get(treasury_proposal.id, neutral_persona).provenance == Provenance.LLM


@pytest.mark.asyncio
@pytest.mark.integration
async def test_personas_are_cached_separately(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    pipeline = make_pipeline(completion_server(GOOD_RESPONSE))

    await pipeline.decide(treasury_proposal, neutral_persona)
    other = await pipeline.decide(treasury_proposal, Persona(90, 10, 10, 90, 90))

    assert other.provenance == Provenance.LLM
    assert pipeline.gateway.network_calls == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_requests_share_one_synthesis(make_pipeline, completion_server, treasury_proposal, neutral_persona):
    server = completion_server(GOOD_RESPONSE)
    pipeline = make_pipeline(server)

    results = await asyncio.gather(*(pipeline.decide(treasury_proposal, neutral_persona) for _ in range(4)))

    assert len(server.requests) == 1
    assert sorted(r.provenance.value for r in results) == ["cache", "cache", "cache", "llm"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_batch_is_limited_and_staggered(make_pipeline, completion_server, sleep, neutral_persona):
    proposals = [ProposalContext(id=str(i), title=f"Proposal number {i}", body="Fund work.") for i in range(5)]
    pipeline = make_pipeline(completion_server(GOOD_RESPONSE))

    decisions = await pipeline.decide_batch(proposals, neutral_persona)

    assert [d.proposal_id for d in decisions] == ["0", "1", "2"]
    assert len(sleep.delays) == 3
    assert all(1.0 <= delay <= 3.0 for delay in sleep.delays)

    cached = await pipeline.decide_batch(proposals, neutral_persona)

    assert all(d.provenance == Provenance.CACHE for d in cached)
    assert len(sleep.delays) == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_pipeline_from_settings_without_key(sleep, funding_proposal, neutral_persona):
    pipeline = build_decision_pipeline(Settings(OPENAI_API_KEY=None, BATCH_MAX_PROPOSALS=1), sleep=sleep)

    decision = await pipeline.decide(funding_proposal, neutral_persona)

    assert pipeline.batch_limit == 1
    assert decision.provenance == Provenance.FALLBACK
    assert pipeline.gateway.network_calls == 0


@pytest.mark.integration
def test_match_is_network_free(make_pipeline, treasury_proposal, neutral_persona):
    pipeline = make_pipeline()

    result = pipeline.match(treasury_proposal, neutral_persona)

    assert 0 <= result.score <= 100
    assert pipeline.gateway.network_calls == 0
