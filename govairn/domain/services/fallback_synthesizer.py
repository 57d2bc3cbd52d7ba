"""
FALLBACK SYNTHESIZER
Deterministic, network-free Decision for when the LLM path fails.

RULES:
- Same proposal id + persona => same decision (seeded, not random)
- Always three factors: strong positive, negative, weak positive
- confidence clamped to [30, 98], persona match to [25, 97]
- Never raises for a valid ProposalContext / Persona
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from govairn.domain.models import (
    Decision,
    DecisionFactor,
    FallbackReason,
    Persona,
    PersonaProfile,
    ProposalCategory,
    ProposalContext,
    Provenance,
    VoteDecision,
)
from govairn.domain.services.heuristic_matcher import HeuristicMatcher
from govairn.domain.services.narrative import chain_of_thought
from govairn.domain.services.persona_descriptor import PersonaDescriptor
from govairn.utils.text import markdown_to_plain, truncate

logger = logging.getLogger(__name__)

SEED_MASK = 0xFFFFFFF  # 2^28 - 1

CONFIDENCE_BASELINE = 72
CONFIDENCE_BOUNDS = (30, 98)
MATCH_BASELINE = 63
MATCH_BOUNDS = (25, 97)
HEURISTIC_ADJUSTMENT_LIMIT = 5

AGAINST_MATCH_THRESHOLD = 40
ABSTAIN_CONFIDENCE_THRESHOLD = 45

# Checked in order against the lower-cased title
CATEGORY_KEYWORDS: Tuple[Tuple[ProposalCategory, Tuple[str, ...]], ...] = (
    (ProposalCategory.FUNDING, ("grant", "fund")),
    (ProposalCategory.UPGRADE, ("upgrad", "improv")),
    (ProposalCategory.INTEGRATION, ("integrat", "partner")),
    (ProposalCategory.TREASURY, ("treasur", "budget")),
    (ProposalCategory.CHAIN, ("chain",)),
)


@dataclass(frozen=True)
class CategoryTemplates:
    """(name, explanation) pairs; `{org}` is replaced with the DAO name"""
    strong_pro: Tuple[str, str]
    weak_pro: Tuple[str, str]
    con: Tuple[str, str]
    rationale: str


TEMPLATES: Dict[ProposalCategory, CategoryTemplates] = {
    ProposalCategory.FUNDING: CategoryTemplates(
        strong_pro=("Resource Provision", "Could provide necessary resources for {org}'s development"),
        weak_pro=("Feature Enablement", "May enable new features or improvements"),
        con=("Allocation Fit", "Funding allocation may not be optimal for current priorities"),
        rationale=(
            "The funding request seems reasonable and the proposed use of funds could benefit "
            "the ecosystem by supporting development and community growth."
        ),
    ),
    ProposalCategory.UPGRADE: CategoryTemplates(
        strong_pro=("Platform Improvement", "Could improve platform functionality and user experience"),
        weak_pro=("Technical Debt", "May address existing technical challenges"),
        con=("Implementation Risk", "Implementation could face technical obstacles"),
        rationale=(
            "The proposed upgrades should improve functionality and user experience while "
            "maintaining security and decentralization principles."
        ),
    ),
    ProposalCategory.INTEGRATION: CategoryTemplates(
        strong_pro=("Ecosystem Reach", "Could expand {org}'s reach and utility through the partnership"),
        weak_pro=("User Growth", "May bring more users and value to the protocol"),
        con=("Dependency Risk", "Relying on an external partner adds integration and counterparty risk"),
        rationale=(
            "This partnership could expand the ecosystem's reach and utility, potentially bringing "
            "more users and value to the protocol."
        ),
    ),
    ProposalCategory.TREASURY: CategoryTemplates(
        strong_pro=("Treasury Delta", "Could improve {org}'s Treasury Delta by putting idle reserves to productive use"),
        weak_pro=("Reserve Balance", "Keeps Treasury Delta sustainable by balancing short-term needs with reserves"),
        con=("Treasury Delta Risk", "Treasury Delta could turn negative if the allocation underperforms"),
        rationale=(
            "The proposed treasury allocation appears to balance short-term needs with long-term "
            "sustainability, which is critical for ongoing development."
        ),
    ),
    ProposalCategory.CHAIN: CategoryTemplates(
        strong_pro=("Cross-chain Reach", "May improve cross-chain capabilities and reach"),
        weak_pro=("Ecosystem Expansion", "Could expand the ecosystem to new users"),
        con=("Integration Complexity", "Integration with new chains adds complexity"),
        rationale=(
            "Supporting additional chains could broaden the user base, provided the added "
            "operational complexity is managed."
        ),
    ),
    ProposalCategory.GOVERNANCE: CategoryTemplates(
        strong_pro=("Governance Improvement", "May improve governance processes in {org}"),
        weak_pro=("Participation", "Could increase participation and engagement"),
        con=("Implementation Risk", "May require significant development resources"),
        rationale=(
            "The governance changes proposed should streamline decision-making while maintaining "
            "transparency and community involvement."
        ),
    ),
}


def rolling_seed(identifier: str) -> int:
    """seed = (seed * 31 + ord(ch)) mod 2^28 over the identifier"""
    seed = 0
    for ch in identifier or "":
        seed = (seed * 31 + ord(ch)) & SEED_MASK
    return seed


def classify_category(title: str) -> ProposalCategory:
    lowered = (title or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return ProposalCategory.GOVERNANCE


def _first_paragraph(body: str, min_length: int = 20, limit: int = 150) -> str:
    for line in markdown_to_plain(body or "").split("\n"):
        line = line.strip()
        if len(line) > min_length:
            return truncate(line, limit)
    return ""


def _clamp(value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


@dataclass(frozen=True)
class PersonaTraits:
    """Categorical preferences the fallback adjustments are keyed on"""
    risk: str               # conservative | moderate | aggressive
    priority_focus: str     # security | balanced | innovation
    time_horizon: str       # short | medium | long
    governance: str         # efficiency | balanced | decentralization
    community_impact: str   # low | medium | high

    @classmethod
    def from_profile(cls, profile: PersonaProfile) -> "PersonaTraits":
        if profile.risk == "aggressive":
            focus = "innovation"
        elif profile.treasury_conservatism == "stability-focused":
            focus = "security"
        else:
            focus = "balanced"

        governance = {
            "active": "decentralization",
            "selective": "efficiency",
        }.get(profile.participation_frequency, "balanced")

        community = {
            "significant": "high",
            "minimal": "low",
        }.get(profile.esg_focus, "medium")

        return cls(
            risk=profile.risk,
            priority_focus=focus,
            time_horizon=profile.time_horizon.split("-")[0],
            governance=governance,
            community_impact=community,
        )


def confidence_adjustment(category: ProposalCategory, traits: PersonaTraits) -> int:
    adjustment = 0
    if category in (ProposalCategory.FUNDING, ProposalCategory.TREASURY):
        if traits.risk == "conservative":
            adjustment -= 7
        elif traits.risk == "aggressive":
            adjustment += 8
    if category in (ProposalCategory.UPGRADE, ProposalCategory.INTEGRATION):
        if traits.priority_focus == "innovation":
            adjustment += 9
        elif traits.priority_focus == "security":
            adjustment -= 6
    if category == ProposalCategory.GOVERNANCE:
        if traits.time_horizon == "long":
            adjustment += 7
        elif traits.time_horizon == "short":
            adjustment -= 4
    return adjustment


def match_adjustment(category: ProposalCategory, traits: PersonaTraits) -> int:
    adjustment = 0
    if category == ProposalCategory.GOVERNANCE:
        if traits.governance == "decentralization":
            adjustment += 11
        elif traits.governance == "efficiency":
            adjustment += 6
    if traits.community_impact == "high":
        adjustment += 8
    elif traits.community_impact == "low":
        adjustment -= 7
    return adjustment


def persona_sentence(traits: PersonaTraits) -> str:
    if traits.time_horizon == "long":
        sentence = "Your current persona prioritizes long-term stability"
    elif traits.time_horizon == "medium":
        sentence = "Your current persona balances short and long-term considerations"
    else:
        sentence = "Your current persona focuses on immediate outcomes"

    if traits.risk == "conservative":
        sentence += " and takes a cautious approach to changes"
    elif traits.risk == "aggressive":
        sentence += " and values innovative, high-impact initiatives"
    else:
        sentence += " with a balanced approach to risk"
    return sentence


def fallback_vote(confidence: int, persona_match: int) -> VoteDecision:
    if persona_match < AGAINST_MATCH_THRESHOLD:
        return VoteDecision.AGAINST
    if confidence < ABSTAIN_CONFIDENCE_THRESHOLD:
        return VoteDecision.ABSTAIN
    return VoteDecision.FOR


class FallbackSynthesizer:
    def __init__(
        self,
        descriptor: Optional[PersonaDescriptor] = None,
        matcher: Optional[HeuristicMatcher] = None,
    ):
        self.descriptor = descriptor or PersonaDescriptor()
        self.matcher = matcher or HeuristicMatcher()

    def synthesize(
        self,
        proposal: ProposalContext,
        persona: Persona,
        reason: FallbackReason = FallbackReason.UNAVAILABLE,
    ) -> Decision:
        seed = rolling_seed(proposal.id)
        category = classify_category(proposal.title)
        traits = PersonaTraits.from_profile(self.descriptor.describe(persona))
        templates = TEMPLATES[category]
        org = proposal.organization_name

        confidence = CONFIDENCE_BASELINE + confidence_adjustment(category, traits)
        confidence += (seed % 7) - 3
        confidence = _clamp(confidence, CONFIDENCE_BOUNDS)

        heuristic = self.matcher.match(proposal, persona)
        heuristic_shift = max(
            -HEURISTIC_ADJUSTMENT_LIMIT,
            min(HEURISTIC_ADJUSTMENT_LIMIT, round((heuristic.score - 50) / 10)),
        )
        persona_match = MATCH_BASELINE + match_adjustment(category, traits) + heuristic_shift
        persona_match += ((seed // 7) % 7) - 3
        persona_match = _clamp(persona_match, MATCH_BOUNDS)

        decision = fallback_vote(confidence, persona_match)

        factors = (
            self._factor(templates.strong_pro, 6 + seed % 3, 7, org),
            self._factor(templates.con, -3 - (seed // 3) % 2, 5, org),
            self._factor(templates.weak_pro, 2 + (seed // 5) % 2, 4, org),
        )
        pros = [f.explanation for f in factors if f.is_pro]
        cons = [f.explanation for f in factors if f.is_con]
        persona_note = persona_sentence(traits)

        cot = chain_of_thought(
            title=proposal.title,
            organization=org,
            pros=pros,
            cons=cons,
            decision=decision,
            confidence=confidence,
            persona_match=persona_match,
            assessment_steps=(
                f"Classified as a {category.value} proposal",
                "Assessed implementation feasibility and resource requirements",
            ),
            persona_note=persona_note,
        )
        cot += f"\n\nGenerated without a model response ({reason.value})."

        logger.warning(
            f"Fallback decision for proposal {proposal.id}: reason={reason.value}, "
            f"category={category.value}, decision={decision.value}, confidence={confidence}, "
            f"persona_match={persona_match}"
        )
        return Decision(
            proposal_id=proposal.id,
            decision=decision,
            confidence=confidence,
            persona_match=persona_match,
            reasoning=self._reasoning(decision, category, templates, org, persona_note, persona_match),
            summary=self._summary(proposal, category, org),
            recommendation=self._recommendation(decision, persona_match),
            factors=factors,
            chain_of_thought=cot,
            provenance=Provenance.FALLBACK,
        )

    @staticmethod
    def _factor(template: Tuple[str, str], value: int, weight: int, org: str) -> DecisionFactor:
        name, explanation = template
        return DecisionFactor(name=name, value=value, weight=weight, explanation=explanation.format(org=org))

    @staticmethod
    def _reasoning(
        decision: VoteDecision,
        category: ProposalCategory,
        templates: CategoryTemplates,
        org: str,
        persona_note: str,
        persona_match: int,
    ) -> str:
        if decision == VoteDecision.FOR:
            opening = (
                f"I recommend voting FOR this {category.value} proposal because it appears to "
                f"align with the long-term interests of {org}. {templates.rationale}"
            )
        elif decision == VoteDecision.AGAINST:
            opening = (
                f"I recommend voting AGAINST this {category.value} proposal because it fits "
                f"poorly with your governance preferences for {org}."
            )
        else:
            opening = (
                f"I recommend ABSTAINING on this {category.value} proposal because the expected "
                f"benefit to {org} is uncertain."
            )
        return f"{opening} {persona_note}, which aligns with this proposal at a {persona_match}% match level."

    @staticmethod
    def _summary(proposal: ProposalContext, category: ProposalCategory, org: str) -> str:
        summary = f"This proposal requests approval for a {category.value} in {org}."
        excerpt = proposal.summary or _first_paragraph(proposal.body)
        if excerpt:
            return f"{summary} {excerpt}"
        return f'{summary} It specifically focuses on "{proposal.title or proposal.id}".'

    @staticmethod
    def _recommendation(decision: VoteDecision, persona_match: int) -> str:
        if decision == VoteDecision.FOR:
            return (
                f"Consider voting for this proposal based on its {persona_match}% alignment "
                "with your governance preferences."
            )
        if decision == VoteDecision.AGAINST:
            return (
                f"Consider voting against this proposal given its {persona_match}% alignment "
                "with your governance preferences."
            )
        return (
            "Consider abstaining until more detail is available; alignment with your "
            f"governance preferences is {persona_match}%."
        )
