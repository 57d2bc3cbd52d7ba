"""
HEURISTIC MATCHER
Fast, network-free persona match for a proposal.

For each axis the proposal text is placed on the same 0-100 scale as the
persona slider using three keyword sets, then scored with a linear penalty:
    score = max(0, 100 - 2 * |proposal_level - preference|)

RULES:
- Deterministic, no side effects
- Empty text => neutral level 50 on every axis
"""

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from govairn.domain.models import AxisMatch, MatchResult, Persona, ProposalContext

NEUTRAL_LEVEL = 50
LEVEL_STEP = 10
LEVEL_FLOOR = 10
LEVEL_CEILING = 90


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class AxisKeywords:
    """Keyword sets placing text low / centre / high on one axis"""
    axis: str
    name: str
    weight: int
    low: Tuple[str, ...]
    medium: Tuple[str, ...]
    high: Tuple[str, ...]
    # Phrases describing where the proposal sits: (low, centre, high)
    level_phrases: Tuple[str, str, str]
    preference_noun: str


RISK_KEYWORDS = AxisKeywords(
    axis="risk",
    name="Risk Alignment",
    weight=30,
    low=("safe", "secure", "conservative", "low risk", "stable", "proven"),
    medium=("balanced", "moderate", "reasonable", "controlled"),
    high=("aggressive", "high risk", "experimental", "innovative", "uncertain"),
    level_phrases=("a conservative risk profile", "a moderate risk profile", "a higher risk profile"),
    preference_noun="risk preference",
)

ESG_KEYWORDS = AxisKeywords(
    axis="esg_focus",
    name="ESG Alignment",
    weight=25,
    low=("profit", "revenue", "maximize returns", "cost cutting", "short-term gains"),
    medium=("governance", "transparency", "community", "accountability"),
    high=(
        "esg", "environmental", "social", "sustainable", "ethical", "impact",
        "climate", "carbon", "emissions", "diversity", "public good",
    ),
    level_phrases=("minimal ESG considerations", "some ESG elements", "a strong ESG focus"),
    preference_noun="ESG preferences",
)

TREASURY_KEYWORDS = AxisKeywords(
    axis="treasury_conservatism",
    name="Treasury Alignment",
    weight=25,
    low=("spend", "invest", "allocate", "fund", "high cost", "expensive"),
    medium=("balanced", "moderate", "reasonable cost", "efficient"),
    high=("conservative", "savings", "reserve", "retain", "minimal spend", "low cost"),
    level_phrases=(
        "a more aggressive treasury approach",
        "a balanced resource allocation approach",
        "a conservative treasury management approach",
    ),
    preference_noun="treasury management preference",
)

HORIZON_KEYWORDS = AxisKeywords(
    axis="time_horizon",
    name="Time Horizon Alignment",
    weight=20,
    low=("immediate", "short-term", "quick", "urgent", "temporary"),
    medium=("quarter", "milestone", "phase", "next year"),
    high=("long-term", "sustainable", "future", "permanent", "roadmap", "vision", "strategy"),
    level_phrases=("a short-term focus", "a medium-term outlook", "a long-term perspective"),
    preference_noun="time horizon preference",
)

DEFAULT_AXES: Tuple[AxisKeywords, ...] = (
    RISK_KEYWORDS,
    ESG_KEYWORDS,
    TREASURY_KEYWORDS,
    HORIZON_KEYWORDS,
)


class HeuristicMatcher:
    """Keyword-driven persona alignment"""

    def __init__(self, axes: Sequence[AxisKeywords] = DEFAULT_AXES):
        self.axes = tuple(axes)

    def match(self, proposal: ProposalContext, persona: Persona) -> MatchResult:
        return self.match_text(proposal.matching_text, persona, title=proposal.title)

    def match_text(self, text: str, persona: Persona, title: str = "") -> MatchResult:
        text = (text or "").lower()
        factors = tuple(
            self._match_axis(text, keywords, getattr(persona, keywords.axis))
            for keywords in self.axes
        )
        total_weight = sum(f.weight for f in factors)
        score = _round_half_up(sum(f.score * f.weight for f in factors) / total_weight)
        score = max(0, min(100, score))

        label = f'Proposal "{title}"' if title else "This proposal"
        reasoning = (
            f"{label} matches your persona with a score of {score}/100. "
            f"This is based on alignment with your risk preference ({persona.risk}/100), "
            f"ESG focus ({persona.esg_focus}/100), "
            f"treasury conservation ({persona.treasury_conservatism}/100), "
            f"and time horizon ({persona.time_horizon}/100)."
        )
        return MatchResult(score=score, factors=factors, reasoning=reasoning)

    def proposal_level(self, text: str, keywords: AxisKeywords) -> int:
        low = self._count(text, keywords.low)
        medium = self._count(text, keywords.medium)
        high = self._count(text, keywords.high)

        level = NEUTRAL_LEVEL
        if high > low:
            level = min(LEVEL_CEILING, NEUTRAL_LEVEL + LEVEL_STEP * (high - low))
        elif low > high:
            level = max(LEVEL_FLOOR, NEUTRAL_LEVEL - LEVEL_STEP * (low - high))

        # Centre-valence language pulls the estimate halfway back to neutral
        if medium > 0:
            level = _round_half_up((level + NEUTRAL_LEVEL) / 2)
        return level

    def _match_axis(self, text: str, keywords: AxisKeywords, preference: int) -> AxisMatch:
        level = self.proposal_level(text, keywords)
        score = max(0, 100 - abs(level - preference) * 2)
        return AxisMatch(
            name=keywords.name,
            axis=keywords.axis,
            score=score,
            weight=keywords.weight,
            proposal_level=level,
            explanation=self._explain(keywords, level, score),
        )

    @staticmethod
    def _count(text: str, terms: Sequence[str]) -> int:
        return sum(1 for term in terms if term in text)

    @staticmethod
    def _explain(keywords: AxisKeywords, level: int, score: int) -> str:
        low, centre, high = keywords.level_phrases
        if level < 30:
            position = low
        elif level < 70:
            position = centre
        else:
            position = high

        if score > 70:
            fit = "aligns well with"
        elif score > 40:
            fit = "somewhat aligns with"
        else:
            fit = "does not align well with"
        return f"The proposal has {position}, which {fit} your {keywords.preference_noun}."
