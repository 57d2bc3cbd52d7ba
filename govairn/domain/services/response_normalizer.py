"""
RESPONSE NORMALIZER
Repairs a raw LLM completion into a validated Decision.

Pipeline:
1. Resolve the six top-level fields through the alias table
2. Rebuild the factor list (factors array -> pros/cons -> flat factor keys -> synthesized)
3. Balance pass: guarantee one positive and one negative factor
4. Range checks; out-of-range scores fall back to defaults
5. Derive summary / recommendation / chain of thought when unrecoverable

Only a missing or unparseable `decision` makes the object unrepairable.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from govairn.domain.models import Decision, DecisionFactor, Provenance, ProposalContext, VoteDecision
from govairn.domain.services.field_aliases import (
    CHAIN_OF_THOUGHT_FIELD,
    CONS_FIELD,
    DECISION_FIELDS,
    FACTOR_FIELDS,
    FACTOR_LIST_FIELD,
    FLAT_FACTOR_FIELDS,
    PROS_FIELD,
    STRATEGY_DIRECT,
    Resolution,
    coerce_number,
    resolve_field,
    resolve_fields,
)
from govairn.domain.services.narrative import chain_of_thought, recommendation_text, vote_phrase
from govairn.utils.text import extract_summary, first_sentence, strip_markup, truncate

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 75
DEFAULT_PERSONA_MATCH = 65
DEFAULT_FACTOR_WEIGHT = 5

PRO_FROM_LIST = (7, 8)
CON_FROM_LIST = (-5, 6)

_FENCED_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def parse_completion_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Extract the single JSON object from a completion.

    Accepts a bare object, a ```json fenced block, or an object surrounded by
    prose. Returns None when nothing parses to a dict.
    """
    if not text or not text.strip():
        return None

    candidates = [text.strip()]
    candidates.extend(m.group(1).strip() for m in _FENCED_RE.finditer(text))
    start = text.find("{")
    if start != -1:
        end = text.rfind("}")
        if end > start:
            candidates.append(text[start:end + 1])

    decoder = json.JSONDecoder()
    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except ValueError:
            value = None
        if isinstance(value, dict):
            return value

    # Object followed by trailing junk: decode the first one only
    if start != -1:
        try:
            value, _ = decoder.raw_decode(text[start:])
        except ValueError:
            return None
        if isinstance(value, dict):
            return value
    return None


@dataclass
class NormalizationOutcome:
    """Repaired decision (or None when unrepairable) and what was fixed"""
    decision: Optional[Decision]
    repairs: List[str] = field(default_factory=list)

    @property
    def unrepairable(self) -> bool:
        return self.decision is None

    @property
    def repaired(self) -> bool:
        return bool(self.repairs)


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _scale_to_ten(value: float) -> float:
    """0-100 style factor numbers are read as tenths."""
    return value / 10 if abs(value) > 10 else value


def _is_factor_object(resolved: Mapping[str, Resolution]) -> bool:
    """
    One factor needs a name or explanation key, or at least two factor fields.

    A lone numeric alias such as {"Impact": 6, "Cost": -4} is a name -> value map.
    """
    if resolved["factor_name"].found or resolved["explanation"].found:
        return True
    return sum(1 for r in resolved.values() if r.found) > 1


class ResponseNormalizer:
    def __init__(
        self,
        default_confidence: int = DEFAULT_CONFIDENCE,
        default_persona_match: int = DEFAULT_PERSONA_MATCH,
    ):
        self.default_confidence = default_confidence
        self.default_persona_match = default_persona_match

    def normalize(self, raw: Mapping[str, Any], proposal: ProposalContext) -> NormalizationOutcome:
        repairs: List[str] = []
        if not isinstance(raw, Mapping):
            return NormalizationOutcome(None, ["completion is not a JSON object"])

        raw = self._unwrap(raw, repairs)
        taken: Set[str] = set()
        fields = resolve_fields(raw, DECISION_FIELDS, taken)
        for resolution in fields.values():
            if resolution.found and resolution.strategy != STRATEGY_DIRECT:
                repairs.append(f"{resolution.field} <- '{resolution.key}' ({resolution.strategy})")

        decision = fields["decision"].value
        if decision is None:
            repairs.append("decision: missing or unparseable")
            logger.info(f"Normalization failed for proposal {proposal.id}: {repairs}")
            return NormalizationOutcome(None, repairs)

        confidence = self._score(fields["confidence"], self.default_confidence, repairs)
        persona_match = self._score(fields["persona_match"], self.default_persona_match, repairs)

        factors = self._factors(raw, taken, decision, proposal, repairs)

        reasoning = fields["reasoning"].value
        summary = fields["summary"].value
        if summary is None:
            if reasoning:
                summary = first_sentence(reasoning)
                repairs.append("summary: first sentence of reasoning")
            else:
                summary = proposal.summary or extract_summary(proposal.body) or self._title_summary(proposal)
                repairs.append("summary: extracted from proposal")
        if reasoning is None:
            reasoning = (
                f'Recommendation is {vote_phrase(decision)} "{proposal.title or proposal.id}" '
                f"with {confidence}% confidence and a {persona_match}% persona match."
            )
            repairs.append("reasoning: defaulted")

        recommendation = fields["recommendation"].value
        if recommendation is None:
            recommendation = recommendation_text(decision, confidence, proposal.organization_name)
            repairs.append("recommendation: derived from decision and confidence")

        cot = resolve_field(raw, CHAIN_OF_THOUGHT_FIELD, taken).value
        if cot is None:
            cot = chain_of_thought(
                title=proposal.title,
                organization=proposal.organization_name,
                pros=[f.explanation for f in factors if f.is_pro],
                cons=[f.explanation for f in factors if f.is_con],
                decision=decision,
                confidence=confidence,
                persona_match=persona_match,
            )

        result = Decision(
            proposal_id=proposal.id,
            decision=decision,
            confidence=confidence,
            persona_match=persona_match,
            reasoning=reasoning,
            summary=summary,
            recommendation=recommendation,
            factors=tuple(factors),
            chain_of_thought=cot,
            provenance=Provenance.LLM,
        )
        if repairs:
            logger.info(f"Normalized proposal {proposal.id} with repairs: {repairs}")
        return NormalizationOutcome(result, repairs)

    def normalize_text(self, text: Optional[str], proposal: ProposalContext) -> NormalizationOutcome:
        raw = parse_completion_json(text)
        if raw is None:
            return NormalizationOutcome(None, ["completion is not valid JSON"])
        return self.normalize(raw, proposal)

    # ------------------------------------------------------------------
    # Top-level helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _unwrap(raw: Mapping[str, Any], repairs: List[str]) -> Mapping[str, Any]:
        """Lift a nested `{"result": {...}}` envelope when the top level has no decision."""
        if resolve_field(raw, DECISION_FIELDS[0]).found:
            return raw
        for key, value in raw.items():
            if isinstance(value, Mapping) and resolve_field(value, DECISION_FIELDS[0]).found:
                repairs.append(f"unwrapped nested '{key}' object")
                merged = {k: v for k, v in raw.items() if k != key}
                merged.update(value)
                return merged
        return raw

    @staticmethod
    def _score(resolution: Resolution, default: int, repairs: List[str]) -> int:
        value = resolution.value
        if value is None:
            repairs.append(f"{resolution.field}: missing, defaulted to {default}")
            return default
        if 0 < value < 1:
            value *= 100
        score = _round_half_away(value)
        if not 1 <= score <= 100:
            repairs.append(f"{resolution.field}: {resolution.value} out of range, defaulted to {default}")
            return default
        return score

    @staticmethod
    def _title_summary(proposal: ProposalContext) -> str:
        return f'This proposal from {proposal.organization_name} is titled "{proposal.title or proposal.id}".'

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def _factors(
        self,
        raw: Mapping[str, Any],
        taken: Set[str],
        decision: VoteDecision,
        proposal: ProposalContext,
        repairs: List[str],
    ) -> List[DecisionFactor]:
        factors: List[DecisionFactor] = []

        listed = resolve_field(raw, FACTOR_LIST_FIELD, taken)
        if listed.found:
            factors = self._parse_entries(listed.value, decision, repairs)
            if listed.strategy != STRATEGY_DIRECT:
                repairs.append(f"factors <- '{listed.key}' ({listed.strategy})")
        elif "factors" in raw:
            repairs.append("factors: present but not a list")

        if not factors:
            factors = self._from_pros_cons(raw, taken)
            if factors:
                repairs.append("factors: rebuilt from pros/cons")

        if not factors:
            flat = self._from_flat_keys(raw, taken, decision, repairs)
            if flat:
                factors = [flat]
                repairs.append("factors: rebuilt from top-level factor fields")

        if not factors:
            factors = self._generic_factors(decision, proposal)
            repairs.append("factors: synthesized from decision polarity")

        return self._balance(factors, proposal, repairs)

    def _parse_entries(self, items: List[Any], decision: VoteDecision, repairs: List[str]) -> List[DecisionFactor]:
        factors: List[DecisionFactor] = []
        for index, item in enumerate(items, start=1):
            if isinstance(item, Mapping):
                resolved = resolve_fields(item, FACTOR_FIELDS)
                if _is_factor_object(resolved):
                    built = self._build_factor(
                        name=resolved["factor_name"].value,
                        value=resolved["factor_value"].value,
                        weight=resolved["factor_weight"].value,
                        explanation=resolved["explanation"].value,
                        index=index,
                        decision=decision,
                        repairs=repairs,
                    )
                    if built:
                        factors.append(built)
                else:
                    # {"Security": 6, "Cost": {"value": -4, ...}}
                    factors.extend(self._from_named_mapping(item, decision, repairs))
            elif isinstance(item, str):
                built = self._from_string(item, index, decision, repairs)
                if built:
                    factors.append(built)
            else:
                repairs.append(f"factor {index}: unusable entry dropped")
        return factors

    def _from_named_mapping(
        self, mapping: Mapping[str, Any], decision: VoteDecision, repairs: List[str]
    ) -> List[DecisionFactor]:
        factors = []
        for index, (name, value) in enumerate(mapping.items(), start=1):
            if isinstance(value, Mapping):
                resolved = resolve_fields(value, FACTOR_FIELDS)
                built = self._build_factor(
                    name=resolved["factor_name"].value or strip_markup(str(name)),
                    value=resolved["factor_value"].value,
                    weight=resolved["factor_weight"].value,
                    explanation=resolved["explanation"].value,
                    index=index,
                    decision=decision,
                    repairs=repairs,
                )
            else:
                built = self._build_factor(
                    name=strip_markup(str(name)),
                    value=coerce_number(value),
                    weight=None,
                    explanation=None,
                    index=index,
                    decision=decision,
                    repairs=repairs,
                )
            if built:
                factors.append(built)
        return factors

    _STRING_FACTOR_RE = re.compile(r"^(?P<name>.+?)\s*[:(]\s*(?P<value>[-+]?\d+(?:\.\d+)?)\s*\)?\s*$")

    def _from_string(self, text: str, index: int, decision: VoteDecision, repairs: List[str]) -> Optional[DecisionFactor]:
        """`"Security: 6"` or `"Cost (-4)"`; plain prose has no sign and is dropped."""
        match = self._STRING_FACTOR_RE.match(strip_markup(text))
        if not match:
            repairs.append(f"factor {index}: text entry without a value dropped")
            return None
        return self._build_factor(
            name=match.group("name").strip(),
            value=float(match.group("value")),
            weight=None,
            explanation=None,
            index=index,
            decision=decision,
            repairs=repairs,
        )

    @staticmethod
    def _from_pros_cons(raw: Mapping[str, Any], taken: Set[str]) -> List[DecisionFactor]:
        factors = []
        pros = resolve_field(raw, PROS_FIELD, taken).value or []
        cons = resolve_field(raw, CONS_FIELD, taken).value or []
        for text in pros:
            factors.append(DecisionFactor(truncate(first_sentence(text), 60), PRO_FROM_LIST[0], PRO_FROM_LIST[1], text))
        for text in cons:
            factors.append(DecisionFactor(truncate(first_sentence(text), 60), CON_FROM_LIST[0], CON_FROM_LIST[1], text))
        return factors

    def _from_flat_keys(
        self,
        raw: Mapping[str, Any],
        taken: Set[str],
        decision: VoteDecision,
        repairs: List[str],
    ) -> Optional[DecisionFactor]:
        resolved = resolve_fields(raw, FLAT_FACTOR_FIELDS, taken)
        if not (resolved["factor_name"].found or resolved["factor_value"].found):
            return None
        return self._build_factor(
            name=resolved["factor_name"].value,
            value=resolved["factor_value"].value,
            weight=resolved["factor_weight"].value,
            explanation=resolved["factor_explanation"].value,
            index=1,
            decision=decision,
            repairs=repairs,
        )

    @staticmethod
    def _build_factor(
        name: Optional[str],
        value: Optional[float],
        weight: Optional[float],
        explanation: Optional[str],
        index: int,
        decision: VoteDecision,
        repairs: List[str],
    ) -> Optional[DecisionFactor]:
        label = name or f"factor {index}"
        if value is None:
            repairs.append(f"{label}: no value, dropped")
            return None

        scaled = _scale_to_ten(value)
        rounded = max(-10, min(10, _round_half_away(scaled)))
        if rounded == 0:
            if value > 0:
                rounded = 1
            elif value < 0:
                rounded = -1
            else:
                rounded = -1 if decision == VoteDecision.AGAINST else 1
            repairs.append(f"{label}: zero value nudged to {rounded:+d}")

        if weight is None:
            final_weight = DEFAULT_FACTOR_WEIGHT
            repairs.append(f"{label}: weight defaulted to {DEFAULT_FACTOR_WEIGHT}")
        else:
            final_weight = max(1, min(10, _round_half_away(_scale_to_ten(weight))))

        if not name:
            name = truncate(first_sentence(explanation), 60) if explanation else f"Consideration {index}"
            repairs.append(f"factor {index}: name derived")
        if not explanation:
            direction = "supports" if rounded > 0 else "weighs against"
            explanation = f"{name} {direction} this proposal."
            repairs.append(f"{name}: explanation defaulted")

        return DecisionFactor(name=name, value=rounded, weight=final_weight, explanation=explanation)

    @staticmethod
    def _generic_factors(decision: VoteDecision, proposal: ProposalContext) -> List[DecisionFactor]:
        org = proposal.organization_name
        if decision == VoteDecision.FOR:
            primary, risk, secondary = 6, -3, 3
        elif decision == VoteDecision.AGAINST:
            primary, risk, secondary = 3, -6, -4
        else:
            primary, risk, secondary = 4, -4, -2

        secondary_factor = (
            DecisionFactor("Community Value", secondary, 4, f"Could increase participation and engagement in {org}")
            if secondary > 0
            else DecisionFactor("Uncertain Outcome", secondary, 4, "Expected benefits are not clearly demonstrated")
        )
        return [
            DecisionFactor("Potential Benefit", primary, 7, f"Potentially beneficial for {org}"),
            DecisionFactor("Implementation Risk", risk, 5, "May require significant development resources"),
            secondary_factor,
        ]

    @staticmethod
    def _balance(factors: List[DecisionFactor], proposal: ProposalContext, repairs: List[str]) -> List[DecisionFactor]:
        balanced = list(factors)
        if not any(f.is_pro for f in balanced):
            balanced.append(DecisionFactor(
                "Potential Benefit", 3, 5, f"Potentially beneficial for {proposal.organization_name}",
            ))
            repairs.append("factors: added missing positive factor")
        if not any(f.is_con for f in balanced):
            balanced.append(DecisionFactor(
                "Implementation Risk", -3, 5, "May require significant development resources",
            ))
            repairs.append("factors: added missing negative factor")
        return balanced

