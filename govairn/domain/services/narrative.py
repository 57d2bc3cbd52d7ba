"""
Human-readable text shared by the normalizer and the fallback synthesizer.
"""

from typing import Iterable, Optional, Sequence

from govairn.domain.models import VoteDecision

NONE_IDENTIFIED = "None identified"


def vote_phrase(decision: VoteDecision) -> str:
    if decision == VoteDecision.ABSTAIN:
        return "abstaining on"
    return f"voting {decision.value}"


def recommendation_text(decision: VoteDecision, confidence: int, organization: str = "the DAO") -> str:
    if decision == VoteDecision.FOR:
        return f"Consider voting for this proposal based on its potential benefits to {organization} ({confidence}% confidence)."
    if decision == VoteDecision.AGAINST:
        return f"Consider voting against this proposal; its drawbacks for {organization} outweigh the benefits ({confidence}% confidence)."
    return f"Consider abstaining on this proposal until its impact on {organization} is clearer ({confidence}% confidence)."


def _bullets(items: Iterable[str]) -> str:
    lines = [f"   - {item}" for item in items if item]
    return "\n".join(lines) or f"   - {NONE_IDENTIFIED}"


def chain_of_thought(
    title: str,
    organization: str,
    pros: Sequence[str],
    cons: Sequence[str],
    decision: VoteDecision,
    confidence: int,
    persona_match: int,
    assessment_steps: Sequence[str] = (
        "Analyzed community value and governance implications",
        "Assessed implementation feasibility and resource requirements",
    ),
    persona_note: Optional[str] = None,
) -> str:
    """Numbered analysis trace: source, pros, concerns, assessment, verdict, persona fit."""
    lines = [
        f'AI Analysis of "{title or "Untitled Proposal"}"',
        "",
        f"1. Evaluated proposal from {organization}",
        "2. Key Positive Factors:",
        _bullets(pros),
        "3. Key Concerns:",
        _bullets(cons),
    ]
    step = 4
    for text in assessment_steps:
        lines.append(f"{step}. {text}")
        step += 1
    lines.append(f"{step}. Final decision: {decision.value.upper()} with {confidence}% confidence")
    step += 1
    lines.append(f"{step}. Persona match: {persona_match}% alignment with user preferences")
    if persona_note:
        step += 1
        lines.append(f"{step}. Persona characteristics considered: {persona_note}")
    return "\n".join(lines)
