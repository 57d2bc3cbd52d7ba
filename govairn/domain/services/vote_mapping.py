"""
Map a recommended vote onto a proposal's explicit voting choices.
"""

from typing import Optional, Sequence, Union

from govairn.domain.models import VoteDecision

DEFAULT_CHOICES = ("For", "Against", "Abstain")

AFFIRMATIVE = ("for", "yes", "approve", "support")
NEGATIVE = ("against", "no", "reject", "oppose")
NEUTRAL = ("abstain", "neutral", "pass")


def _first_matching(choices: Sequence[str], accepted: Sequence[str]) -> Optional[str]:
    for choice in choices:
        if choice.strip().lower() in accepted:
            return choice
    return None


def decision_to_vote_choice(
    decision: Union[VoteDecision, str],
    choices: Optional[Sequence[str]] = None,
) -> str:
    """
    Pick the choice label to cast for `decision`.

    for -> first affirmative choice, else the first choice
    against -> first negative choice, else the second (or first) choice
    anything else -> first neutral choice, else the first choice
    """
    options = list(choices) if choices else list(DEFAULT_CHOICES)
    value = decision.value if isinstance(decision, VoteDecision) else str(decision).strip().lower()

    if value in ("for", "yes"):
        return _first_matching(options, AFFIRMATIVE) or options[0]
    if value in ("against", "no"):
        return _first_matching(options, NEGATIVE) or (options[1] if len(options) > 1 else options[0])
    return _first_matching(options, NEUTRAL) or options[0]
