"""
PERSONA DESCRIPTOR
Turns the five preference sliders into categorical labels and prose.

RULES:
- Pure function of the persona
- Thresholds: <=33 low, <=66 mid, >66 high
"""

from typing import Dict, Optional, Tuple

from govairn.domain.models import PERSONA_AXES, Persona, PersonaProfile

LOW_THRESHOLD = 33
MID_THRESHOLD = 66
DOMINANT_PRIORITY_THRESHOLD = 60

AXIS_LABELS: Dict[str, Tuple[str, str, str]] = {
    "risk": ("conservative", "moderate", "aggressive"),
    "esg_focus": ("minimal", "moderate", "significant"),
    "treasury_conservatism": ("expansion-focused", "balanced", "stability-focused"),
    "time_horizon": ("short-term", "medium-term", "long-term"),
    "participation_frequency": ("selective", "regular", "active"),
}

AXIS_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
    "risk": {
        "conservative": "prioritizes caution and safety in governance decisions",
        "moderate": "balances risk and opportunity in decision-making",
        "aggressive": "favors bold initiatives with higher potential returns",
    },
    "esg_focus": {
        "minimal": "places limited weight on environmental, social and governance impact",
        "moderate": "weighs ESG considerations alongside financial ones",
        "significant": "strongly values environmental, social and governance impact",
    },
    "treasury_conservatism": {
        "expansion-focused": "is comfortable deploying treasury funds for growth",
        "balanced": "balances treasury spending against healthy reserves",
        "stability-focused": "wants the treasury managed conservatively",
    },
    "time_horizon": {
        "short-term": "focuses on immediate impact and short-term outcomes",
        "medium-term": "considers medium-term implications (6-18 months)",
        "long-term": "prioritizes long-term sustainability and growth",
    },
    "participation_frequency": {
        "selective": "votes selectively on high-impact proposals",
        "regular": "participates regularly in governance votes",
        "active": "participates actively in nearly every governance vote",
    },
}

PRIORITY_NAMES = {
    "risk": "Risk Tolerance",
    "esg_focus": "ESG Considerations",
    "treasury_conservatism": "Treasury Conservation",
    "time_horizon": "Time Horizon",
    "participation_frequency": "Voting Frequency",
}


def label_for(axis: str, value: int) -> str:
    low, mid, high = AXIS_LABELS[axis]
    if value <= LOW_THRESHOLD:
        return low
    if value <= MID_THRESHOLD:
        return mid
    return high


class PersonaDescriptor:
    """Categorical labels + natural-language description for a persona"""

    def describe(self, persona: Persona) -> PersonaProfile:
        labels = {axis: label_for(axis, getattr(persona, axis)) for axis in PERSONA_AXES}
        return PersonaProfile(
            risk=labels["risk"],
            esg_focus=labels["esg_focus"],
            treasury_conservatism=labels["treasury_conservatism"],
            time_horizon=labels["time_horizon"],
            participation_frequency=labels["participation_frequency"],
            description=self._sentence(labels),
            dominant_priority=self._dominant_priority(persona),
        )

    def _sentence(self, labels: Dict[str, str]) -> str:
        parts = [AXIS_DESCRIPTIONS[axis][labels[axis]] for axis in PERSONA_AXES]
        return f"Your persona {', '.join(parts[:-1])}, and {parts[-1]}."

    def _dominant_priority(self, persona: Persona) -> Optional[str]:
        values = persona.as_tuple()
        strongest = max(values)
        if strongest < DOMINANT_PRIORITY_THRESHOLD:
            return None
        return PRIORITY_NAMES[PERSONA_AXES[values.index(strongest)]]


def describe_persona(persona: Persona) -> PersonaProfile:
    return PersonaDescriptor().describe(persona)
