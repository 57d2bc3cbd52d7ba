"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    FallbackReason,
    ProposalCategory,
    Provenance,
    VoteDecision,

    # Entities
    AxisMatch,
    Decision,
    DecisionFactor,
    MatchResult,
    Persona,
    PersonaProfile,
    ProposalContext,

    # Constants
    PERSONA_AXES,
)

__all__ = [
    # Enums
    "FallbackReason",
    "ProposalCategory",
    "Provenance",
    "VoteDecision",

    # Entities
    "AxisMatch",
    "Decision",
    "DecisionFactor",
    "MatchResult",
    "Persona",
    "PersonaProfile",
    "ProposalContext",

    # Constants
    "PERSONA_AXES",
]
