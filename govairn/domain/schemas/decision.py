from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional
import json

from govairn.domain.models import Decision, Persona


class PersonaSliders(BaseModel):
    """Persona as submitted by the settings screen (camelCase accepted)"""
    model_config = ConfigDict(populate_by_name=True)

    risk: int = Field(ge=0, le=100)
    esg_focus: int = Field(ge=0, le=100, alias="esgFocus")
    treasury_conservatism: int = Field(ge=0, le=100, alias="treasuryConservatism")
    time_horizon: int = Field(ge=0, le=100, alias="timeHorizon")
    participation_frequency: int = Field(ge=0, le=100, alias="participationFrequency")

    def to_persona(self) -> Persona:
        return Persona(
            risk=self.risk,
            esg_focus=self.esg_focus,
            treasury_conservatism=self.treasury_conservatism,
            time_horizon=self.time_horizon,
            participation_frequency=self.participation_frequency,
        )


class DecisionFactorRecord(BaseModel):
    factor_name: str
    factor_value: int = Field(ge=-10, le=10)
    factor_weight: int = Field(ge=1, le=10)
    explanation: str


class DecisionRecord(BaseModel):
    """Row shape for the decisions table plus its factor children"""
    proposal_id: str
    persona_id: Optional[str] = None
    decision: str
    confidence: int = Field(ge=1, le=100)
    persona_match: int = Field(ge=1, le=100)
    reasoning: str
    proposal_summary: str
    recommendation: str
    chain_of_thought: str
    provenance: str
    impact_level: str
    requires_recalculation: bool = False
    json_output: str
    created_at: datetime
    factors: List[DecisionFactorRecord]

    @classmethod
    def from_decision(
        cls,
        decision: Decision,
        persona: Optional[Persona] = None,
        requires_recalculation: bool = False,
    ) -> "DecisionRecord":
        return cls(
            proposal_id=decision.proposal_id,
            persona_id=persona.fingerprint() if persona is not None else None,
            decision=decision.decision.value,
            confidence=decision.confidence,
            persona_match=decision.persona_match,
            reasoning=decision.reasoning,
            proposal_summary=decision.summary,
            recommendation=decision.recommendation,
            chain_of_thought=decision.chain_of_thought,
            provenance=decision.provenance.value,
            impact_level=decision.impact_level,
            requires_recalculation=requires_recalculation,
            json_output=json.dumps(
                {
                    "decision": decision.decision.value,
                    "confidence": decision.confidence,
                    "persona_match": decision.persona_match,
                    "impact_level": decision.impact_level,
                    "factors": [
                        {
                            "factor_name": f.name,
                            "factor_value": f.value,
                            "factor_weight": f.weight,
                            "explanation": f.explanation,
                        }
                        for f in decision.factors
                    ],
                    "reasoning": decision.reasoning,
                },
                indent=2,
            ),
            created_at=decision.created_at,
            factors=[
                DecisionFactorRecord(
                    factor_name=f.name,
                    factor_value=f.value,
                    factor_weight=f.weight,
                    explanation=f.explanation,
                )
                for f in decision.factors
            ],
        )
