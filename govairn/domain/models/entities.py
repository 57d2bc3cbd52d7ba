"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class VoteDecision(str, Enum):
    """Recommended vote"""
    FOR = "for"
    AGAINST = "against"
    ABSTAIN = "abstain"


class Provenance(str, Enum):
    """How a decision was produced"""
    LLM = "llm"
    FALLBACK = "fallback"
    CACHE = "cache"


class FallbackReason(str, Enum):
    """Why the deterministic path was taken"""
    UNAVAILABLE = "unavailable"
    MALFORMED_OUTPUT = "malformed_output"
    UNREPAIRABLE = "unrepairable"
    INTERNAL_ERROR = "internal_error"


class ProposalCategory(str, Enum):
    """Coarse proposal type, derived from the title"""
    FUNDING = "funding allocation"
    UPGRADE = "protocol upgrade"
    INTEGRATION = "integration or partnership"
    TREASURY = "treasury management"
    CHAIN = "chain selection or integration"
    GOVERNANCE = "governance change"


PERSONA_AXES = (
    "risk",
    "esg_focus",
    "treasury_conservatism",
    "time_horizon",
    "participation_frequency",
)

# Accepted input keys per axis (camelCase API shape and the short slider names)
_PERSONA_KEY_ALIASES = {
    "risk": ("risk", "risk_tolerance", "riskTolerance"),
    "esg_focus": ("esg_focus", "esgFocus", "esg"),
    "treasury_conservatism": ("treasury_conservatism", "treasuryConservatism", "treasury"),
    "time_horizon": ("time_horizon", "timeHorizon", "horizon"),
    "participation_frequency": ("participation_frequency", "participationFrequency", "frequency"),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Persona:
    """Five 0-100 preference sliders - Immutable"""
    risk: int
    esg_focus: int
    treasury_conservatism: int
    time_horizon: int
    participation_frequency: int

    def __post_init__(self):
        for axis in PERSONA_AXES:
            value = getattr(self, axis)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Persona axis '{axis}' must be an integer, got {value!r}")
            if not 0 <= value <= 100:
                raise ValueError(f"Persona axis '{axis}' must be within 0-100, got {value}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Persona":
        """Build from a dict using either the full or the short slider keys."""
        values: Dict[str, int] = {}
        for axis, keys in _PERSONA_KEY_ALIASES.items():
            for key in keys:
                if key in data and data[key] is not None:
                    values[axis] = data[key]
                    break
            else:
                raise ValueError(f"Persona is missing axis '{axis}'")
        return cls(**values)

    @classmethod
    def neutral(cls) -> "Persona":
        return cls(50, 50, 50, 50, 50)

    def as_tuple(self) -> Tuple[int, int, int, int, int]:
        return tuple(getattr(self, axis) for axis in PERSONA_AXES)  # type: ignore[return-value]

    def as_dict(self) -> Dict[str, int]:
        return {axis: getattr(self, axis) for axis in PERSONA_AXES}

    def fingerprint(self) -> str:
        """Stable short identifier of the slider values"""
        raw = "-".join(str(v) for v in self.as_tuple())
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True)
class PersonaProfile:
    """Categorical view of a persona, with the prose used in prompts"""
    risk: str
    esg_focus: str
    treasury_conservatism: str
    time_horizon: str
    participation_frequency: str
    description: str
    dominant_priority: Optional[str] = None

    def label(self, axis: str) -> str:
        if axis not in PERSONA_AXES:
            raise KeyError(axis)
        return getattr(self, axis)


@dataclass(frozen=True)
class ProposalContext:
    """Proposal as read from the upstream feed - Immutable"""
    id: str
    title: str
    body: str = ""
    organization: str = ""
    status: str = ""
    choices: Tuple[str, ...] = ()
    summary: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    space_id: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Proposal id cannot be empty")
        if self.choices and not isinstance(self.choices, tuple):
            object.__setattr__(self, "choices", tuple(self.choices))

    @classmethod
    def from_feed_record(cls, record: Mapping[str, Any]) -> "ProposalContext":
        """
        Parse a Snapshot-style feed record.

        Accepts `space: {id, name}` and an optional `dao_info: {id, name}`
        override; `start`/`end` are unix seconds.
        """
        space = record.get("space") or {}
        dao_info = record.get("dao_info") or {}
        organization = dao_info.get("name") or space.get("name") or ""
        space_id = dao_info.get("id") or space.get("id")

        def _ts(value: Any) -> Optional[datetime]:
            if value in (None, ""):
                return None
            try:
                return datetime.fromtimestamp(int(value), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError, OSError):
                return None

        choices = record.get("choices") or ()
        return cls(
            id=str(record.get("id") or ""),
            title=str(record.get("title") or "").strip(),
            body=str(record.get("body") or ""),
            organization=str(organization),
            status=str(record.get("state") or record.get("status") or ""),
            choices=tuple(str(c) for c in choices),
            summary=record.get("summary"),
            start=_ts(record.get("start")),
            end=_ts(record.get("end")),
            space_id=str(space_id) if space_id else None,
        )

    @property
    def organization_name(self) -> str:
        return self.organization or "the DAO"

    @property
    def url(self) -> Optional[str]:
        if not self.space_id:
            return None
        return f"https://snapshot.org/#/{self.space_id}/proposal/{self.id}"

    @property
    def matching_text(self) -> str:
        """Lower-cased title + summary + body used by keyword heuristics"""
        return " ".join([self.title or "", self.summary or "", self.body or ""]).lower()


@dataclass(frozen=True)
class DecisionFactor:
    """One weighted consideration; value > 0 is a pro, value < 0 a con"""
    name: str
    value: int
    weight: int
    explanation: str

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Factor name cannot be empty")
        if not -10 <= self.value <= 10 or self.value == 0:
            raise ValueError(f"Factor value must be a nonzero integer in [-10, 10], got {self.value}")
        if not 1 <= self.weight <= 10:
            raise ValueError(f"Factor weight must be in [1, 10], got {self.weight}")
        if not self.explanation or not self.explanation.strip():
            raise ValueError("Factor explanation cannot be empty")

    @property
    def is_pro(self) -> bool:
        return self.value > 0

    @property
    def is_con(self) -> bool:
        return self.value < 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "weight": self.weight,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class Decision:
    """Validated voting recommendation - Immutable"""
    proposal_id: str
    decision: VoteDecision
    confidence: int
    persona_match: int
    reasoning: str
    summary: str
    recommendation: str
    factors: Tuple[DecisionFactor, ...]
    chain_of_thought: str
    provenance: Provenance
    created_at: datetime = field(default_factory=_utc_now, compare=False)

    def __post_init__(self):
        if not self.proposal_id:
            raise ValueError("Decision proposal_id cannot be empty")
        if not isinstance(self.decision, VoteDecision):
            raise ValueError(f"Unsupported decision {self.decision!r}")
        if not 1 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be in [1, 100], got {self.confidence}")
        if not 1 <= self.persona_match <= 100:
            raise ValueError(f"Persona match must be in [1, 100], got {self.persona_match}")
        for name in ("reasoning", "summary", "recommendation", "chain_of_thought"):
            text = getattr(self, name)
            if not text or not text.strip():
                raise ValueError(f"Decision {name} cannot be empty")
        if not isinstance(self.factors, tuple):
            object.__setattr__(self, "factors", tuple(self.factors))
        if not self.factors:
            raise ValueError("Decision requires at least one factor")
        if not any(f.is_pro for f in self.factors) or not any(f.is_con for f in self.factors):
            raise ValueError("Decision factors need at least one positive and one negative entry")

    @property
    def pros(self) -> List[str]:
        return [f.explanation for f in self.factors if f.is_pro]

    @property
    def cons(self) -> List[str]:
        return [f.explanation for f in self.factors if f.is_con]

    @property
    def impact_level(self) -> str:
        if any(f.value > 7 for f in self.factors):
            return "High"
        if any(f.value > 5 for f in self.factors):
            return "Medium"
        return "Low"

    def with_provenance(self, provenance: Provenance) -> "Decision":
        return replace(self, provenance=provenance)

    def as_payload(self) -> Dict[str, Any]:
        """Canonical camelCase shape handed to callers"""
        return {
            "proposalId": self.proposal_id,
            "decision": self.decision.value,
            "confidence": self.confidence,
            "personaMatch": self.persona_match,
            "reasoning": self.reasoning,
            "summary": self.summary,
            "recommendation": self.recommendation,
            "factors": [f.as_dict() for f in self.factors],
            "chainOfThought": self.chain_of_thought,
            "provenance": self.provenance.value,
        }


@dataclass(frozen=True)
class AxisMatch:
    """Heuristic alignment on one persona axis"""
    name: str
    axis: str
    score: int
    weight: int
    proposal_level: int
    explanation: str


@dataclass(frozen=True)
class MatchResult:
    """Network-free persona match"""
    score: int
    factors: Tuple[AxisMatch, ...]
    reasoning: str

    def factor(self, axis: str) -> AxisMatch:
        for item in self.factors:
            if item.axis == axis:
                return item
        raise KeyError(axis)
