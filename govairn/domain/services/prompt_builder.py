"""
PROMPT BUILDER
System/user message pair for the decision completion.

RULES:
- Deterministic for identical inputs
- Proposal excerpt is bounded (default 1000 characters)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from govairn.domain.models import Persona, PersonaProfile, ProposalContext
from govairn.domain.services.persona_descriptor import PersonaDescriptor
from govairn.utils.text import truncate

DEFAULT_BODY_CHAR_LIMIT = 1000

OUTPUT_FIELDS = (
    ("decision", '"for", "against" or "abstain"'),
    ("confidence", "integer 1-100, precise (e.g. 73, not 75)"),
    ("persona_match", "integer 1-100, how well the proposal fits the persona"),
    ("reasoning", "why you recommend this vote, in relation to the persona"),
    ("summary", "2-3 sentence plain summary of what the proposal does"),
    ("recommendation", "one-line recommendation"),
    ("factors", "array of 3-5 factor objects, at least one positive and one negative"),
)

FACTOR_FIELDS = (
    ("factor_name", "short name of the consideration"),
    ("factor_value", "integer -10..10, never 0; positive supports, negative opposes"),
    ("factor_weight", "integer 1..10, importance"),
    ("explanation", "one sentence tying the factor to the persona"),
)

# (wrong, right) naming mistakes seen in past completions
NAMING_EXAMPLES = (
    ("personamatch", "persona_match"),
    ("personaMatch", "persona_match"),
    ("proposalsummary", "summary"),
    ("factorname", "factor_name"),
    ("factorValue", "factor_value"),
    ("factorweight", "factor_weight"),
)


@dataclass(frozen=True)
class PromptPair:
    system: str
    user: str

    def messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


class PromptBuilder:
    def __init__(
        self,
        body_char_limit: int = DEFAULT_BODY_CHAR_LIMIT,
        descriptor: Optional[PersonaDescriptor] = None,
    ):
        self.body_char_limit = body_char_limit
        self.descriptor = descriptor or PersonaDescriptor()

    def build(self, proposal: ProposalContext, persona: Persona) -> PromptPair:
        profile = self.descriptor.describe(persona)
        return PromptPair(
            system=self.system_prompt(),
            user=self.user_prompt(proposal, persona, profile),
        )

    def system_prompt(self) -> str:
        fields = "\n".join(f'- "{name}": {desc}' for name, desc in OUTPUT_FIELDS)
        factor_fields = "\n".join(f'  - "{name}": {desc}' for name, desc in FACTOR_FIELDS)
        naming = "\n".join(f'- WRONG: "{wrong}"  RIGHT: "{right}"' for wrong, right in NAMING_EXAMPLES)
        return (
            "You are GovAIrn, an AI governance advisor that analyzes DAO proposals "
            "and gives personalized voting recommendations.\n\n"
            "Respond with exactly one JSON object and nothing else. "
            "Do not use markdown, headings, bold or italics anywhere.\n\n"
            "REQUIRED FIELDS (use these exact snake_case names):\n"
            f"{fields}\n"
            "Each factor object has:\n"
            f"{factor_fields}\n\n"
            "FIELD NAMING - common mistakes to avoid:\n"
            f"{naming}\n\n"
            "Give precise, non-rounded confidence and persona_match scores."
        )

    def user_prompt(self, proposal: ProposalContext, persona: Persona, profile: PersonaProfile) -> str:
        excerpt = truncate((proposal.body or "").strip(), self.body_char_limit) or "No description available."
        choices = ", ".join(proposal.choices) if proposal.choices else "For, Against, Abstain"
        lines = [
            "Analyze this DAO governance proposal and provide a voting recommendation.",
            "",
            f"Title: {proposal.title}",
            f"DAO: {proposal.organization or 'Unknown DAO'}",
        ]
        if proposal.status:
            lines.append(f"Status: {proposal.status}")
        lines.extend([
            f"Choices: {choices}",
            f"Description: {excerpt}",
            "",
            "USER PERSONA:",
            profile.description,
            (
                f"Sliders (0-100): risk {persona.risk}, ESG focus {persona.esg_focus}, "
                f"treasury conservatism {persona.treasury_conservatism}, "
                f"time horizon {persona.time_horizon}, "
                f"participation frequency {persona.participation_frequency}"
            ),
            "",
            "Base the decision, confidence and persona_match on this persona.",
        ])
        return "\n".join(lines)
