import pytest

from govairn.domain.models import Persona, ProposalContext
from govairn.domain.services.prompt_builder import NAMING_EXAMPLES, OUTPUT_FIELDS, PromptBuilder


@pytest.fixture
def proposal():
    return ProposalContext(
        id="42",
        title="Upgrade Oracle Module",
        body="a" * 5000,
        organization="Compound",
        status="active",
    )


def test_build_is_deterministic(proposal):
    builder = PromptBuilder()
    persona = Persona(20, 40, 60, 80, 50)
    assert builder.build(proposal, persona) == builder.build(proposal, persona)


def test_system_prompt_lists_fields_and_naming_mistakes():
    system = PromptBuilder().system_prompt()

    for name, _ in OUTPUT_FIELDS:
        assert f'"{name}"' in system
    for name in ("factor_name", "factor_value", "factor_weight", "explanation"):
        assert f'"{name}"' in system
    for wrong, right in NAMING_EXAMPLES:
        assert f'WRONG: "{wrong}"  RIGHT: "{right}"' in system
    assert "JSON" in system


def test_user_prompt_truncates_body_to_limit(proposal):
    user = PromptBuilder().build(proposal, Persona.neutral()).user

    assert f"Description: {'a' * 997}..." in user
    assert "a" * 998 not in user


def test_user_prompt_honours_custom_limit(proposal):
    user = PromptBuilder(body_char_limit=50).build(proposal, Persona.neutral()).user
    assert f"Description: {'a' * 47}...\n" in user


def test_user_prompt_embeds_persona_and_defaults(proposal):
    persona = Persona(10, 90, 50, 70, 20)
    pair = PromptBuilder().build(proposal, persona)

    assert "Title: Upgrade Oracle Module" in pair.user
    assert "DAO: Compound" in pair.user
    assert "Status: active" in pair.user
    assert "Choices: For, Against, Abstain" in pair.user
    assert "Your persona prioritizes caution and safety" in pair.user
    assert "risk 10, ESG focus 90" in pair.user


def test_messages_are_system_then_user(proposal):
    messages = PromptBuilder().build(proposal, Persona.neutral()).messages()

    assert [m["role"] for m in messages] == ["system", "user"]
    assert messages[0]["content"].startswith("You are GovAIrn")


def test_empty_body_uses_placeholder():
    proposal = ProposalContext(id="1", title="Quorum change", choices=("Yes", "No"))
    user = PromptBuilder().build(proposal, Persona.neutral()).user

    assert "Description: No description available." in user
    assert "Choices: Yes, No" in user
    assert "DAO: Unknown DAO" in user
