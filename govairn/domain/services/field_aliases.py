"""
FIELD ALIAS RESOLUTION
Declarative table of canonical field -> candidate keys, plus the small
interpreter that evaluates it against an arbitrary JSON object.

Lookup strategies, in order (first usable value wins):
1. direct      - canonical snake_case key
2. alias       - known alternative names
3. variant     - camelCase / run-together / any punctuation-insensitive spelling
                 of the canonical name or an alias
4. fuzzy       - canonical name contained in a longer key (e.g. `proposalsummary`)

A candidate is only accepted if the field's coercer can use its value, so a
`decision_rationale` prose string never satisfies `decision`.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from govairn.domain.models import VoteDecision
from govairn.utils.text import compact_key, snake_to_camel, snake_to_run_together, strip_markup

Coercer = Callable[[Any], Optional[Any]]

STRATEGY_DIRECT = "direct"
STRATEGY_ALIAS = "alias"
STRATEGY_VARIANT = "variant"
STRATEGY_FUZZY = "fuzzy"
STRATEGY_MISSING = "missing"


# ----------------------------------------------------------------------
# COERCERS (return None when the value is unusable)
# ----------------------------------------------------------------------

_DECISION_SYNONYMS = {
    VoteDecision.FOR: ("for", "yes", "approve", "approved", "support", "accept", "in favor", "in favour"),
    VoteDecision.AGAINST: ("against", "no", "reject", "rejected", "oppose", "deny"),
    VoteDecision.ABSTAIN: ("abstain", "neutral", "pass", "undecided"),
}
_DECISION_LOOKUP = {
    synonym: decision
    for decision, synonyms in _DECISION_SYNONYMS.items()
    for synonym in synonyms
}
_PUNCT_RE = re.compile(r"[^a-z ]+")
_NUMBER_RE = re.compile(r"^\s*([-+]?\d+(?:\.\d+)?)\s*(%|/\s*(\d+(?:\.\d+)?))?\s*$")


def coerce_decision(value: Any) -> Optional[VoteDecision]:
    if isinstance(value, VoteDecision):
        return value
    if not isinstance(value, str):
        return None
    text = " ".join(_PUNCT_RE.sub(" ", value.lower()).split())
    if text.startswith("vote "):
        text = text[len("vote "):]
    return _DECISION_LOOKUP.get(text)


def coerce_number(value: Any) -> Optional[float]:
    """Numbers, numeric strings, `82%` and `8/10`-style ratings (scaled to the stated base)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None
    match = _NUMBER_RE.match(value)
    if not match:
        return None
    number = float(match.group(1))
    base = match.group(3)
    if base:
        base_value = float(base)
        if base_value <= 0:
            return None
        if base_value != 100:
            number = number / base_value * 100
    return number


def coerce_text(value: Any) -> Optional[str]:
    if isinstance(value, list) and value and all(isinstance(v, str) for v in value):
        value = " ".join(v.strip() for v in value)
    if not isinstance(value, str):
        return None
    text = strip_markup(value).strip()
    return text or None


def coerce_list(value: Any) -> Optional[list]:
    if isinstance(value, list) and value:
        return value
    if isinstance(value, dict) and value:
        return [value]
    return None


def coerce_string_list(value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        value = [line.strip(" -*\t") for line in value.splitlines()]
    if not isinstance(value, list):
        return None
    items = [strip_markup(v).strip() for v in value if isinstance(v, str) and v.strip()]
    return items or None


# ----------------------------------------------------------------------
# TABLE
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class FieldSpec:
    """One canonical field and the keys that may carry it"""
    canonical: str
    aliases: Tuple[str, ...]
    coerce: Coercer
    fuzzy: bool = True
    # Keys whose compact form contains one of these are never fuzzy-matched
    fuzzy_exclude: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Resolution:
    field: str
    key: Optional[str]
    value: Any
    strategy: str

    @property
    def found(self) -> bool:
        return self.strategy != STRATEGY_MISSING


DECISION_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        "decision",
        ("vote", "verdict", "choice", "vote_decision", "recommended_vote", "final_decision"),
        coerce_decision,
    ),
    FieldSpec(
        "confidence",
        ("confidence_score", "confidence_level", "certainty"),
        coerce_number,
    ),
    FieldSpec(
        "persona_match",
        ("persona_match_score", "persona_alignment", "match_score", "alignment_score", "alignment"),
        coerce_number,
    ),
    FieldSpec(
        "reasoning",
        ("rationale", "decision_rationale", "reason", "explanation", "analysis", "justification"),
        coerce_text,
        fuzzy_exclude=("chain", "thought"),
    ),
    FieldSpec(
        "summary",
        ("proposal_summary", "overview", "tldr", "synopsis"),
        coerce_text,
    ),
    FieldSpec(
        "recommendation",
        ("recommended_action", "vote_recommendation", "advice", "action"),
        coerce_text,
    ),
)

FACTOR_LIST_FIELD = FieldSpec(
    "factors",
    ("decision_factors", "key_factors", "factor_list", "analysis_factors", "considerations"),
    coerce_list,
)

PROS_FIELD = FieldSpec(
    "pros",
    ("advantages", "benefits", "positives", "strengths", "arguments_for"),
    coerce_string_list,
    fuzzy=False,
)

CONS_FIELD = FieldSpec(
    "cons",
    ("disadvantages", "drawbacks", "negatives", "weaknesses", "concerns", "risks", "arguments_against"),
    coerce_string_list,
    fuzzy=False,
)

CHAIN_OF_THOUGHT_FIELD = FieldSpec(
    "chain_of_thought",
    ("thought_process", "reasoning_steps", "thinking"),
    coerce_text,
)

FACTOR_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("factor_name", ("name", "factor", "title", "label"), coerce_text),
    FieldSpec("factor_value", ("value", "score", "impact", "rating"), coerce_number),
    FieldSpec("factor_weight", ("weight", "importance", "priority"), coerce_number),
    FieldSpec(
        "explanation",
        ("factor_explanation", "description", "reason", "rationale", "details", "detail", "comment"),
        coerce_text,
    ),
)

# Top-level flattened factor keys (`factorname`, `factorValue`, ...)
FLAT_FACTOR_FIELDS: Tuple[FieldSpec, ...] = tuple(
    FieldSpec(spec.canonical, (), spec.coerce, fuzzy=False) for spec in FACTOR_FIELDS[:3]
) + (FieldSpec("factor_explanation", (), coerce_text, fuzzy=False),)


# ----------------------------------------------------------------------
# INTERPRETER
# ----------------------------------------------------------------------

def generated_variants(name: str) -> Tuple[str, ...]:
    camel = snake_to_camel(name)
    return (
        camel,
        camel[:1].upper() + camel[1:],
        snake_to_run_together(name),
        name.replace("_", "-"),
        name.upper(),
    )


def _candidates(raw: Mapping[str, Any], spec: FieldSpec, taken: Set[str]) -> Iterator[Tuple[str, str]]:
    keys = [k for k in raw.keys() if isinstance(k, str) and k not in taken]
    seen: Set[str] = set()

    def _emit(key: str, strategy: str) -> Iterator[Tuple[str, str]]:
        if key in raw and key not in taken and key not in seen:
            seen.add(key)
            yield key, strategy

    yield from _emit(spec.canonical, STRATEGY_DIRECT)
    for alias in spec.aliases:
        yield from _emit(alias, STRATEGY_ALIAS)

    names = (spec.canonical,) + spec.aliases
    for name in names:
        for variant in generated_variants(name):
            yield from _emit(variant, STRATEGY_VARIANT)
    compact_names = {compact_key(name) for name in names}
    for key in keys:
        if compact_key(key) in compact_names:
            yield from _emit(key, STRATEGY_VARIANT)

    if not spec.fuzzy:
        return
    needle = compact_key(spec.canonical)
    for key in keys:
        compact = compact_key(key)
        if needle in compact and not any(ex in compact for ex in spec.fuzzy_exclude):
            yield from _emit(key, STRATEGY_FUZZY)


def resolve_field(
    raw: Mapping[str, Any],
    spec: FieldSpec,
    taken: Optional[Set[str]] = None,
) -> Resolution:
    """Evaluate one table row against `raw`; the winning key is added to `taken`."""
    taken = taken if taken is not None else set()
    for key, strategy in _candidates(raw, spec, taken):
        value = spec.coerce(raw[key])
        if value is not None:
            taken.add(key)
            return Resolution(spec.canonical, key, value, strategy)
    return Resolution(spec.canonical, None, None, STRATEGY_MISSING)


def resolve_fields(
    raw: Mapping[str, Any],
    specs: Iterable[FieldSpec],
    taken: Optional[Set[str]] = None,
) -> Dict[str, Resolution]:
    taken = taken if taken is not None else set()
    return {spec.canonical: resolve_field(raw, spec, taken) for spec in specs}
