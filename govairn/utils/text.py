"""
Text helpers shared by the prompt, normalization and fallback paths.
"""

import re
from typing import Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_HEADING_RE = re.compile(r"^[ \t]{0,3}#{1,6}[ \t]+", re.MULTILINE)
_BOLD_RE = re.compile(r"(\*\*|__)(.+?)\1", re.DOTALL)
_ITALIC_RE = re.compile(r"(?<![\w*])\*(?!\s)([^*\n]+?)(?<!\s)\*(?![\w*])")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_SENTENCE_RE = re.compile(r"(.+?[.!?])(?:\s|$)", re.DOTALL)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def strip_markup(text: str) -> str:
    """
    Remove heading and emphasis markers the model was told not to emit.

    Single underscores are left alone so snake_case JSON keys survive.
    """
    if not text:
        return ""
    cleaned = _FENCE_RE.sub("", text)
    cleaned = _HEADING_RE.sub("", cleaned)
    cleaned = _BOLD_RE.sub(r"\2", cleaned)
    cleaned = _ITALIC_RE.sub(r"\1", cleaned)
    return cleaned.strip()


def markdown_to_plain(text: str) -> str:
    if not text:
        return ""
    plain = strip_markup(text)
    plain = _LINK_RE.sub(r"\1", plain)
    plain = _INLINE_CODE_RE.sub(r"\1", plain)
    return plain


def truncate(text: str, limit: int, ellipsis: str = "...") -> str:
    if limit <= 0 or not text:
        return ""
    if len(text) <= limit:
        return text
    cut = max(0, limit - len(ellipsis))
    return text[:cut].rstrip() + ellipsis


def first_sentence(text: str) -> str:
    if not text:
        return ""
    stripped = text.strip()
    match = _SENTENCE_RE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped.splitlines()[0].strip()


def extract_summary(markdown: str, limit: int = 200) -> Optional[str]:
    """First non-empty paragraph of a markdown body, as plain text."""
    plain = markdown_to_plain(markdown or "")
    for paragraph in plain.split("\n"):
        paragraph = paragraph.strip()
        if paragraph:
            return truncate(paragraph, limit)
    return None


def compact_key(key: str) -> str:
    """`persona_match`, `personaMatch` and `Persona-Match` all become `personamatch`."""
    return _NON_ALNUM_RE.sub("", str(key).lower())


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def snake_to_run_together(name: str) -> str:
    return name.replace("_", "")
