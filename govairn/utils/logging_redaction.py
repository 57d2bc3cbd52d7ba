"""
Log redaction for completion-service credentials.

Every record passing a RedactingFilter has its rendered message (and any
cached traceback text) rewritten so API keys and bearer tokens never reach
a handler.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class RedactionRule:
    name: str
    pattern: re.Pattern
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


REDACTION_RULES: Sequence[RedactionRule] = (
    # sk-..., sk-proj-...
    RedactionRule("openai_key", re.compile(r"\bsk-[A-Za-z0-9_\-]{16,}"), "sk-[REDACTED]"),
    RedactionRule("bearer", re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    RedactionRule(
        "key_value",
        re.compile(r"(?i)(api[_-]?key|access_token|token)\s*[:=]\s*([A-Za-z0-9\-\._]+)"),
        r"\1=[REDACTED]",
    ),
)


def redact_message(message: str, rules: Sequence[RedactionRule] = REDACTION_RULES) -> str:
    for rule in rules:
        message = rule.apply(message)
    return message


class RedactingFilter(logging.Filter):
    def __init__(self, rules: Sequence[RedactionRule] = REDACTION_RULES):
        super().__init__()
        self.rules = rules

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format args; leave the record for the handler to report
            return True
        record.msg = redact_message(message, self.rules)
        record.args = ()
        if record.exc_text:
            record.exc_text = redact_message(record.exc_text, self.rules)
        return True


def install_redaction_filter(target: Optional[logging.Logger] = None) -> RedactingFilter:
    """Attach one RedactingFilter to `target` (root by default) and its handlers."""
    logger = target or logging.getLogger()
    installed = next((f for f in logger.filters if isinstance(f, RedactingFilter)), None)
    if installed is None:
        installed = RedactingFilter()
        logger.addFilter(installed)
    for handler in logger.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(installed)
    return installed
