import logging
import sys
from typing import Any, Optional, TextIO

from govairn.utils.logging_redaction import install_redaction_filter

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# httpx logs every request URL at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str = "INFO", redact: bool = True, stream: Optional[TextIO] = None) -> None:
    """
    Configure centralized engine logging.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(stream or sys.stdout)],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if redact:
        install_redaction_filter()


def setup_logging_from_settings(settings: Optional[Any] = None) -> None:
    if settings is None:
        from govairn.config import settings as app_settings
        settings = app_settings
    setup_logging(settings.LOG_LEVEL, redact=settings.LOG_REDACTION_ENABLED)

