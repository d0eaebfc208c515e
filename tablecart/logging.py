"""
Logging setup shared by the cart modules.

    from tablecart.logging import get_logger
    logger = get_logger(__name__)

Session ids, cart line ids and server messages pass through the sanitizers
below before they are interpolated into a log line.
"""

import logging
import os
import sys
from functools import cache

_FORMATS = {
    "production": "%(levelname)s - %(name)s - %(message)s",
    "development": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Libraries whose request-level chatter would drown out cart events
_QUIET_LOGGERS = ("httpx", "httpcore")

TEMP_ID_LOG_LENGTH = 32
ID_LOG_LENGTH = 8


def configure_logging() -> None:
    """Attach a stdout handler to the root logger unless the host already did."""
    root = logging.getLogger()
    if root.handlers:
        return

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    env = "production" if os.environ.get("TABLECART_ENV") == "production" else "development"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMATS[env]))
    root.setLevel(level)
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _one_line(value: object) -> str:
    # Control characters would let a crafted value forge extra log lines (CWE-117)
    return (
        str(value)
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """
    Shorten an id for a log line.

    Server ids are cut to their first 8 characters. Temporary line ids
    (``temp-<epoch-ms>``) are kept whole so a speculative line can be
    followed from its add to its rollback.
    """
    if not id_value:
        return "N/A"
    safe_value = _one_line(id_value)
    if safe_value.startswith("temp-"):
        return safe_value[:TEMP_ID_LOG_LENGTH]
    return safe_value[:ID_LOG_LENGTH]


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """Flatten free text (notes, server error messages) and cap its length."""
    if not value:
        return "N/A"
    safe_value = _one_line(value)
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."
