"""JSON logging for the auth service.

Every event passes through ``redact_sensitive`` before rendering. Keys that
name a credential are blanked outright; string values are scanned for
bearer headers and JWT-shaped tokens so a credential that slips into a
free-text field (an exception message, a header dump) is still masked.
"""

import logging
import re
import sys
from typing import Any, Dict

import structlog

REDACTED = "REDACTED"

# Substrings of event keys whose values are never logged
SENSITIVE_KEYS = (
    "authorization",
    "password",
    "secret",
    "access_token",
    "refresh_token",
)

_BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")
_JWT_PATTERN = re.compile(r"\beyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*")


def _scrub(value: str) -> str:
    value = _BEARER_PATTERN.sub(f"Bearer {REDACTED}", value)
    return _JWT_PATTERN.sub(REDACTED, value)


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor masking credentials by key name and by value."""
    for key, value in list(event_dict.items()):
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            event_dict[key] = REDACTED
        elif isinstance(value, str) and key != "event":
            event_dict[key] = _scrub(value)
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog and stdlib records to stdout as one JSON object per line.

    Unknown level names fall back to INFO.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # uvicorn and asyncpg log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a logger, bound to ``component`` when one is given."""
    logger = structlog.get_logger()
    if component:
        logger = logger.bind(component=component)
    return logger
