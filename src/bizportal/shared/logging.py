"""Structured logging configuration.

Raw session tokens, invite codes and signature payloads must never reach
a log sink; ``redact_credentials`` masks them if a call site slips.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, cast

import structlog

from bizportal.config import get_settings

REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset(
    {
        "token",
        "raw_token",
        "code",
        "raw_code",
        "authorization",
        "portal_admin_key",
        "admin_key",
        "signature_image",
        "signature_text",
    }
)
QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def redact_credentials(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor replacing credential-bearing fields."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key] is not None:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """Configure structlog over stdlib logging.

    Development gets a colored console renderer, every other environment
    one JSON object per line for the audit pipeline.
    """
    settings = get_settings()
    log_level = logging.DEBUG if settings.app_debug else logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        redact_credentials,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.extend(
            [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
