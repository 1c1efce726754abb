"""
Structured Logging with Structlog.

Every entitlement decision, usage commit and admin action is logged as a
snake_case event with account, tier and feature fields. Domain values
(Tier, FeatureKey, UUIDs, dates) may be passed as-is; they are rendered
as plain strings before output. Bearer tokens never reach the log stream.
"""

import logging
import sys
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor

from readmeter.config import settings

REDACTED = "[redacted]"
SECRET_FIELDS = frozenset({"token", "access_token", "authorization", "admin_token", "jwt"})

# SQL echo and per-request access lines duplicate our own events
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def render_domain_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Flatten enums, UUIDs and dates so JSON output stays stable."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, UUID):
            event_dict[key] = str(value)
        elif isinstance(value, date):
            event_dict[key] = value.isoformat()
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace token-bearing fields."""
    for key in SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    JSON output for an entitlement denial looks like:
    {
        "event": "entitlement_denied",
        "level": "info",
        "timestamp": "2026-03-10T12:00:00.123456Z",
        "logger": "readmeter.services.entitlement_gate",
        "service": "readmeter-api",
        "version": "0.1.0",
        "account_id": "...",
        "tier": "trial",
        "feature_key": "ocr_pages",
        "used": 5,
        "limit": 5,
        "requested": 1
    }
    """
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        render_domain_values,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.log_format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("usage_incremented", account_id=account_id, feature_key=FeatureKey.OCR_PAGES)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind request-scoped fields (request_id, account_id) for the block.

    Usage:
        with log_context(request_id=request_id, account_id=account.account_id):
            await gate.check_and_reserve(account, FeatureKey.SUMMARIES, 1)
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
