"""structlog setup for the API process.

Production renders one JSON object per line; other environments use the
coloured console renderer. Every entry passes through
:func:`filter_sensitive_data` so credentials, Stripe signatures and bearer
tokens never reach the log sink in full.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from finwise import __version__
from finwise.config import get_settings

SERVICE_NAME = "finwise-api"

# Substrings matched case-insensitively against event keys
SENSITIVE_KEY_PARTS = (
    "password",
    "token",
    "secret",
    "signature",
    "api_key",
    "bearer",
    "authorization",
)

QUIET_LOGGERS = ("httpx", "httpcore", "stripe", "sqlalchemy.engine")

REDACTED = "***REDACTED***"


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return any(part in key for part in SENSITIVE_KEY_PARTS)


def _mask(value: Any) -> Any:
    # Long strings keep both ends so a signature or customer id stays traceable
    if isinstance(value, str) and len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return REDACTED


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _mask(v) if _is_sensitive(str(k)) else _scrub(v) for k, v in value.items()}
    return value


def filter_sensitive_data(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask sensitive keys, including ones nested in dict values such as headers."""
    return _scrub(event_dict)


def add_service_info(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = __version__
    return event_dict


def configure_logging() -> None:
    """Install the structlog pipeline and route stdlib logging to stdout."""
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        filter_sensitive_data,
        add_service_info,
    ]
    if settings.is_production:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.value),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
