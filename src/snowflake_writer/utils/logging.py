"""Structured logging framework using structlog.

This module provides centralized logging configuration with:
- ISO-8601 timestamps
- JSON rendering for structured logs
- Automatic sanitization of sensitive fields
- Redaction of cloud-storage credentials embedded in SQL text
- Context binding support

The level is read from snowflake_writer.config.settings (LOG_LEVEL, default
INFO).

Usage:
    >>> from snowflake_writer.utils.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("writer.load_full.started", table="orders")
"""

import logging
import os
import re
from typing import Any, Dict, MutableMapping

import structlog
from pydantic import ValidationError
from structlog.types import EventDict, Processor

from snowflake_writer.config.settings import get_settings

# Sensitive key patterns for sanitization
SENSITIVE_PATTERNS = [
    re.compile(r".*password.*", re.IGNORECASE),
    re.compile(r".*token.*", re.IGNORECASE),
    re.compile(r".*secret.*", re.IGNORECASE),
    re.compile(r".*private_?key.*", re.IGNORECASE),
    re.compile(r".*credentials.*", re.IGNORECASE),
]

REDACTED_VALUE = "[REDACTED]"

# Stage DDL carries credentials as KEY = 'value'; the value may contain
# backslash-escaped quotes.
CREDENTIAL_PATTERN = re.compile(
    r"((?:AWS_KEY_ID|AWS_SECRET_KEY|AWS_TOKEN|AZURE_SAS_TOKEN)\s*=\s*')"
    r"(?:[^'\\]|\\.)*'",
    re.IGNORECASE,
)


def redact_credentials(sql: str) -> str:
    """Blank credential values in a SQL statement, keeping the rest intact.

    Example:
        >>> redact_credentials("CREDENTIALS = (AWS_KEY_ID = 'AKIA123')")
        "CREDENTIALS = (AWS_KEY_ID = '...')"
    """
    return CREDENTIAL_PATTERN.sub(r"\1...'", sql)


def sanitize_for_logging(data: Dict[str, Any]) -> Dict[str, Any]:
    """Redact sensitive values from a dictionary before logging.

    Keys matching password, token, secret, private key or credentials
    (case-insensitive, substring match) are replaced by [REDACTED]; string
    values have embedded stage credentials blanked.
    """
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if any(pattern.match(str(key)) for pattern in SENSITIVE_PATTERNS):
            sanitized[key] = REDACTED_VALUE
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        elif isinstance(value, str):
            sanitized[key] = redact_credentials(value)
        else:
            sanitized[key] = value
    return sanitized


def sanitization_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> MutableMapping[str, Any]:
    """Structlog processor that sanitizes sensitive fields in event_dict.

    Runs after exception formatting so rendered tracebacks (which may quote a
    failed stage statement) are redacted as well.
    """
    return sanitize_for_logging(dict(event_dict))


def _get_log_level() -> int:
    try:
        level_name = get_settings().LOG_LEVEL
    except ValidationError:
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _configure_structlog() -> None:
    """Configure structlog with JSON rendering and sanitization."""
    level = _get_log_level()
    logging.basicConfig(format="%(message)s", level=level, handlers=[])

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    logging.root.addHandler(stream_handler)

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        sanitization_processor,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog on module import
_configure_structlog()


def get_logger(name: str) -> Any:
    """Get a structlog BoundLogger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> Any:
    """Create a logger with bound context fields.

    Example:
        >>> logger = bind_context(table="orders", execution_id="exec_123")
        >>> logger.info("writer.copy.completed", files=12)
    """
    return structlog.get_logger().bind(**kwargs)
