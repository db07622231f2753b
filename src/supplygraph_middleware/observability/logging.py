"""Structured logging for the SupplyGraph request middleware.

Events are emitted through structlog with dotted names
(``idempotency.replayed``, ``etag.not_modified``, ``sweep.completed``).

Idempotency keys identify client operations and must not end up in log
aggregation in full. Call sites pass ``key_prefix(key)``; as a second line
of defense ``configure_logging`` installs a processor that shortens any
``key`` or ``idempotency_key`` field still longer than a prefix.

Examples:
    At application startup::

        from supplygraph_middleware.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    In a module::

        logger = get_logger(__name__)
        logger.info("idempotency.replayed", key=key_prefix(key), status_code=201)

    Output (JSON)::

        {"key": "5d41402a...", "status_code": 201, "event": "idempotency.replayed",
         "level": "info", "timestamp": "2025-01-01T00:00:00.000000Z"}
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

import structlog

KEY_FIELDS = ("key", "idempotency_key")
KEY_PREFIX_LENGTH = 8


def key_prefix(key: str, length: int = KEY_PREFIX_LENGTH) -> str:
    """Shorten an idempotency key for log output.

    Keys no longer than ``length`` are masked entirely.

    Examples:
        >>> key_prefix("5d41402abc4b2a76b9719d911017c592")
        '5d41402a...'
        >>> key_prefix("abc")
        '***'
    """
    if len(key) <= length:
        return "*" * len(key)
    return f"{key[:length]}..."


def redact_keys(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor shortening raw idempotency keys."""
    for field in KEY_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, str) and not value.endswith("...") and not set(value) <= {"*"}:
            event_dict[field] = key_prefix(value)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Call once at application startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit JSON lines; otherwise use the colored console renderer
        stream: Destination, stdout by default
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    output = stream or sys.stdout
    logging.basicConfig(format="%(message)s", stream=output, level=numeric_level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        redact_keys,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        # The console renderer formats exceptions itself
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
