"""Structured logging for the rolling-upgrade protocol.

structlog is routed through stdlib logging with ProcessorFormatter, so
records from httpx (stdlib loggers) and from our own structlog loggers
come out in the same format.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# Per-request connection chatter; never useful while watching an upgrade.
_NOISY_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
)


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # ProcessorFormatter always adds these two keys
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Configure structlog and stdlib logging.

    Args:
        json_output: If True, output JSON. If False, human-readable.
        level: Log level (DEBUG, INFO, WARNING, ERROR).
    """
    log_level = getattr(logging, level.upper())

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        final_processors: list[Any] = [
            _remove_internal_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [
            _remove_internal_fields,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # tests reconfigure logging; cached loggers would keep the old config
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(
            processors=final_processors,
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(log_level)

    noisy_level = max(log_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
