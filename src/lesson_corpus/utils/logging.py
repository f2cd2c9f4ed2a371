from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import structlog

if TYPE_CHECKING:
    from lesson_corpus.config.schema import LoggingConfig

# httpx logs every request at INFO; the gateway already reports remote outcomes.
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(config: "LoggingConfig") -> None:
    """
    Route stdlib logging and structlog through one pipeline driven by ``LoggingConfig``.

    ``config.level`` filters both the stdlib root logger and structlog's bound loggers, and
    ``config.use_json`` swaps the console renderer for JSON lines. Stores and the sync gateway
    emit structured events keyed by partition, lesson number and operation. Context bound
    with ``structlog.contextvars`` (for example the partition a CLI command works on) is
    merged into every event.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if config.use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def get_logger(name: Optional[str] = None):
    """Return a structlog logger that inherits the global configuration."""
    return structlog.get_logger(name)
