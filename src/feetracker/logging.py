"""Structured logging for the fee tracker: structlog rendered through stdlib logging.

Page jobs bind their batch_id and page into structlog's contextvars via
page_job_context(), so every line logged while a page runs (store, fee
calculator, explorer client) carries them without passing them around.
"""

import logging
import os
from contextlib import AbstractContextManager

import structlog

# Third-party loggers that flood DEBUG output with request/response detail
_NOISY_LOGGERS = ("ccxt", "aiohttp", "uvicorn.access")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO") -> None:
    """Route structlog and stdlib records through one formatter on stderr.

    LOG_FORMAT=json selects machine-readable output; anything else renders
    for the console.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(os.environ.get("LOG_FORMAT", "console").lower()),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def page_job_context(batch_id: int, page: int) -> AbstractContextManager:
    """Bind batch_id and page to every log line emitted inside the block."""
    return structlog.contextvars.bound_contextvars(batch_id=batch_id, page=page)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
