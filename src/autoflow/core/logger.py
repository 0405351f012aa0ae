"""Structured logging setup and the run-scoped logger handed to executors."""

import logging
import sys
from typing import Any, Optional

import structlog

from .config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure structlog on top of the stdlib logging module."""
    config = config or LoggingConfig()
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if config.debug else logging.INFO,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if config.format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class RunLogger:
    """
    Message-oriented logger exposed to step executors and hooks.

    Executors call ``info(message, meta)``; the message becomes the structlog
    event and ``meta`` is attached as a field. Every entry carries the run id
    and, once set, the current step.
    """

    def __init__(self, run_id: Optional[str] = None, logger: Any = None, **bindings: Any):
        base = logger or structlog.get_logger("autoflow.run")
        if run_id is not None:
            bindings["run_id"] = run_id
        self._logger = base.bind(**bindings)

    def bind(self, **bindings: Any) -> "RunLogger":
        """Return a child logger with extra fields."""
        return RunLogger(logger=self._logger, **bindings)

    def _log(self, method: str, message: str, meta: Any = None) -> None:
        if meta is None:
            getattr(self._logger, method)(message)
        else:
            getattr(self._logger, method)(message, meta=meta)

    def debug(self, message: str, meta: Any = None) -> None:
        self._log("debug", message, meta)

    def info(self, message: str, meta: Any = None) -> None:
        self._log("info", message, meta)

    def warning(self, message: str, meta: Any = None) -> None:
        self._log("warning", message, meta)

    warn = warning

    def error(self, message: str, meta: Any = None) -> None:
        self._log("error", message, meta)
