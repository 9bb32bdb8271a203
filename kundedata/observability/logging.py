# ==== STRUCTURED LOGGING WITH LOGURU ==== #

"""
Structured logging with loguru for Kundedata.

Every record is JSON and carries the request context bound by the
middlewares (correlation id, organization and user of the session) plus the
active trace ids, so one lead or invoice can be followed across the web
request, background automations and cron runs.
"""

import inspect
import logging
import sys
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace
from opentelemetry.instrumentation.logging import LoggingInstrumentor


_request_context: ContextVar[Dict[str, Any]] = ContextVar("kundedata_log_context", default={})

# Chatty libraries kept at WARNING regardless of LOG_LEVEL
_QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "aiosqlite",
    "uvicorn.access",
    "prefect.events",
)


class InterceptHandler(logging.Handler):
    """Send stdlib records (uvicorn, sqlalchemy, prefect) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(
            logger_name=record.name
        ).log(level, record.getMessage())


def _add_file_sinks(logs_dir: Path) -> None:
    logs_dir.mkdir(exist_ok=True)
    for name, level, rotation, retention in (
        ("kundedata", "DEBUG", "100 MB", "30 days"),
        ("kundedata_errors", "ERROR", "50 MB", "90 days"),
    ):
        logger.add(
            logs_dir / f"{name}_{{time:YYYY-MM-DD}}.log",
            level=level,
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=True,
            enqueue=True,
        )


def init_logging(level: str = "INFO", log_to_files: bool = True) -> None:
    """Initialize structured logging with loguru.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_files: Also write rotating JSON files under ./logs
    """
    logger.remove()
    logger.add(
        sys.stdout,
        format="{message}",
        serialize=True,
        level=level.upper(),
        enqueue=True,
        colorize=False,
        diagnose=False,
    )
    if log_to_files:
        _add_file_sinks(Path("logs"))

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    try:
        LoggingInstrumentor().instrument(set_logging_format=False)
    except Exception as e:
        logger.warning(f"OpenTelemetry log instrumentation unavailable: {e}")

    logger.bind(level=level, files=log_to_files).info("Logging configured")


# ==== REQUEST CONTEXT ==== #

def bind_request_context(**values: Any) -> Token:
    """Add fields to every record logged in the current context.

    ``None`` values are ignored. Returns a token for ``reset_request_context``.
    """
    merged = dict(_request_context.get())
    merged.update({k: v for k, v in values.items() if v is not None})
    return _request_context.set(merged)


def reset_request_context(token: Token) -> None:
    _request_context.reset(token)


def current_request_context() -> Dict[str, Any]:
    return dict(_request_context.get())


class ContextualLogger:
    """Named logger that merges request context, call kwargs and trace ids."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logger.bind(logger_name=name)

    def _context(self, extra: Dict[str, Any]) -> Dict[str, Any]:
        context = current_request_context()
        context.update(extra)

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            context["trace_id"] = format(span_context.trace_id, "032x")
            context["span_id"] = format(span_context.span_id, "016x")
        return context

    def debug(self, msg: str, **kwargs: Any) -> None:
        self.logger.bind(**self._context(kwargs)).debug(msg)

    def info(self, msg: str, **kwargs: Any) -> None:
        self.logger.bind(**self._context(kwargs)).info(msg)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self.logger.bind(**self._context(kwargs)).warning(msg)

    def error(self, msg: str, **kwargs: Any) -> None:
        self.logger.bind(**self._context(kwargs)).error(msg)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Error record with the active exception's traceback."""
        self.logger.bind(**self._context(kwargs)).exception(msg)


def get_logger(name: str) -> ContextualLogger:
    return ContextualLogger(name)


def log_business_event(event_type: str, organization_id: int | str | None, **context: Any) -> None:
    """Record a business milestone (registration, invoice sent, lead received).

    Business events are flagged with ``business_event=True`` so they can be
    filtered out of the JSON stream for reporting.
    """
    get_logger("kundedata.business").info(
        f"Business event: {event_type}",
        event_type=event_type,
        organization_id=str(organization_id) if organization_id is not None else None,
        business_event=True,
        **context,
    )
