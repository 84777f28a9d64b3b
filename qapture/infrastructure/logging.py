"""
Logging for the quality-management scoring application.

All loggers live under the ``qapture`` namespace. Handlers are built from
``LoggingConfig`` (``LOG_`` environment variables), so the same settings that
choose the database also choose where log lines go. Records carry the current
operation context (catalog, team, submission) which the JSON formatter writes
out next to the message.
"""

from __future__ import annotations

import json
import logging
import logging.config
import time
from collections.abc import Callable
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from types import TracebackType
from typing import Any, ParamSpec, TypeVar

from .config import LoggingConfig, Settings, get_settings
from .exceptions import QaptureError

P = ParamSpec("P")
R = TypeVar("R")

ROOT_LOGGER_NAME = "qapture"
CONTEXT_FIELDS = ("operation", "catalog", "catalog_id", "submission_id", "team", "category")
# Attached via ``extra=`` by log_error_details callers and the database decorator.
EXTRA_FIELDS = ("error_type", "user_message", "duration_ms")
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for field in CONTEXT_FIELDS + EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """Copies the current operation context onto every record."""

    def __init__(self):
        super().__init__()
        self.context: dict[str, Any] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


context_filter = ContextFilter()


def _handler_configs(config: LoggingConfig) -> dict[str, dict[str, Any]]:
    formatter = "structured" if config.structured else "standard"
    handlers: dict[str, dict[str, Any]] = {}

    if config.console_enabled:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": formatter,
            "stream": "ext://sys.stdout",
        }

    file_handler = config.get_file_handler_config()
    if file_handler is not None:
        Path(file_handler["filename"]).parent.mkdir(parents=True, exist_ok=True)
        # Files are always JSON so they can be shipped as-is.
        handlers["file"] = {**file_handler, "formatter": "structured"}

    if not handlers:
        return {"null": {"class": "logging.NullHandler"}}

    for handler in handlers.values():
        handler["level"] = config.level
        handler["filters"] = ["context"]
    return handlers


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Install handlers for the ``qapture`` namespace from ``config``.

    Defaults to the logging section of the current settings. Console lines are
    JSON or plain text depending on ``structured``; the rotating file, when
    ``file_path`` is set, is always JSON.

    Example:
        >>> setup_logging(LoggingConfig(level="DEBUG", file_path="./logs/qapture.log"))
    """
    config = config or get_settings().logging
    handlers = _handler_configs(config)
    names = list(handlers)

    loggers: dict[str, dict[str, Any]] = {
        ROOT_LOGGER_NAME: {"level": config.level, "handlers": names, "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": names, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": StructuredFormatter},
                "standard": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "filters": {"context": {"()": lambda: context_filter}},
            "handlers": handlers,
            "loggers": loggers,
        }
    )


def configure_logging(settings: Settings | None = None) -> LoggingConfig:
    """
    Configure logging for the application environment.

    Testing keeps only warnings and writes nowhere; the other environments use
    the ``LOG_`` settings, whose level already follows debug/production.
    """
    settings = settings or get_settings()
    config = settings.logging
    if settings.is_testing():
        config = config.model_copy(
            update={"level": "WARNING", "console_enabled": False, "file_path": None}
        )
    elif settings.is_development() and not config.file_path:
        config = config.model_copy(update={"structured": False})

    setup_logging(config)
    get_logger(__name__).info(
        "Logging configured for %s environment at %s", settings.app.environment, config.level
    )
    return config


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the application namespace.

    Example:
        >>> get_logger("scoring").name
        'qapture.scoring'
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_context(**kwargs: Any) -> None:
    """
    Add fields to the logging context, e.g. ``set_context(catalog="Bewertung Inbound")``.

    ``None`` values are dropped so optional ids do not show up as nulls.
    """
    context_filter.context.update({k: v for k, v in kwargs.items() if v is not None})


def clear_context() -> None:
    context_filter.context.clear()


class LogContext:
    """Context fields that apply only inside a ``with`` block."""

    def __init__(self, **kwargs: Any):
        self.fields = kwargs
        self._saved: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._saved = dict(context_filter.context)
        set_context(**self.fields)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        context_filter.context = self._saved


def log_operation(
    operation: str, logger: logging.Logger | None = None
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log start, completion and failure of an application operation.

    Application errors (``QaptureError``) are expected outcomes such as an
    unknown catalog and are logged as warnings with their user message;
    anything else is logged with its traceback. Both are re-raised.

    Example:
        >>> @log_operation("score_submission")
        ... def score_submission(catalog, answers):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            op_logger = logger or get_logger(func.__module__)
            with LogContext(operation=operation):
                op_logger.debug("Starting %s", operation)
                try:
                    result = func(*args, **kwargs)
                except QaptureError as e:
                    op_logger.warning(
                        "%s failed: %s",
                        operation,
                        e.message,
                        extra={"error_type": type(e).__name__, "user_message": e.user_message},
                    )
                    raise
                except Exception as e:
                    op_logger.error("%s failed: %s", operation, e, exc_info=True)
                    raise
                op_logger.debug("Completed %s", operation)
                return result

        return wrapper

    return decorator


def log_database_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log a repository call with its duration in milliseconds.

    Example:
        >>> @log_database_operation("catalog.list_active")
        ... def list_active(self):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            db_logger = get_logger("database")
            with LogContext(operation=f"db.{operation}"):
                started = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    elapsed = round((time.perf_counter() - started) * 1000, 2)
                    db_logger.error(
                        "%s failed after %.2fms: %s",
                        operation,
                        elapsed,
                        e,
                        exc_info=True,
                        extra={"duration_ms": elapsed},
                    )
                    raise
                elapsed = round((time.perf_counter() - started) * 1000, 2)
                db_logger.debug(
                    "%s completed in %.2fms", operation, elapsed, extra={"duration_ms": elapsed}
                )
                return result

        return wrapper

    return decorator


if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
    configure_logging()
