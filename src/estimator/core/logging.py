"""
Logging setup for the estimator engine.

The engine itself only ever calls `get_logger(__name__)`; hosts decide where
the records go by calling `setup_logging` once at startup. Recoverable
conditions such as broken links or failed computed outputs are logged with
their context passed through `extra=`, which the JSON formatter nests under
an ``extra`` key.
"""

import logging
import sys
from typing import Any

import orjson
from pydantic import BaseModel

from estimator.core.config import get_settings

# Attribute names present on every LogRecord; the rest came from `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

# Third-party loggers kept at WARNING
_QUIET_LOGGERS = ("lark",)


class LogConfig(BaseModel):
    """Resolved logging options."""

    log_level: str = "INFO"
    log_format: str = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"
    date_format: str = "%H:%M:%S"
    json_logs: bool = False


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, serialized with orjson."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        # Paths and kinds in `extra` may be enums or models
        return orjson.dumps(payload, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter that colors the level name."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # Color a copy so other handlers see the plain level name
        colored = logging.makeLogRecord(vars(record))
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def setup_logging(
    log_level: str | None = None,
    json_logs: bool | None = None,
    log_format: str | None = None,
) -> None:
    """
    Install a single stdout handler on the root logger.

    Arguments left as None are taken from the engine settings
    (``ESTIMATOR_LOG_LEVEL`` and ``ESTIMATOR_JSON_LOGS``).

    Args:
        log_level: Level name, case-insensitive
        json_logs: Emit JSON lines instead of colored text
        log_format: Format string for the console formatter
    """
    settings = get_settings()
    config = LogConfig(
        log_level=(log_level or settings.log_level).upper(),
        json_logs=settings.json_logs if json_logs is None else json_logs,
    )
    if log_format:
        config.log_format = log_format

    handler = logging.StreamHandler(sys.stdout)
    if config.json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(config.log_format, datefmt=config.date_format))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"log_level": config.log_level, "json_logs": config.json_logs},
    )


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, normally called with ``__name__``."""
    return logging.getLogger(name)


class LoggerMixin:
    """Gives instances a `logger` named ``<module>.<ClassName>``."""

    @property
    def logger(self) -> logging.Logger:
        cls = type(self)
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
