"""Structured JSON logging for CharityFlow.

Every workflow stage logs with a context dict. The fields that identify a
workflow run (TRACE_FIELDS) are lifted out of the context: to top-level
JSON keys in the log file, and to a [workflow/stage member_id=...] prefix
on the console, so one run can be followed across stages.

Usage:
    from charityflow.core.logging import get_logger, setup_logging

    setup_logging(config)  # Call once at startup
    logger = get_logger(__name__)

    logger.info(
        "Stage completed",
        extra={"context": {"workflow": "newsletter", "member_id": "m-1"}},
    )
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from charityflow.core.config import Config

ROOT_LOGGER_NAME = "charityflow"

TRACE_FIELDS = ("workflow", "stage", "member_id", "donation_id", "event_id")


def _json_value(value: Any) -> Any:
    """Encode the model types that show up in workflow context."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _console_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def split_context(record: logging.LogRecord) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate trace fields from the rest of a record's context."""
    context = getattr(record, "context", None) or {}
    trace = {k: context[k] for k in TRACE_FIELDS if context.get(k) is not None}
    rest = {k: v for k, v in context.items() if k not in trace}
    return trace, rest


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for file output."""

    def format(self, record: logging.LogRecord) -> str:
        trace, rest = split_context(record)
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            **trace,
        }
        if rest:
            log_data["context"] = rest
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=_json_value)


class ConsoleFormatter(logging.Formatter):
    """Human-readable format for console output.

    Example:
        09:00:00 WARN charityflow.engine.pipeline: [newsletter/load member_id=m-1] ...
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%H:%M:%S")
        level = record.levelname[:4]
        trace, rest = split_context(record)

        message = record.getMessage()
        if trace:
            run = "/".join(str(trace[k]) for k in ("workflow", "stage") if k in trace)
            ids = " ".join(f"{k}={trace[k]}" for k in TRACE_FIELDS[2:] if k in trace)
            message = f"[{' '.join(p for p in (run, ids) if p)}] {message}"
        if rest:
            message += " (" + ", ".join(f"{k}={_console_value(v)}" for k, v in rest.items()) + ")"

        return f"{timestamp} {level:4s} {record.name}: {message}"


_logging_initialized = False


def setup_logging(
    config: Optional[Config] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """Initialize logging system.

    Call once at process startup. Library code only ever calls get_logger;
    the host application decides whether handlers are installed.

    Args:
        config: Supplies log_path and debug (debug lowers the console to
            DEBUG). Defaults to a fresh Config.
        log_dir: Overrides config.log_path
    """
    global _logging_initialized

    if _logging_initialized:
        return

    config = config or Config()
    log_dir = log_dir or config.log_path
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if config.debug else logging.INFO)
    console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_dir / "charityflow.log",
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    root_logger.addHandler(file_handler)

    _logging_initialized = True
    root_logger.info("Logging initialized", extra={"context": {"log_dir": str(log_dir)}})


def get_logger(name: str) -> logging.Logger:
    """Logger under the charityflow namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
