"""Tests for logging setup."""

import json
import logging
from datetime import datetime
from decimal import Decimal

from charityflow.core.config import Config
from charityflow.core.logging import (
    ConsoleFormatter,
    JSONFormatter,
    get_logger,
    setup_logging,
    split_context,
)
from charityflow.db.models import MembershipTier


def _record(message: str, context=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="charityflow.engine.communication",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    if context is not None:
        record.context = context
    return record


class TestLogging:
    """Test logging configuration."""

    def test_get_logger_returns_logger(self):
        """get_logger returns a Logger instance."""
        logger = get_logger(__name__)
        assert isinstance(logger, logging.Logger)

    def test_get_logger_same_name_returns_same_logger(self):
        """Same name returns same logger instance."""
        assert get_logger("test.module") is get_logger("test.module")

    def test_get_logger_namespaces_foreign_names(self):
        """Loggers always live under the charityflow namespace."""
        assert get_logger("test.module").name == "charityflow.test.module"
        assert get_logger("charityflow.engine").name == "charityflow.engine"

    def test_setup_logging_creates_handlers(self, tmp_path):
        """setup_logging creates file and console handlers."""
        import charityflow.core.logging as log_module

        log_module._logging_initialized = False
        root_logger = logging.getLogger("charityflow")
        existing = list(root_logger.handlers)
        try:
            setup_logging(log_dir=tmp_path / "logs")
            assert len(root_logger.handlers) >= len(existing) + 2
            assert (tmp_path / "logs" / "charityflow.log").exists()
        finally:
            for handler in root_logger.handlers[len(existing):]:
                handler.close()
                root_logger.removeHandler(handler)
            log_module._logging_initialized = False

    def test_setup_logging_follows_config(self, tmp_path):
        """Log directory comes from config.log_path; debug lowers the console level."""
        import charityflow.core.logging as log_module

        log_module._logging_initialized = False
        root_logger = logging.getLogger("charityflow")
        existing = list(root_logger.handlers)
        try:
            setup_logging(Config(log_path=tmp_path / "cfg-logs", debug=True))
            added = root_logger.handlers[len(existing):]
            console = next(h for h in added if type(h) is logging.StreamHandler)
            assert console.level == logging.DEBUG
            assert (tmp_path / "cfg-logs" / "charityflow.log").exists()
        finally:
            for handler in root_logger.handlers[len(existing):]:
                handler.close()
                root_logger.removeHandler(handler)
            log_module._logging_initialized = False


class TestFormatters:
    """Test log output formats."""

    def test_json_formatter_lifts_trace_fields(self):
        """Workflow identifiers become top-level keys; the rest stays in context."""
        output = JSONFormatter().format(
            _record(
                "Stage completed",
                {"workflow": "newsletter", "member_id": "m-1", "tasks": 3},
            )
        )
        data = json.loads(output)
        assert data["message"] == "Stage completed"
        assert data["level"] == "INFO"
        assert data["workflow"] == "newsletter"
        assert data["member_id"] == "m-1"
        assert data["context"] == {"tasks": 3}

    def test_json_formatter_encodes_model_values(self):
        output = JSONFormatter().format(
            _record(
                "Tier upgraded",
                {
                    "tier": MembershipTier.GOLD,
                    "yearly_total": Decimal("1000.00"),
                    "at": datetime(2026, 1, 1, 9, 30),
                },
            )
        )
        context = json.loads(output)["context"]
        assert context == {
            "tier": "gold",
            "yearly_total": "1000.00",
            "at": "2026-01-01T09:30:00",
        }

    def test_json_formatter_without_context(self):
        data = json.loads(JSONFormatter().format(_record("Plain")))
        assert "context" not in data
        assert "workflow" not in data

    def test_console_formatter_prefixes_run(self):
        output = ConsoleFormatter().format(
            _record(
                "Failed to load subscribers",
                {"workflow": "newsletter", "stage": "load", "member_id": "m-1", "attempt": 2},
            )
        )
        assert "[newsletter/load member_id=m-1] Failed to load subscribers (attempt=2)" in output

    def test_console_formatter_appends_context(self):
        output = ConsoleFormatter().format(
            _record("Workflow done", {"tasks": 3, "tier": MembershipTier.SILVER})
        )
        assert output.endswith("Workflow done (tasks=3, tier=silver)")

    def test_split_context_skips_empty_trace_fields(self):
        trace, rest = split_context(_record("x", {"member_id": None, "workflow": "drip"}))
        assert trace == {"workflow": "drip"}
        assert rest == {"member_id": None}
