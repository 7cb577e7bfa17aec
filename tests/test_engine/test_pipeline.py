"""Tests for the stage runner."""

import pytest

from charityflow.core.exceptions import DeliveryError, TemplateNotFoundError
from charityflow.db.models import ScheduledTask
from charityflow.engine.pipeline import WorkflowRun


def _reject():
    raise DeliveryError("mailbox full")


class TestWorkflowRun:
    """Test stage error handling."""

    def test_successful_stages(self, now):
        with WorkflowRun("test") as run:
            value = run.step("Failed", lambda: 42)
            run.action("did something")
            run.schedule([ScheduledTask("t", now)])
        result = run.finish()
        assert value == 42
        assert result.success is True
        assert result.actions_executed == ["did something"]
        assert len(result.scheduled_tasks) == 1

    def test_failed_stage_recorded_and_run_continues(self):
        with WorkflowRun("test") as run:
            value = run.step("Failed to send tax receipt", _reject, default="fallback")
            run.action("later stage")
        result = run.finish()
        assert value == "fallback"
        assert result.errors == ["Failed to send tax receipt: mailbox full"]
        assert result.actions_executed == ["later stage"]
        assert result.success is False

    def test_required_stage_aborts(self):
        with WorkflowRun("test") as run:
            run.step("Failed to load", _reject, required=True)
            run.action("never reached")
        result = run.finish()
        assert result.actions_executed == []
        assert result.errors == ["Failed to load: mailbox full"]
        assert result.success is False

    def test_workflow_error_fails_run(self):
        def missing():
            raise TemplateNotFoundError("welcome")

        with WorkflowRun("test") as run:
            run.step("Failed", missing)
        result = run.finish()
        assert result.success is False
        assert result.errors == ["Template 'welcome' not found"]

    def test_programming_errors_propagate(self):
        """Only CharityFlowError is handled by a stage."""
        with pytest.raises(ZeroDivisionError):
            with WorkflowRun("test") as run:
                run.step("Failed", lambda: 1 / 0)

    def test_skip_is_success(self):
        with WorkflowRun("test") as run:
            result = run.skip("Nothing to do")
        assert result.success is True
        assert result.actions_executed == ["Nothing to do"]
