"""Tests for the shared workflow collaborators."""

from datetime import datetime, timedelta

import pytest

from charityflow.core.exceptions import IntegrationError, StoreError
from charityflow.db.models import Channel, RenderedContent, TaskPriority
from charityflow.engine.services import WorkflowServices
from charityflow.integrations.base import RetryPolicy

CONTENT = RenderedContent(subject="Hello", content="Body")


class FlakyStore:
    """Delegates to a real store after failing a set number of times."""

    def __init__(self, inner, failures: int):
        self.inner = inner
        self.failures = failures
        self.calls = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update_member(self, member_id, patch):
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreError("database locked")
        return self.inner.update_member(member_id, patch)


class TestDeliverOrSchedule:
    """Test immediate sends versus scheduled tasks."""

    def test_zero_delay_sends_now(self, services: WorkflowServices):
        task = services.deliver_or_schedule("welcome_email", "ada@example.org", CONTENT, timedelta(0))
        assert task is None
        sent = services.transport.sent_to("ada@example.org")
        assert len(sent) == 1
        assert sent[0].channel == Channel.EMAIL
        assert sent[0].content == CONTENT

    def test_positive_delay_schedules(self, services: WorkflowServices, now: datetime):
        task = services.deliver_or_schedule(
            "tax_receipt",
            "ada@example.org",
            CONTENT,
            timedelta(minutes=5),
            TaskPriority.HIGH,
            data={"donation_id": "d-1"},
            attachments=[{"filename": "a.ics"}],
        )
        assert task.task_type == "tax_receipt"
        assert task.scheduled_for == now + timedelta(minutes=5)
        assert task.priority == TaskPriority.HIGH
        assert task.data["recipient"] == "ada@example.org"
        assert task.data["channel"] == "email"
        assert task.data["donation_id"] == "d-1"
        assert task.data["attachments"] == [{"filename": "a.ics"}]
        assert services.transport.sent == []

    def test_dry_run_does_not_send(self, services: WorkflowServices):
        services.config.dry_run = True
        assert services.deliver_or_schedule("x", "ada@example.org", CONTENT, timedelta(0)) is None
        assert services.transport.sent == []


class TestRetriedUpdates:
    """Test store retries."""

    def test_update_member_retries_then_succeeds(self, store, mock_config, now):
        flaky = FlakyStore(store, failures=2)
        services = WorkflowServices(
            store=flaky,
            config=mock_config,
            retry_policy=RetryPolicy(max_retries=2, base_delay=0, sleep=lambda s: None),
            clock=lambda: now,
        )
        updated = services.update_member("m-new", {"engagement_score": 30})
        assert updated.engagement_score == 30
        assert flaky.calls == 3

    def test_update_member_gives_up(self, store, mock_config, now):
        flaky = FlakyStore(store, failures=5)
        services = WorkflowServices(
            store=flaky,
            config=mock_config,
            retry_policy=RetryPolicy(max_retries=1, base_delay=0, sleep=lambda s: None),
            clock=lambda: now,
        )
        with pytest.raises(IntegrationError, match="update of member m-new"):
            services.update_member("m-new", {"engagement_score": 30})
        assert flaky.calls == 2


class TestPortalUrl:
    def test_portal_url(self, services: WorkflowServices):
        assert services.portal_url() == "https://members.harborfood.org/portal"
        assert services.portal_url("/portal/events").endswith("/portal/events")

    def test_default_retry_from_config(self, store, mock_config):
        services = WorkflowServices(store=store, config=mock_config)
        assert services.retry_policy.max_retries == mock_config.retry_attempts
