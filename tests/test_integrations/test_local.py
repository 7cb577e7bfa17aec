"""Tests for in-process collaborators."""

from datetime import datetime, timedelta

import pytest

from charityflow.core.exceptions import DeliveryError
from charityflow.db.models import Channel, RenderedContent, ScheduledTask, StaffTask
from charityflow.integrations.local import (
    InMemoryTaskSink,
    NullAutomationHook,
    RecordingAnalyticsSink,
    RecordingStaffTaskSink,
    RecordingTransport,
)

CONTENT = RenderedContent(subject="Hi", content="Body")


class TestRecordingTransport:
    def test_records_messages(self):
        transport = RecordingTransport()
        transport.send(Channel.SMS, "+15550100", CONTENT)
        transport.send(Channel.EMAIL, "ada@example.org", CONTENT, [{"filename": "a.ics"}])

        assert len(transport.sent) == 2
        assert transport.sent_to("+15550100")[0].channel == Channel.SMS
        assert transport.sent_to("ada@example.org")[0].attachments == [{"filename": "a.ics"}]

    def test_fail_for_rejects(self):
        transport = RecordingTransport(fail_for={"bounce@example.org"})
        with pytest.raises(DeliveryError, match="bounce@example.org"):
            transport.send(Channel.EMAIL, "bounce@example.org", CONTENT)
        assert transport.sent == []


class TestInMemoryTaskSink:
    def test_due_tasks_earliest_first(self, now: datetime):
        sink = InMemoryTaskSink()
        sink.enqueue(ScheduledTask("later", now + timedelta(hours=1)))
        sink.enqueue(ScheduledTask("second", now))
        sink.enqueue(ScheduledTask("first", now - timedelta(minutes=5)))

        assert [t.task_type for t in sink.due(now)] == ["first", "second"]
        assert len(sink.tasks) == 3


class TestSinks:
    def test_staff_tasks(self, now: datetime):
        sink = RecordingStaffTaskSink()
        sink.create_task(StaffTask("Call donor", now, member_id="m-1"))
        assert sink.tasks[0].description == "Call donor"

    def test_analytics_copies_properties(self):
        sink = RecordingAnalyticsSink()
        props = {"campaigns": 2}
        sink.track("newsletter_engagement", props)
        props["campaigns"] = 99
        assert sink.events == [("newsletter_engagement", {"campaigns": 2})]

    def test_null_hook_accepts_anything(self):
        NullAutomationHook().notify("tier-upgrade", {"member_id": "m-1"})
