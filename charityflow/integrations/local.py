"""In-process collaborators.

Stand-ins for the delivery transport and sinks when no real service is
wired in. Each keeps what it was given so hosts and tests can inspect it,
and logs what a real service would have done.

Usage:
    from charityflow.integrations.local import RecordingTransport, InMemoryTaskSink

    transport = RecordingTransport()
    sink = InMemoryTaskSink()
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from charityflow.core.exceptions import DeliveryError
from charityflow.core.logging import get_logger
from charityflow.db.models import Channel, RenderedContent, ScheduledTask, StaffTask
from charityflow.integrations.base import (
    AnalyticsSink,
    DeliveryTransport,
    ExternalAutomationHook,
    ScheduledTaskSink,
    StaffTaskSink,
)

logger = get_logger(__name__)


@dataclass
class SentMessage:
    """A message handed to RecordingTransport."""

    channel: Channel
    recipient: str
    content: RenderedContent
    attachments: list[dict[str, Any]] = field(default_factory=list)


class RecordingTransport(DeliveryTransport):
    """Keeps every message instead of delivering it.

    Recipients listed in fail_for raise DeliveryError, which lets callers
    exercise per-recipient failure isolation.
    """

    def __init__(self, fail_for: Optional[set[str]] = None):
        self._lock = threading.Lock()
        self.sent: list[SentMessage] = []
        self.fail_for = set(fail_for or ())

    def send(
        self,
        channel: Channel,
        recipient: str,
        content: RenderedContent,
        attachments: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        if recipient in self.fail_for:
            raise DeliveryError(f"Delivery to {recipient} rejected")

        with self._lock:
            self.sent.append(SentMessage(channel, recipient, content, list(attachments or [])))

        logger.info(
            f"DRY RUN: {channel.value} to {recipient}: {content.subject}",
            extra={"context": {"channel": channel.value, "recipient": recipient}},
        )

    def sent_to(self, recipient: str) -> list[SentMessage]:
        return [m for m in self.sent if m.recipient == recipient]


class InMemoryTaskSink(ScheduledTaskSink):
    """List of enqueued tasks, for a dispatcher polling in-process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.tasks: list[ScheduledTask] = []

    def enqueue(self, task: ScheduledTask) -> None:
        with self._lock:
            self.tasks.append(task)

    def due(self, now) -> list[ScheduledTask]:
        """Tasks whose fire time has passed, earliest first."""
        with self._lock:
            ready = [t for t in self.tasks if t.scheduled_for <= now]
        return sorted(ready, key=lambda t: t.scheduled_for)


class RecordingStaffTaskSink(StaffTaskSink):
    def __init__(self) -> None:
        self.tasks: list[StaffTask] = []

    def create_task(self, task: StaffTask) -> None:
        self.tasks.append(task)
        logger.info(
            f"Staff task created: {task.description}",
            extra={"context": {"member_id": task.member_id, "due_at": task.due_at}},
        )


class RecordingAnalyticsSink(AnalyticsSink):
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event: str, properties: dict[str, Any]) -> None:
        self.events.append((event, dict(properties)))
        logger.debug(f"Tracking configured: {event}", extra={"context": properties})


class NullAutomationHook(ExternalAutomationHook):
    """Used when no external automation webhook is configured."""

    def notify(self, workflow: str, data: dict[str, Any]) -> None:
        logger.debug(
            f"External automation not configured, skipping {workflow}",
            extra={"context": {"workflow": workflow}},
        )
