"""Collaborators shared by the workflow orchestrators.

One WorkflowServices instance is built per process (or per request) and
passed to every orchestrator, replacing module-level singletons. Anything
not supplied falls back to an in-process implementation that records
instead of delivering.

Usage:
    from charityflow.engine.services import WorkflowServices

    services = WorkflowServices(store=my_store, transport=my_transport)
    engine = CommunicationWorkflowEngine(services)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from charityflow.core.config import Config, get_config
from charityflow.core.exceptions import StoreError
from charityflow.core.logging import get_logger
from charityflow.db.models import Channel, Member, RenderedContent, ScheduledTask, TaskPriority
from charityflow.db.stores import ExecutionLog, InMemoryExecutionLog, MemberStore
from charityflow.engine.personalizer import ContentPersonalizer
from charityflow.engine.templates import TemplateStore
from charityflow.integrations.base import (
    AnalyticsSink,
    DeliveryTransport,
    RetryPolicy,
    StaffTaskSink,
)
from charityflow.integrations.local import (
    RecordingAnalyticsSink,
    RecordingStaffTaskSink,
    RecordingTransport,
)

logger = get_logger(__name__)


@dataclass
class WorkflowServices:
    """Injected collaborators.

    Attributes:
        store: Member store
        templates: Template store (read-only after startup)
        transport: Message delivery
        staff_tasks: Staff follow-up task sink
        analytics: Engagement tracking sink
        execution_log: Behavioral trigger execution log
        config: Application configuration
        retry_policy: Backoff for member-record side effects
        clock: Current time source
    """

    store: MemberStore
    templates: TemplateStore = field(default_factory=TemplateStore)
    transport: DeliveryTransport = field(default_factory=RecordingTransport)
    staff_tasks: StaffTaskSink = field(default_factory=RecordingStaffTaskSink)
    analytics: AnalyticsSink = field(default_factory=RecordingAnalyticsSink)
    execution_log: ExecutionLog = field(default_factory=InMemoryExecutionLog)
    config: Config = field(default_factory=get_config)
    retry_policy: Optional[RetryPolicy] = None
    clock: Callable[[], datetime] = datetime.now

    def __post_init__(self) -> None:
        self._retry = self.retry_policy or RetryPolicy(
            max_retries=self.config.retry_attempts,
            base_delay=self.config.retry_base_delay,
        )
        self.retry_policy = self._retry
        self.personalizer = ContentPersonalizer(self.templates, self.config.organization_name)

    def now(self) -> datetime:
        return self.clock()

    def update_member(self, member_id: str, patch: dict[str, Any]) -> Member:
        """Update a member record, retrying store failures.

        Raises:
            IntegrationError: If the store keeps failing after all retries
        """
        return self._retry.call(
            lambda: self.store.update_member(member_id, patch),
            exceptions=(StoreError,),
            description=f"update of member {member_id}",
        )

    def update_donation(self, donation_id: str, patch: dict[str, Any]) -> None:
        self._retry.call(
            lambda: self.store.update_donation(donation_id, patch),
            exceptions=(StoreError,),
            description=f"update of donation {donation_id}",
        )

    def update_registration(self, registration_id: str, patch: dict[str, Any]) -> None:
        self._retry.call(
            lambda: self.store.update_registration(registration_id, patch),
            exceptions=(StoreError,),
            description=f"update of registration {registration_id}",
        )

    def portal_url(self, path: str = "/portal") -> str:
        return f"{self.config.app_url}{path}"

    def deliver_or_schedule(
        self,
        task_type: str,
        recipient: str,
        content: RenderedContent,
        delay: timedelta,
        priority: TaskPriority = TaskPriority.MEDIUM,
        data: Optional[dict[str, Any]] = None,
        attachments: Optional[list[dict[str, Any]]] = None,
        channel: Channel = Channel.EMAIL,
    ) -> Optional[ScheduledTask]:
        """Send now when delay is zero, otherwise build a task for later.

        Returns:
            The task to schedule, or None if the message was sent

        Raises:
            DeliveryError: If an immediate send is rejected
        """
        if delay <= timedelta(0):
            if self.config.dry_run:
                logger.info(
                    f"DRY RUN: would send {task_type} to {recipient}",
                    extra={"context": {"task_type": task_type, "recipient": recipient}},
                )
                return None
            self.transport.send(channel, recipient, content, attachments)
            return None

        payload = {"recipient": recipient, "content": content, "channel": channel.value}
        if attachments:
            payload["attachments"] = attachments
        payload.update(data or {})
        return ScheduledTask(
            task_type=task_type,
            scheduled_for=self.now() + delay,
            data=payload,
            priority=priority,
        )
