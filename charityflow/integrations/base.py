"""Base classes for external collaborators.

Every side effect the workflows cause goes through one of these
interfaces, injected into the orchestrators:

    - DeliveryTransport: send(channel, recipient, content)
    - ScheduledTaskSink: enqueue(task) for the external dispatcher
    - StaffTaskSink: create_task(task) for staff follow-ups
    - AnalyticsSink: track(event, properties) for engagement tracking
    - ExternalAutomationHook: notify(workflow, data) for n8n style webhooks

IntegrationBase provides:
    - Health check interface
    - Configuration check
    - Rate limiting
    - Retry with exponential backoff
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from charityflow.core.exceptions import IntegrationError
from charityflow.core.logging import get_logger
from charityflow.db.models import Channel, RenderedContent, ScheduledTask, StaffTask

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt
        base_delay: First delay between attempts (seconds)
        max_delay: Cap on the delay
        sleep: Sleep function (tests pass a no-op)
    """

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def call(
        self,
        func: Callable[[], T],
        exceptions: tuple = (Exception,),
        description: str = "operation",
    ) -> T:
        """Execute func, retrying on the given exceptions.

        Args:
            func: Zero-argument callable
            exceptions: Exception types to catch and retry
            description: Used in log and error messages

        Returns:
            Function result

        Raises:
            IntegrationError: If all retries are exhausted
        """
        last_exception: Optional[Exception] = None
        delay = self.base_delay

        for attempt in range(self.max_retries + 1):
            try:
                return func()
            except exceptions as e:
                last_exception = e
                if attempt < self.max_retries:
                    logger.warning(
                        f"Retry {attempt + 1}/{self.max_retries} for {description} "
                        f"after {delay}s: {e}",
                        extra={"context": {"attempt": attempt + 1}},
                    )
                    self.sleep(delay)
                    delay = min(delay * 2, self.max_delay)

        raise IntegrationError(
            f"{description} failed after {self.max_retries + 1} attempts: {last_exception}"
        ) from last_exception


class IntegrationBase(ABC):
    """Abstract base class for network-backed integrations.

    Subclasses must implement:
        - health_check(): Check if service is available
        - is_configured(): Check if credentials are present
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.retry_policy = retry_policy or RetryPolicy()

    @abstractmethod
    def health_check(self) -> bool:
        """Check if integration is healthy and available.

        Returns:
            True if service is reachable and functioning
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if required credentials/configuration are present.

        Returns:
            True if all required config is present
        """
        pass

    def with_retry(self, func: Callable[[], T], exceptions: tuple = (Exception,)) -> T:
        """Execute function with this integration's retry policy."""
        return self.retry_policy.call(func, exceptions, description=type(self).__name__)


class RateLimiter:
    """Simple rate limiter for API calls.

    Attributes:
        calls_per_minute: Maximum calls allowed per minute
    """

    def __init__(self, calls_per_minute: int = 60):
        self.calls_per_minute = calls_per_minute
        self._call_times: list[float] = []

    def wait_if_needed(self) -> None:
        """Wait if rate limit would be exceeded."""
        now = time.time()

        # Drop calls older than 1 minute
        self._call_times = [t for t in self._call_times if now - t < 60]

        if len(self._call_times) >= self.calls_per_minute:
            sleep_time = 60 - (now - self._call_times[0])
            if sleep_time > 0:
                logger.debug(f"Rate limit: sleeping {sleep_time:.1f}s")
                time.sleep(sleep_time)

        self._call_times.append(time.time())


# =============================================================================
# COLLABORATOR INTERFACES
# =============================================================================


class DeliveryTransport(ABC):
    """Sends a rendered message over a channel."""

    @abstractmethod
    def send(
        self,
        channel: Channel,
        recipient: str,
        content: RenderedContent,
        attachments: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        """Deliver one message.

        Raises:
            DeliveryError: If the message could not be delivered
        """
        pass


class ScheduledTaskSink(ABC):
    """Receives scheduled tasks for later dispatch."""

    @abstractmethod
    def enqueue(self, task: ScheduledTask) -> None:
        pass


class StaffTaskSink(ABC):
    """Creates follow-up tasks for staff."""

    @abstractmethod
    def create_task(self, task: StaffTask) -> None:
        pass


class AnalyticsSink(ABC):
    """Records engagement tracking setup."""

    @abstractmethod
    def track(self, event: str, properties: dict[str, Any]) -> None:
        pass


class ExternalAutomationHook(ABC):
    """Notifies an external automation system that a workflow ran."""

    @abstractmethod
    def notify(self, workflow: str, data: dict[str, Any]) -> None:
        """Send workflow data to the external system.

        Raises:
            WebhookError: If the external system rejects the call
        """
        pass
