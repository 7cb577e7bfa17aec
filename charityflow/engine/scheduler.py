"""Sequence scheduling.

Turns ordered step lists into ScheduledTask records with absolute fire
times. Nothing here fires anything: tasks are inert data for an external
dispatcher.

Two step shapes:
    - Hour sequences (behavioral, re-engagement): each step's delay is
      relative to the previous step, so the running offset is cumulative
    - Day campaigns (drip): each step's day is an offset from campaign start

Fire times never go backwards as the step index increases, and never land
before the time they were computed.

Usage:
    from charityflow.engine.scheduler import SequenceStep, schedule_sequence

    tasks = schedule_sequence(now, 0, steps, task_type="send_sequence_step")
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Sequence

from charityflow.core.exceptions import ValidationError
from charityflow.core.logging import get_logger
from charityflow.db.models import DripStep, ScheduledTask, TaskPriority

logger = get_logger(__name__)

DEFAULT_DELIVERY_HOUR = 10


@dataclass(frozen=True)
class SequenceStep:
    """One step of an hour-based sequence.

    Attributes:
        delay: Hours after the previous step (after the initial delay for the first)
        template: Template id
        subject: Optional display subject for dashboards
    """

    delay: float
    template: str
    subject: Optional[str] = None

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValidationError(f"Step '{self.template}' delay cannot be negative: {self.delay}")


@dataclass(frozen=True)
class SequenceDefinition:
    """Named, ordered list of sequence steps."""

    name: str
    steps: tuple[SequenceStep, ...]


PayloadBuilder = Callable[[int, Any], dict[str, Any]]


def _default_payload(index: int, step: Any) -> dict[str, Any]:
    return {"step_index": index, "template": step.template}


def schedule_sequence(
    start_time: datetime,
    initial_delay_hours: float,
    steps: Sequence[SequenceStep],
    task_type: str = "send_sequence_step",
    priority: TaskPriority = TaskPriority.MEDIUM,
    payload: Optional[PayloadBuilder] = None,
    not_before: Optional[datetime] = None,
) -> list[ScheduledTask]:
    """Schedule an hour-based sequence.

    Args:
        start_time: Anchor time
        initial_delay_hours: Offset added before the first step's delay
        steps: Steps in order
        task_type: Task tag for every emitted task
        priority: Task priority
        payload: Builds task data from (index, step)
        not_before: Earliest permitted fire time (defaults to start_time)

    Returns:
        One task per step, in step order

    Raises:
        ValidationError: If the initial delay is negative
    """
    if initial_delay_hours < 0:
        raise ValidationError(f"Initial delay cannot be negative: {initial_delay_hours}")

    build = payload or _default_payload
    floor = not_before or start_time
    cumulative = float(initial_delay_hours)
    tasks: list[ScheduledTask] = []

    for index, step in enumerate(steps):
        cumulative += step.delay
        fire_at = max(start_time + timedelta(hours=cumulative), floor)
        tasks.append(
            ScheduledTask(
                task_type=task_type,
                scheduled_for=fire_at,
                data=build(index, step),
                priority=priority,
            )
        )

    logger.debug(
        f"Scheduled {len(tasks)} {task_type} tasks",
        extra={"context": {"task_type": task_type, "offset_hours": cumulative}},
    )
    return tasks


def schedule_campaign_days(
    start_time: datetime,
    steps: Sequence[DripStep],
    task_type: str = "execute_drip_step",
    priority: TaskPriority = TaskPriority.MEDIUM,
    payload: Optional[PayloadBuilder] = None,
) -> list[ScheduledTask]:
    """Schedule a day-offset campaign from its start time.

    Steps are expected in non-decreasing day order; a step that would fire
    earlier than its predecessor is held at the predecessor's time.
    """
    build = payload or _default_payload
    tasks: list[ScheduledTask] = []
    previous = start_time

    for index, step in enumerate(steps):
        fire_at = max(start_time + timedelta(days=step.day), previous)
        previous = fire_at
        tasks.append(
            ScheduledTask(
                task_type=task_type,
                scheduled_for=fire_at,
                data=build(index, step),
                priority=priority,
            )
        )

    return tasks


def next_delivery_slot(now: datetime, hour: int = DEFAULT_DELIVERY_HOUR) -> datetime:
    """Next occurrence of hour:00.

    Today at hour:00 if the current hour is before it, else tomorrow.
    """
    slot = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if now.hour >= hour:
        slot += timedelta(days=1)
    return slot


def delayed_task(
    now: datetime,
    task_type: str,
    data: dict[str, Any],
    priority: TaskPriority = TaskPriority.MEDIUM,
    **delay: float,
) -> ScheduledTask:
    """Single task fired after a relative delay.

    Args:
        now: Computation time
        task_type: Task tag
        data: Task payload
        priority: Task priority
        **delay: timedelta keyword arguments (minutes=5, hours=24, days=7)
    """
    fire_at = now + timedelta(**delay)
    return ScheduledTask(task_type=task_type, scheduled_for=max(fire_at, now), data=data, priority=priority)
