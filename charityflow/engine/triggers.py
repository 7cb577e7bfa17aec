"""Behavioral trigger evaluation.

Two independent gates decide whether a behavioral workflow may run:
    1. Conditions (AND over all entries, short-circuit on first miss)
    2. Execution limits (lifetime cap and cooldown from the execution log)

check_execution_limits is a read-only look at the limits. Workflows gate on
claim_execution, which checks and records in one atomic log operation.

Recognized condition keys:
    - min_engagement_score: engagement_score >= value
    - tier: tier == value
    - days_since_last_donation: days since last donation >= value
      (false if the member never donated)

Unrecognized keys are treated as satisfied so newer condition vocabularies
do not break older evaluators.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from charityflow.core.logging import get_logger
from charityflow.db.models import BehaviorTrigger, Member
from charityflow.db.stores import ExecutionLog

logger = get_logger(__name__)


class TriggerCondition(str, Enum):
    """Condition keys understood by the evaluator."""

    MIN_ENGAGEMENT_SCORE = "min_engagement_score"
    TIER = "tier"
    DAYS_SINCE_LAST_DONATION = "days_since_last_donation"


# Engagement score change per member event
ENGAGEMENT_MODIFIERS: dict[str, int] = {
    "donation_made": 10,
    "event_registered": 5,
    "email_opened": 2,
    "email_clicked": 3,
    "profile_updated": 1,
}


def _min_engagement(member: Member, expected: Any, now: datetime) -> bool:
    return member.engagement_score >= expected


def _tier(member: Member, expected: Any, now: datetime) -> bool:
    return member.tier == expected


def _days_since_donation(member: Member, expected: Any, now: datetime) -> bool:
    if member.last_donation_date is None:
        return False
    days = (now - member.last_donation_date).total_seconds() / 86400
    return days >= expected


_CONDITIONS: dict[str, Callable[[Member, Any, datetime], bool]] = {
    TriggerCondition.MIN_ENGAGEMENT_SCORE.value: _min_engagement,
    TriggerCondition.TIER.value: _tier,
    TriggerCondition.DAYS_SINCE_LAST_DONATION.value: _days_since_donation,
}


def evaluate_condition(member: Member, condition: str, expected: Any, now: datetime) -> bool:
    check = _CONDITIONS.get(condition)
    if check is None:
        logger.debug(
            f"Unknown trigger condition treated as met: {condition}",
            extra={"context": {"member_id": member.id, "condition": condition}},
        )
        return True
    return check(member, expected, now)


def evaluate_trigger_conditions(
    member: Member,
    conditions: Mapping[str, Any],
    context: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Check every condition for a member.

    Args:
        member: Member that performed the action
        conditions: condition key -> expected value
        context: Event context (reserved for context-based conditions)
        now: Reference time

    Returns:
        True if all conditions hold
    """
    now = now or datetime.now()
    for condition, expected in conditions.items():
        if not evaluate_condition(member, condition, expected, now):
            return False
    return True


def _cooldown_since(trigger: BehaviorTrigger, now: datetime) -> Optional[datetime]:
    if not trigger.cooldown_period:
        return None
    return now - timedelta(hours=trigger.cooldown_period)


def check_execution_limits(
    member: Member,
    trigger: BehaviorTrigger,
    execution_log: ExecutionLog,
    now: Optional[datetime] = None,
) -> bool:
    """Check the lifetime cap and cooldown for a member and trigger.

    Returns:
        True if the trigger may execute now
    """
    now = now or datetime.now()

    if trigger.max_executions is not None:
        total = execution_log.count_recent_executions(member.id, trigger.event)
        if total >= trigger.max_executions:
            logger.info(
                "Trigger execution cap reached",
                extra={
                    "context": {
                        "member_id": member.id,
                        "event": trigger.event,
                        "executions": total,
                    }
                },
            )
            return False

    since = _cooldown_since(trigger, now)
    if since is not None:
        recent = execution_log.count_recent_executions(member.id, trigger.event, since)
        if recent > 0:
            logger.info(
                "Trigger in cooldown",
                extra={
                    "context": {
                        "member_id": member.id,
                        "event": trigger.event,
                        "cooldown_hours": trigger.cooldown_period,
                    }
                },
            )
            return False

    return True


def claim_execution(
    member: Member,
    trigger: BehaviorTrigger,
    execution_log: ExecutionLog,
    now: Optional[datetime] = None,
) -> bool:
    """Record this execution if the cap and cooldown still allow it.

    Returns:
        True if the execution was recorded and the workflow may proceed
    """
    now = now or datetime.now()
    claimed = execution_log.try_record_execution(
        member.id,
        trigger.event,
        now,
        max_executions=trigger.max_executions,
        cooldown_since=_cooldown_since(trigger, now),
    )
    if not claimed:
        logger.info(
            "Trigger execution refused by limits",
            extra={"context": {"member_id": member.id, "event": trigger.event}},
        )
    return claimed


def updated_engagement_score(current: int, event: str) -> int:
    """Apply the event's modifier and clamp to [0, 100]."""
    modifier = ENGAGEMENT_MODIFIERS.get(event, 0)
    return max(0, min(100, current + modifier))
