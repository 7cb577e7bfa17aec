"""Data models and enumerations for CharityFlow.

Enums are str-valued so they compare equal to the plain strings the member
store hands back. Dataclasses use frozen=False for mutability during
processing, except the definitions that are immutable once created
(templates, rules, campaign steps).

This module defines:
    - Enumerations for all categorical fields
    - Member, donation and event records read from the member store
    - Workflow inputs (rules, triggers, templates, campaigns)
    - Workflow outputs (ScheduledTask, WorkflowResult)
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from charityflow.core.exceptions import ValidationError

# =============================================================================
# ENUMERATIONS
# =============================================================================


class MembershipTier(str, Enum):
    """Membership level of a member.

    Two ladders share this enum (see engine.tiers):
        Donation ladder: BRONZE < SILVER < GOLD < PLATINUM
        Acknowledgment ladder: MEMBER < FRIEND < SUPPORTER < ADVOCATE
            < PATRON < CHAMPION
    """

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"

    MEMBER = "member"
    FRIEND = "friend"
    SUPPORTER = "supporter"
    ADVOCATE = "advocate"
    PATRON = "patron"
    CHAMPION = "champion"


class Channel(str, Enum):
    """Delivery channel for a message."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"


class TaskPriority(str, Enum):
    """Priority of a scheduled task for the external dispatcher."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SegmentationCondition(str, Enum):
    """Condition a segmentation rule tests.

    CUSTOM never matches: there is no evaluator for it in this core.
    """

    HIGH_ENGAGEMENT = "high_engagement"
    RECENT_DONOR = "recent_donor"
    PREMIUM_TIER = "premium_tier"
    NEW_MEMBER = "new_member"
    CUSTOM = "custom"


class RegistrationStatus(str, Enum):
    """Status of an event registration."""

    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    CHECKED_IN = "checked_in"
    CANCELLED = "cancelled"


# =============================================================================
# STORE RECORDS
# =============================================================================


@dataclass
class Member:
    """A member as read from the member store.

    Attributes:
        id: Member id
        first_name: First name
        last_name: Last name
        email: Email address
        tier: Current membership tier
        engagement_score: 0-100 engagement score
        total_donated: Lifetime donations, never decreases
        last_donation_date: When the last donation was made
        member_since: When the member joined
        email_subscribed: Whether the member accepts marketing email
        phone: Phone number for SMS (optional)
    """

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    tier: MembershipTier = MembershipTier.BRONZE
    engagement_score: int = 0
    total_donated: Decimal = Decimal("0")
    last_donation_date: Optional[datetime] = None
    member_since: Optional[datetime] = None
    email_subscribed: bool = True
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Donation:
    """A donation record."""

    id: str
    member_id: str
    amount: Decimal
    created_at: datetime
    designation: str = "General Fund"
    is_recurring: bool = False
    recurring_frequency: Optional[str] = None


@dataclass
class PaymentConfirmation:
    """Inbound event emitted once an external payment capture succeeds.

    Attributes:
        donation_id: Donation created for the payment
        member_id: Paying member
        amount: Captured amount
        designation: Fund the donation is designated to
        is_recurring: Whether this is a recurring gift
    """

    donation_id: str
    member_id: str
    amount: Decimal
    designation: str = "General Fund"
    is_recurring: bool = False
    recurring_frequency: Optional[str] = None


@dataclass
class Event:
    """A charity event members can register for."""

    id: str
    name: str
    start_date: datetime
    end_date: Optional[datetime] = None
    venue_name: Optional[str] = None
    location: str = ""
    description: str = ""
    current_registrations: int = 0
    max_capacity: int = 100

    @property
    def effective_end(self) -> datetime:
        """End date, falling back to the start date."""
        return self.end_date or self.start_date


@dataclass
class EventRegistration:
    """A member's registration for an event."""

    id: str
    event_id: str
    member_id: str
    status: RegistrationStatus = RegistrationStatus.REGISTERED
    amount_paid: Decimal = Decimal("0")


# =============================================================================
# WORKFLOW DEFINITIONS
# =============================================================================


@dataclass(frozen=True)
class SegmentationRule:
    """A weighted rule used to segment members.

    Rules are immutable: whether a rule matched is reported in a RuleMatch,
    so one rule list can be reused across evaluations.
    """

    name: str
    condition: str
    weight: float = 1.0

    def __post_init__(self) -> None:
        if self.weight <= 0:
            raise ValidationError(f"Rule '{self.name}' weight must be positive, got {self.weight}")


@dataclass(frozen=True)
class RuleMatch:
    """Evaluation output for one rule across a member set."""

    rule: SegmentationRule
    matched: bool


@dataclass
class SegmentationResult:
    """Segments matched by a newsletter or A/B audience segmentation."""

    segments: list[str] = field(default_factory=list)
    rules: list[RuleMatch] = field(default_factory=list)
    score: float = 0.0


@dataclass
class BehaviorTrigger:
    """Eligibility and throttling for one behavioral workflow.

    Attributes:
        event: Event tag, e.g. "donation_made"
        conditions: condition name -> expected value, AND-combined
        delay: Hours before the first sequence step
        max_executions: Lifetime cap per member (None = unlimited)
        cooldown_period: Hours between executions per member (None = none)
    """

    event: str
    conditions: dict[str, Any] = field(default_factory=dict)
    delay: float = 0
    max_executions: Optional[int] = None
    cooldown_period: Optional[float] = None

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValidationError(f"Trigger delay cannot be negative: {self.delay}")
        if self.cooldown_period is not None and self.cooldown_period < 0:
            raise ValidationError(f"Trigger cooldown cannot be negative: {self.cooldown_period}")


@dataclass(frozen=True)
class CommunicationTemplate:
    """A message template with {{variable}} placeholders."""

    id: str
    name: str
    subject: str
    content: str
    variables: tuple[str, ...] = ()
    type: Channel = Channel.EMAIL
    category: str = "general"


@dataclass(frozen=True)
class RenderedContent:
    """Subject and body after personalization."""

    subject: str = ""
    content: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.subject and not self.content


@dataclass(frozen=True)
class DripStep:
    """One step of a drip campaign.

    Attributes:
        day: Offset in days from campaign start
        template: Template id
        condition: Eligibility tag the dispatcher re-checks at fire time
    """

    day: int
    template: str
    condition: Optional[str] = None


@dataclass(frozen=True)
class DripCampaignDefinition:
    """A fixed multi-day campaign."""

    name: str
    duration: int
    steps: tuple[DripStep, ...]

    def __post_init__(self) -> None:
        days = [step.day for step in self.steps]
        if any(day < 0 for day in days):
            raise ValidationError(f"Campaign '{self.name}' has a step with a negative day")
        if days != sorted(days):
            raise ValidationError(f"Campaign '{self.name}' steps must be ordered by day")


@dataclass
class CampaignState:
    """Per-member state created when a member is enrolled in a drip campaign."""

    member_id: str
    campaign_id: str
    start_date: datetime
    current_step: int = 0
    custom_data: dict[str, Any] = field(default_factory=dict)
    status: str = "active"


@dataclass
class StaffTask:
    """A follow-up task for staff, handed to the staff task sink."""

    description: str
    due_at: datetime
    member_id: Optional[str] = None
    reference_id: Optional[str] = None


# =============================================================================
# WORKFLOW OUTPUTS
# =============================================================================


@dataclass
class ScheduledTask:
    """An inert record of what to do and when.

    Consumed by an external dispatcher; nothing in this package fires it.
    """

    task_type: str
    scheduled_for: datetime
    data: dict[str, Any] = field(default_factory=dict)
    priority: TaskPriority = TaskPriority.MEDIUM


@dataclass
class TierChange:
    """A tier upgrade applied to the member record."""

    member_id: str
    old_tier: MembershipTier
    new_tier: MembershipTier
    total: Decimal


@dataclass
class WorkflowResult:
    """Uniform return value of every orchestrator.

    Attributes:
        success: True when the workflow ran without stage errors
        actions_executed: Append-only log of what happened
        scheduled_tasks: Tasks for the external dispatcher
        errors: Non-fatal stage errors and hard failures
        segmentation_results: Present when segmentation ran
        engagement_score: Present when the score was updated
        tier_change: Present when a tier upgrade was applied
    """

    success: bool = False
    actions_executed: list[str] = field(default_factory=list)
    scheduled_tasks: list[ScheduledTask] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    segmentation_results: Optional[SegmentationResult] = None
    engagement_score: Optional[int] = None
    tier_change: Optional[TierChange] = None

    def skip(self, reason: str) -> "WorkflowResult":
        """Finish as a soft skip: not an error."""
        self.actions_executed.append(reason)
        self.success = True
        return self

    def fail(self, message: str) -> "WorkflowResult":
        """Finish as a hard failure."""
        self.errors.append(message)
        self.success = False
        return self

    def finish(self) -> "WorkflowResult":
        """Finish normally; success reflects whether any stage failed."""
        self.success = not self.errors
        return self
