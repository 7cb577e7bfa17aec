"""Fixed communication sequences and campaign definitions.

Lookup tables for:
    - Behavioral sequences (per member event)
    - Re-engagement steps (per engagement bucket)
    - Drip campaigns (per campaign type)

The tables are part of the design, not configuration.
"""

from enum import Enum
from typing import Optional, Union

from charityflow.core.exceptions import UnknownCampaignError
from charityflow.db.models import DripCampaignDefinition, DripStep, Member
from charityflow.engine.scheduler import SequenceDefinition, SequenceStep
from charityflow.engine.tiers import DONATION_LADDER

# =============================================================================
# BEHAVIORAL SEQUENCES
# =============================================================================

DEFAULT_BEHAVIOR_EVENT = "donation_made"

BEHAVIORAL_SEQUENCES: dict[str, SequenceDefinition] = {
    "donation_made": SequenceDefinition(
        name="Post-Donation Appreciation",
        steps=(
            SequenceStep(0, "donation_thank_you"),
            SequenceStep(24, "impact_story"),
            SequenceStep(168, "community_spotlight"),
        ),
    ),
    "event_registered": SequenceDefinition(
        name="Event Registration Follow-up",
        steps=(
            SequenceStep(0, "registration_confirmation"),
            SequenceStep(168, "event_reminder_week"),
            SequenceStep(24, "event_reminder_day"),
        ),
    ),
}


def sequence_for_event(event: str) -> SequenceDefinition:
    """Sequence for a member event; unknown events get the donation sequence."""
    return BEHAVIORAL_SEQUENCES.get(event, BEHAVIORAL_SEQUENCES[DEFAULT_BEHAVIOR_EVENT])


# =============================================================================
# RE-ENGAGEMENT
# =============================================================================


class EngagementBucket(str, Enum):
    """Prior engagement level of an inactive member."""

    HIGH = "high_engagement"
    MEDIUM = "medium_engagement"
    LOW = "low_engagement"


REENGAGEMENT_STEPS: dict[EngagementBucket, tuple[SequenceStep, ...]] = {
    EngagementBucket.HIGH: (
        SequenceStep(0, "reengagement_gentle", "We miss you!"),
        SequenceStep(72, "reengagement_update", "Here's what you've missed"),
        SequenceStep(168, "reengagement_special_offer", "Exclusive invitation for you"),
    ),
    EngagementBucket.MEDIUM: (
        SequenceStep(0, "reengagement_value", "Your membership matters"),
        SequenceStep(96, "reengagement_success_stories", "Amazing things happening"),
        SequenceStep(192, "reengagement_last_chance", "Don't miss out"),
    ),
    EngagementBucket.LOW: (
        SequenceStep(0, "reengagement_simple", "Quick check-in"),
        SequenceStep(120, "reengagement_benefits", "Member benefits reminder"),
    ),
}


def engagement_bucket(score: int) -> EngagementBucket:
    """>50 high, 26-50 medium, otherwise low."""
    if score > 50:
        return EngagementBucket.HIGH
    if score > 25:
        return EngagementBucket.MEDIUM
    return EngagementBucket.LOW


# =============================================================================
# DRIP CAMPAIGNS
# =============================================================================


class CampaignType(str, Enum):
    """Drip campaigns a member can be enrolled in."""

    NEW_MEMBER_ONBOARDING = "new_member_onboarding"
    DONOR_STEWARDSHIP = "donor_stewardship"


class StepCondition(str, Enum):
    """Eligibility tags re-checked by the dispatcher when a drip step fires."""

    NO_DONATION = "no_donation"
    ELIGIBLE_FOR_UPGRADE = "eligible_for_upgrade"


DRIP_CAMPAIGNS: dict[CampaignType, DripCampaignDefinition] = {
    CampaignType.NEW_MEMBER_ONBOARDING: DripCampaignDefinition(
        name="New Member Onboarding",
        duration=30,
        steps=(
            DripStep(0, "welcome"),
            DripStep(1, "getting_started"),
            DripStep(3, "community_intro"),
            DripStep(7, "first_donation_prompt", StepCondition.NO_DONATION.value),
            DripStep(14, "event_invitation"),
            DripStep(30, "onboarding_complete"),
        ),
    ),
    CampaignType.DONOR_STEWARDSHIP: DripCampaignDefinition(
        name="Donor Stewardship",
        duration=90,
        steps=(
            DripStep(0, "donation_thanks"),
            DripStep(7, "impact_report"),
            DripStep(30, "community_update"),
            DripStep(60, "giving_opportunity", StepCondition.ELIGIBLE_FOR_UPGRADE.value),
            DripStep(90, "quarterly_summary"),
        ),
    ),
}


def get_campaign(campaign_type: Union[CampaignType, str]) -> DripCampaignDefinition:
    """Look up a drip campaign.

    Raises:
        UnknownCampaignError: If the campaign type has no definition
    """
    try:
        return DRIP_CAMPAIGNS[CampaignType(campaign_type)]
    except ValueError:
        raise UnknownCampaignError(str(campaign_type)) from None


def evaluate_step_condition(condition: Optional[str], member: Member) -> bool:
    """Re-check a drip step's condition at fire time.

    Scheduling never evaluates these; the dispatcher calls this just before
    sending and drops the step when it returns False. Unknown tags fail
    closed.

    Args:
        condition: Step condition tag, None for unconditional steps
        member: Member as currently stored at fire time

    Returns:
        True if the step should still be sent
    """
    if condition is None:
        return True
    if condition == StepCondition.NO_DONATION:
        return member.last_donation_date is None and member.total_donated <= 0
    if condition == StepCondition.ELIGIBLE_FOR_UPGRADE:
        return not DONATION_LADDER.is_top(DONATION_LADDER.tier_for(member.total_donated))
    return False
