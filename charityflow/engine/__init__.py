"""Engine package - Workflow logic layer.

This package contains all workflow logic:
    - Member segmentation and trigger evaluation
    - Template rendering and personalization
    - Sequence scheduling
    - Communication, acknowledgment, event and onboarding workflows

Modules:
    - templates: Template store and placeholder rendering
    - personalizer: Member variables merged into templates
    - segmentation: Weighted rule scoring
    - triggers: Behavioral trigger conditions and execution limits
    - scheduler: Fire-time computation for sequences and campaigns
    - tiers: Donation and acknowledgment tier ladders
    - campaigns: Fixed behavioral, re-engagement and drip tables
    - pipeline: Stage runner shared by every workflow
    - services: Injected collaborators
    - communication: Newsletter, behavioral, re-engagement, A/B, drip
    - acknowledgment: Donation acknowledgment
    - events: Event registration, reminders, check-in, survey
    - onboarding: New member welcome sequence
"""

from charityflow.engine.scheduler import (
    SequenceDefinition,
    SequenceStep,
    next_delivery_slot,
    schedule_campaign_days,
    schedule_sequence,
)
from charityflow.engine.segmentation import SegmentationEvaluator, evaluate_rule
from charityflow.engine.tiers import ACKNOWLEDGMENT_LADDER, DONATION_LADDER, TierLadder
from charityflow.engine.triggers import (
    check_execution_limits,
    claim_execution,
    evaluate_trigger_conditions,
    updated_engagement_score,
)

__all__ = [
    # Segmentation and triggers
    "SegmentationEvaluator",
    "evaluate_rule",
    "check_execution_limits",
    "claim_execution",
    "evaluate_trigger_conditions",
    "updated_engagement_score",
    # Scheduling
    "SequenceDefinition",
    "SequenceStep",
    "next_delivery_slot",
    "schedule_campaign_days",
    "schedule_sequence",
    # Tiers
    "ACKNOWLEDGMENT_LADDER",
    "DONATION_LADDER",
    "TierLadder",
]
