"""Communication workflow engine.

Five orchestrators built from the same primitives (segmentation, trigger
evaluation, personalization, scheduling):

    - Newsletter: subscribers -> optional segmentation -> one campaign per
      tier -> delivery at the next newsletter slot
    - Behavioral trigger: conditions -> execution limits -> sequence for
      the event -> engagement score update
    - Re-engagement: inactive members -> engagement buckets -> per-bucket
      sequence per member
    - A/B test: audience split -> test sends, analysis and winner
      deployment timers
    - Drip campaign: fixed day-offset campaign, every step scheduled at
      enrollment

Every orchestrator returns a WorkflowResult. Scheduled tasks are handed
back to the caller, which passes them to its ScheduledTaskSink.

Usage:
    from charityflow.engine.communication import CommunicationWorkflowEngine

    engine = CommunicationWorkflowEngine(services)
    result = engine.execute_drip_campaign(member, "new_member_onboarding")
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Sequence

from charityflow.core.exceptions import ValidationError
from charityflow.core.logging import get_logger
from charityflow.db.models import (
    BehaviorTrigger,
    CampaignState,
    Member,
    RenderedContent,
    ScheduledTask,
    SegmentationRule,
    TaskPriority,
    WorkflowResult,
)
from charityflow.engine.campaigns import (
    REENGAGEMENT_STEPS,
    CampaignType,
    EngagementBucket,
    engagement_bucket,
    get_campaign,
    sequence_for_event,
)
from charityflow.engine.personalizer import tier_message
from charityflow.engine.pipeline import WorkflowRun
from charityflow.engine.scheduler import (
    next_delivery_slot,
    schedule_campaign_days,
    schedule_sequence,
)
from charityflow.engine.segmentation import SegmentationEvaluator
from charityflow.engine.services import WorkflowServices
from charityflow.engine.triggers import (
    claim_execution,
    evaluate_trigger_conditions,
    updated_engagement_score,
)

logger = get_logger(__name__)

DEFAULT_INACTIVITY_DAYS = 90
DEFAULT_TEST_PERCENTAGE = 20.0
TEST_SEND_DELAY_HOURS = 1
ANALYSIS_DELAY_HOURS = 48
DEPLOYMENT_DELAY_HOURS = 72


@dataclass
class NewsletterContent:
    """Caller-supplied newsletter.

    {{tier}} and {{tier_message}} are filled per tier campaign; any other
    placeholder is left for per-recipient rendering at dispatch.
    """

    subject: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TierCampaign:
    """Newsletter content personalized for one tier."""

    tier: str
    recipients: list[Member]
    content: RenderedContent


@dataclass
class TestGroup:
    """Slice of an A/B test audience.

    Attributes:
        group_id: test_group_N or winner_deployment
        variant: Variant payload, None for the winner group
        members: Members in this slice
    """

    group_id: str
    variant: Optional[Mapping[str, Any]]
    members: list[Member]


def _recipients(members: Sequence[Member]) -> list[dict[str, str]]:
    return [{"member_id": m.id, "email": m.email} for m in members]


def split_audience(
    audience: Sequence[Member],
    variant_count: int,
    test_percentage: float,
) -> tuple[list[list[Member]], list[Member]]:
    """Split an audience into equal test groups plus a winner group.

    Each test group holds floor(len(audience) * pct / 100 / variant_count)
    members, taken in order. Everyone after the last test group is the
    winner group, so every member lands in exactly one slice.

    Raises:
        ValidationError: If there are no variants or the percentage is out of range
    """
    if variant_count < 1:
        raise ValidationError("A/B test needs at least one variant")
    if not 0 <= test_percentage <= 100:
        raise ValidationError(f"Test percentage must be between 0 and 100, got {test_percentage}")

    group_size = math.floor(len(audience) * test_percentage / 100 / variant_count)
    groups = [
        list(audience[i * group_size : (i + 1) * group_size]) for i in range(variant_count)
    ]
    winners = list(audience[group_size * variant_count :])
    return groups, winners


def bucket_members(members: Sequence[Member]) -> dict[EngagementBucket, list[Member]]:
    """Partition members by engagement bucket, buckets in first-seen order."""
    buckets: dict[EngagementBucket, list[Member]] = {}
    for member in members:
        buckets.setdefault(engagement_bucket(member.engagement_score), []).append(member)
    return buckets


class CommunicationWorkflowEngine:
    """Newsletter, behavioral, re-engagement, A/B and drip orchestrators."""

    def __init__(self, services: WorkflowServices):
        self.services = services
        self.store = services.store
        self.personalizer = services.personalizer
        self.segmentation = SegmentationEvaluator()

    # =========================================================================
    # NEWSLETTER
    # =========================================================================

    def execute_newsletter_automation(
        self,
        newsletter: NewsletterContent,
        segmentation_rules: Optional[Sequence[SegmentationRule]] = None,
    ) -> WorkflowResult:
        """Segment subscribers and schedule one newsletter per tier.

        Args:
            newsletter: Subject and content with placeholders
            segmentation_rules: Optional rules; only matching members receive it

        Returns:
            WorkflowResult with one send_newsletter task per tier
        """
        now = self.services.now()

        with WorkflowRun("newsletter") as run:
            subscribers = run.step(
                "Failed to load newsletter subscribers",
                self.store.list_newsletter_subscribers,
                required=True,
            )
            run.action(f"Retrieved {len(subscribers)} newsletter subscribers")

            recipients: list[Member] = list(subscribers)
            if segmentation_rules:
                outcome = self.segmentation.evaluate(subscribers, segmentation_rules, now)
                recipients = outcome.members
                run.result.segmentation_results = outcome.result
                run.action(f"Applied segmentation: {', '.join(outcome.result.segments)}")

            campaigns = self._personalize_by_tier(newsletter, recipients)
            run.action(f"Created {len(campaigns)} personalized campaigns")

            slot = next_delivery_slot(now, self.services.config.newsletter_hour)
            tasks = [
                ScheduledTask(
                    task_type="send_newsletter",
                    scheduled_for=slot,
                    data={
                        "tier": campaign.tier,
                        "recipients": _recipients(campaign.recipients),
                        "content": campaign.content,
                        "metadata": dict(newsletter.metadata),
                    },
                    priority=TaskPriority.MEDIUM,
                )
                for campaign in campaigns
            ]
            run.schedule(tasks)
            run.action(f"Scheduled {len(tasks)} delivery tasks")

            tracked = run.step(
                "Failed to configure engagement tracking",
                self._track,
                "newsletter_engagement",
                {"campaigns": len(campaigns), "recipients": len(recipients)},
                default=False,
            )
            if tracked:
                run.action("Configured engagement tracking")

        return run.finish()

    def _personalize_by_tier(
        self,
        newsletter: NewsletterContent,
        members: Sequence[Member],
    ) -> list[TierCampaign]:
        groups: dict[str, list[Member]] = {}
        for member in members:
            tier = member.tier.value if hasattr(member.tier, "value") else str(member.tier)
            groups.setdefault(tier, []).append(member)

        return [
            TierCampaign(
                tier=tier,
                recipients=group,
                content=self.personalizer.personalize_text(
                    newsletter.subject,
                    newsletter.content,
                    {"tier": tier, "tier_message": tier_message(tier)},
                ),
            )
            for tier, group in groups.items()
        ]

    # =========================================================================
    # BEHAVIORAL TRIGGER
    # =========================================================================

    def execute_behavioral_trigger(
        self,
        member: Member,
        trigger: BehaviorTrigger,
        context: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowResult:
        """Respond to a member action with the event's sequence.

        Unmet conditions and active limits are soft skips (success=True).
        The execution is recorded when the limits are claimed, before any
        content is built.

        Args:
            member: Member that acted
            trigger: Conditions, delay and throttling
            context: Event data, merged into every template

        Returns:
            WorkflowResult with one send_sequence_step task per step
        """
        now = self.services.now()
        context = dict(context or {})

        with WorkflowRun("behavioral_trigger", member_id=member.id, event=trigger.event) as run:
            if not evaluate_trigger_conditions(member, trigger.conditions, context, now):
                return run.skip("Trigger conditions not met, workflow skipped")

            allowed = run.step(
                "Failed to check execution limits",
                claim_execution,
                member,
                trigger,
                self.services.execution_log,
                now,
                required=True,
            )
            if not allowed:
                return run.skip("Execution limits reached or in cooldown period")

            sequence = sequence_for_event(trigger.event)
            run.action(f"Selected sequence: {sequence.name}")

            contents = [
                self.personalizer.personalize(step.template, member, context)
                for step in sequence.steps
            ]
            run.action("Personalized sequence content")

            tasks = schedule_sequence(
                now,
                trigger.delay,
                sequence.steps,
                task_type="send_sequence_step",
                priority=TaskPriority.MEDIUM,
                payload=lambda i, step: {
                    "member_id": member.id,
                    "email": member.email,
                    "sequence_name": sequence.name,
                    "step_index": i,
                    "template": step.template,
                    "content": contents[i],
                },
            )
            run.schedule(tasks)
            run.action(f"Scheduled {len(tasks)} sequence steps")

            score = updated_engagement_score(member.engagement_score, trigger.event)
            updated = run.step(
                "Failed to update engagement score",
                self.services.update_member,
                member.id,
                {"engagement_score": score},
            )
            if updated is not None:
                run.result.engagement_score = score
                run.action(f"Updated engagement score: {score}")

        return run.finish()

    # =========================================================================
    # RE-ENGAGEMENT
    # =========================================================================

    def execute_reengagement_campaign(
        self,
        inactivity_threshold_days: int = DEFAULT_INACTIVITY_DAYS,
    ) -> WorkflowResult:
        """Win back members inactive for the threshold.

        One member's failure never blocks the rest of the batch.

        Returns:
            WorkflowResult with send_reengagement tasks (3/3/2 per member
            for high/medium/low buckets)
        """
        now = self.services.now()

        with WorkflowRun("reengagement", threshold_days=inactivity_threshold_days) as run:
            inactive = run.step(
                "Failed to load inactive members",
                self.store.list_inactive_members,
                inactivity_threshold_days,
                now,
                required=True,
            )
            run.action(f"Identified {len(inactive)} inactive members")

            buckets = bucket_members(inactive)
            run.action(f"Segmented into {len(buckets)} groups")
            run.action(f"Created {len(buckets)} re-engagement sequences")

            scheduled = 0
            for bucket, members in buckets.items():
                for member in members:
                    tasks = run.step(
                        f"Failed to schedule re-engagement for member {member.id}",
                        self._schedule_reengagement,
                        member,
                        bucket,
                        now,
                        default=[],
                    )
                    run.schedule(tasks)
                    scheduled += len(tasks)
            run.action(f"Scheduled {scheduled} re-engagement tasks")

            tracked = run.step(
                "Failed to configure win-back tracking",
                self._track,
                "winback",
                {"members": [m.id for m in inactive]},
                default=False,
            )
            if tracked:
                run.action("Configured win-back tracking")

        return run.finish()

    def _schedule_reengagement(
        self,
        member: Member,
        bucket: EngagementBucket,
        now: datetime,
    ) -> list[ScheduledTask]:
        steps = REENGAGEMENT_STEPS[bucket]
        contents = [self.personalizer.personalize(step.template, member) for step in steps]
        return schedule_sequence(
            now,
            0,
            steps,
            task_type="send_reengagement",
            priority=TaskPriority.LOW,
            payload=lambda i, step: {
                "member_id": member.id,
                "email": member.email,
                "segment": bucket.value,
                "step_index": i,
                "template": step.template,
                "subject": step.subject,
                "content": contents[i],
            },
        )

    # =========================================================================
    # A/B TEST
    # =========================================================================

    def execute_ab_test_workflow(
        self,
        campaign_data: Mapping[str, Any],
        variants: Sequence[Mapping[str, Any]],
        test_percentage: float = DEFAULT_TEST_PERCENTAGE,
        segmentation_rules: Optional[Sequence[SegmentationRule]] = None,
    ) -> WorkflowResult:
        """Split an audience and schedule test, analysis and deployment.

        The three timers are independent: deployment is not gated on
        analysis having run.

        Args:
            campaign_data: Campaign payload carried to the deployment task
            variants: One payload per variant (subject, content, ...)
            test_percentage: Share of the audience used for testing
            segmentation_rules: Optional audience rules

        Returns:
            WorkflowResult with one send_test_campaign task per variant,
            one analyze_test_results and one deploy_winner task
        """
        now = self.services.now()

        with WorkflowRun("ab_test", variants=len(variants)) as run:
            audience = run.step(
                "Failed to load target audience",
                self._target_audience,
                segmentation_rules,
                now,
                required=True,
            )
            run.action(f"Target audience: {len(audience)} members")

            groups, winners = run.step(
                "Failed to split audience",
                split_audience,
                audience,
                len(variants),
                test_percentage,
                required=True,
            )
            test_groups = [
                TestGroup(f"test_group_{i + 1}", variant, members)
                for i, (variant, members) in enumerate(zip(variants, groups))
            ]
            winner_group = TestGroup("winner_deployment", None, winners)
            run.action(f"Created {len(test_groups) + 1} test groups")

            campaigns = [
                {
                    "id": f"test_{i + 1}",
                    "group_id": group.group_id,
                    "variant": dict(group.variant or {}),
                    "subject": (group.variant or {}).get("subject"),
                    "content": (group.variant or {}).get("content"),
                    "recipients": _recipients(group.members),
                }
                for i, group in enumerate(test_groups)
            ]
            run.action(f"Created {len(campaigns)} test campaigns")

            test_tasks = [
                ScheduledTask(
                    task_type="send_test_campaign",
                    scheduled_for=now + timedelta(hours=TEST_SEND_DELAY_HOURS),
                    data=campaign,
                    priority=TaskPriority.HIGH,
                )
                for campaign in campaigns
            ]
            run.schedule(test_tasks)
            run.action(f"Scheduled {len(test_tasks)} test deliveries")

            run.schedule(
                [
                    ScheduledTask(
                        task_type="analyze_test_results",
                        scheduled_for=now + timedelta(hours=ANALYSIS_DELAY_HOURS),
                        data={"campaigns": [c["id"] for c in campaigns]},
                        priority=TaskPriority.MEDIUM,
                    )
                ]
            )
            run.action("Scheduled results analysis")

            run.schedule(
                [
                    ScheduledTask(
                        task_type="deploy_winner",
                        scheduled_for=now + timedelta(hours=DEPLOYMENT_DELAY_HOURS),
                        data={
                            "campaign_data": dict(campaign_data),
                            "test_campaigns": [c["id"] for c in campaigns],
                            "group_id": winner_group.group_id,
                            "recipients": _recipients(winner_group.members),
                        },
                        priority=TaskPriority.HIGH,
                    )
                ]
            )
            run.action("Scheduled winner deployment")

        return run.finish()

    def _target_audience(
        self,
        rules: Optional[Sequence[SegmentationRule]],
        now: datetime,
    ) -> list[Member]:
        subscribers = self.store.list_newsletter_subscribers()
        if not rules:
            return subscribers
        return self.segmentation.evaluate(subscribers, rules, now).members

    # =========================================================================
    # DRIP CAMPAIGN
    # =========================================================================

    def execute_drip_campaign(
        self,
        member: Member,
        campaign_type: str,
        custom_data: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowResult:
        """Enroll a member in a drip campaign and schedule every step.

        Step conditions are carried in the task data for the dispatcher to
        re-check at fire time (see campaigns.evaluate_step_condition).

        Returns:
            WorkflowResult with one execute_drip_step task per step, or
            success=False if the campaign type is unknown
        """
        now = self.services.now()

        with WorkflowRun("drip_campaign", member_id=member.id, campaign=str(campaign_type)) as run:
            campaign = get_campaign(campaign_type)
            run.action(f"Loaded campaign: {campaign.name}")

            if not member.email_subscribed:
                return run.skip("Member not eligible for campaign")

            state = CampaignState(
                member_id=member.id,
                campaign_id=campaign.name,
                start_date=now,
                custom_data=dict(custom_data or {}),
            )
            run.action("Initialized campaign state")

            tasks = schedule_campaign_days(
                state.start_date,
                campaign.steps,
                task_type="execute_drip_step",
                priority=TaskPriority.MEDIUM,
                payload=lambda i, step: {
                    "member_id": member.id,
                    "email": member.email,
                    "campaign_type": CampaignType(campaign_type).value,
                    "step_index": i,
                    "template": step.template,
                    "condition": step.condition,
                    "campaign_state": state,
                },
            )
            run.schedule(tasks)
            run.action(f"Scheduled {len(tasks)} campaign steps")

            tracked = run.step(
                "Failed to configure campaign tracking",
                self._track,
                "drip_campaign",
                {"member_id": member.id, "campaign": campaign.name, "steps": len(tasks)},
                default=False,
            )
            if tracked:
                run.action("Configured campaign tracking")

        return run.finish()

    def _track(self, event: str, properties: dict[str, Any]) -> bool:
        self.services.analytics.track(event, properties)
        return True
