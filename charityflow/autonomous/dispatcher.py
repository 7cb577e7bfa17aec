"""Automation dispatcher - Routes inbound events to workflows.

One level above the orchestrators. For every inbound event:
    1. Skip if the automation type is disabled in configuration
    2. Run the workflow
    3. Hand every scheduled task to the ScheduledTaskSink
    4. Notify the external automation hook (failures are logged, not fatal)

Unexpected exceptions from a workflow are caught here, logged with the
traceback, and returned as a failed WorkflowResult so the request handler
that called us never crashes.

Usage:
    from charityflow.autonomous.dispatcher import AutomationService

    service = AutomationService(services, task_sink=sink, hook=N8nWebhookHook())
    service.on_payment_confirmed(confirmation)
"""

from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence

from charityflow.core.exceptions import CharityFlowError
from charityflow.core.logging import get_logger
from charityflow.db.models import (
    BehaviorTrigger,
    Donation,
    Event,
    EventRegistration,
    Member,
    MembershipTier,
    PaymentConfirmation,
    SegmentationRule,
    WorkflowResult,
)
from charityflow.engine.acknowledgment import DonationAcknowledgmentWorkflow
from charityflow.engine.campaigns import CampaignType
from charityflow.engine.communication import (
    DEFAULT_INACTIVITY_DAYS,
    DEFAULT_TEST_PERCENTAGE,
    CommunicationWorkflowEngine,
    NewsletterContent,
)
from charityflow.engine.events import EventManagementWorkflow
from charityflow.engine.onboarding import MemberOnboardingWorkflow
from charityflow.engine.services import WorkflowServices
from charityflow.integrations.base import ExternalAutomationHook, ScheduledTaskSink
from charityflow.integrations.local import InMemoryTaskSink, NullAutomationHook

logger = get_logger(__name__)


class AutomationType(str, Enum):
    """Automation types; values are what CHARITYFLOW_DISABLED_AUTOMATIONS lists."""

    MEMBER_ONBOARDING = "member_onboarding"
    DONATION_ACKNOWLEDGMENT = "donation_acknowledgment"
    TIER_UPGRADE = "tier_upgrade"
    EVENT_REGISTRATION = "event_registration"
    EVENT_REMINDER = "event_reminder"
    EVENT_CHECK_IN = "event_check_in"
    POST_EVENT_SURVEY = "post_event_survey"
    BEHAVIORAL_TRIGGERS = "behavioral_triggers"
    DRIP_CAMPAIGNS = "drip_campaigns"
    NEWSLETTER = "newsletter_automation"
    REENGAGEMENT = "reengagement_campaign"
    AB_TEST = "ab_test"


# Webhook path per automation type
HOOK_WORKFLOWS: dict[AutomationType, str] = {
    AutomationType.MEMBER_ONBOARDING: "member-onboarding",
    AutomationType.DONATION_ACKNOWLEDGMENT: "donation-acknowledgment",
    AutomationType.TIER_UPGRADE: "tier-upgrade",
    AutomationType.EVENT_REGISTRATION: "event-registration",
    AutomationType.EVENT_REMINDER: "event-reminder",
    AutomationType.EVENT_CHECK_IN: "event-check-in",
    AutomationType.POST_EVENT_SURVEY: "post-event-survey",
    AutomationType.BEHAVIORAL_TRIGGERS: "communication-workflow",
}


def _member_payload(member: Member) -> dict[str, Any]:
    return {
        "member_id": member.id,
        "member_email": member.email,
        "member_name": f"{member.first_name} {member.last_name}",
        "member_tier": member.tier,
    }


def merge_results(results: Sequence[WorkflowResult]) -> WorkflowResult:
    """Combine the results of workflows run for one inbound event."""
    merged = WorkflowResult()
    for result in results:
        merged.actions_executed.extend(result.actions_executed)
        merged.scheduled_tasks.extend(result.scheduled_tasks)
        merged.errors.extend(result.errors)
        if result.tier_change is not None:
            merged.tier_change = result.tier_change
    merged.success = all(r.success for r in results)
    return merged


class AutomationService:
    """Inbound event router.

    Attributes:
        services: Collaborators shared with every workflow
        task_sink: Receives every scheduled task
        hook: External automation hook (n8n)
    """

    def __init__(
        self,
        services: WorkflowServices,
        task_sink: Optional[ScheduledTaskSink] = None,
        hook: Optional[ExternalAutomationHook] = None,
    ):
        self.services = services
        self.task_sink = task_sink or InMemoryTaskSink()
        self.hook = hook or NullAutomationHook()

        self.communication = CommunicationWorkflowEngine(services)
        self.acknowledgment = DonationAcknowledgmentWorkflow(services)
        self.events = EventManagementWorkflow(services)
        self.onboarding = MemberOnboardingWorkflow(services)

    def is_enabled(self, automation: AutomationType) -> bool:
        return automation.value not in self.services.config.disabled_automations

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(
        self,
        automation: AutomationType,
        run: Callable[[], WorkflowResult],
        hook_data: Optional[Callable[[WorkflowResult], dict[str, Any]]] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> WorkflowResult:
        log_context = {"automation": automation.value, **(context or {})}

        if not self.is_enabled(automation):
            logger.info(
                f"{automation.value} automation disabled, skipping",
                extra={"context": log_context},
            )
            return WorkflowResult().skip(f"{automation.value} automation disabled")

        try:
            result = run()
        except Exception as e:
            logger.error(
                f"{automation.value} automation failed: {e}",
                extra={"context": log_context},
                exc_info=True,
            )
            return WorkflowResult().fail(f"Workflow failed: {e}")

        self._enqueue(result, log_context)

        workflow = HOOK_WORKFLOWS.get(automation)
        if workflow and hook_data is not None:
            payload = {**hook_data(result), "trigger_type": automation.value}
            self._notify(workflow, payload, log_context)

        logger.info(
            f"{automation.value} automation completed",
            extra={
                "context": {
                    **log_context,
                    "success": result.success,
                    "actions": result.actions_executed,
                    "tasks": len(result.scheduled_tasks),
                }
            },
        )
        if result.errors:
            logger.warning(
                f"{automation.value} completed with errors: {'; '.join(result.errors)}",
                extra={"context": log_context},
            )
        return result

    def _enqueue(self, result: WorkflowResult, log_context: dict[str, Any]) -> None:
        for task in result.scheduled_tasks:
            try:
                self.task_sink.enqueue(task)
            except CharityFlowError as e:
                message = f"Failed to enqueue {task.task_type}: {e}"
                result.fail(message)
                logger.warning(message, extra={"context": log_context})

    def _notify(self, workflow: str, data: dict[str, Any], log_context: dict[str, Any]) -> None:
        if self.services.config.dry_run:
            logger.info(
                f"DRY RUN: would notify external automation {workflow}",
                extra={"context": log_context},
            )
            return
        try:
            self.hook.notify(workflow, data)
        except CharityFlowError as e:
            logger.warning(
                f"Error executing external workflow {workflow}: {e}",
                extra={"context": log_context},
            )

    # =========================================================================
    # MEMBER EVENTS
    # =========================================================================

    def on_payment_confirmed(self, confirmation: PaymentConfirmation) -> WorkflowResult:
        """Acknowledge a captured payment, then announce any tier upgrade."""
        log_context = {"member_id": confirmation.member_id, "donation_id": confirmation.donation_id}
        try:
            member = self.services.store.get_member(confirmation.member_id)
            donation = self._donation_for(confirmation)
        except CharityFlowError as e:
            logger.warning(f"Failed to load payment records: {e}", extra={"context": log_context})
            return WorkflowResult().fail(f"Failed to load payment records: {e}")
        if member is None:
            logger.warning(
                f"Payment confirmed for unknown member {confirmation.member_id}",
                extra={"context": log_context},
            )
            return WorkflowResult().fail(f"Member not found: {confirmation.member_id}")

        result = self._dispatch(
            AutomationType.DONATION_ACKNOWLEDGMENT,
            lambda: self.acknowledgment.execute(donation, member),
            hook_data=lambda r: {
                **_member_payload(member),
                "donation_id": donation.id,
                "donation_amount": donation.amount,
                "donation_designation": donation.designation,
                "is_recurring": donation.is_recurring,
                "donation_date": donation.created_at,
            },
            context={"member_id": member.id, "donation_id": donation.id},
        )

        change = result.tier_change
        if change is not None:
            self.on_tier_changed(member, change.old_tier, change.new_tier)
        return result

    def _donation_for(self, confirmation: PaymentConfirmation) -> Donation:
        for donation in self.services.store.get_member_donations(confirmation.member_id):
            if donation.id == confirmation.donation_id:
                return donation
        return Donation(
            id=confirmation.donation_id,
            member_id=confirmation.member_id,
            amount=confirmation.amount,
            created_at=self.services.now(),
            designation=confirmation.designation,
            is_recurring=confirmation.is_recurring,
            recurring_frequency=confirmation.recurring_frequency,
        )

    def on_member_registered(self, member: Member) -> WorkflowResult:
        """Onboard a new member and enroll them in the onboarding drip."""
        onboarding = self._dispatch(
            AutomationType.MEMBER_ONBOARDING,
            lambda: self.onboarding.execute(member),
            hook_data=lambda r: {**_member_payload(member), "registration_date": member.member_since},
            context={"member_id": member.id},
        )
        drip = self.run_drip_campaign(member, CampaignType.NEW_MEMBER_ONBOARDING.value)
        return merge_results([onboarding, drip])

    def on_member_action(
        self,
        member: Member,
        event: str,
        context: Optional[Mapping[str, Any]] = None,
        trigger: Optional[BehaviorTrigger] = None,
    ) -> WorkflowResult:
        """Run the behavioral workflow for a member action.

        Without an explicit trigger, conditions and throttling are read from
        context (conditions, delay, max_executions, cooldown_period).
        """
        context = dict(context or {})
        if trigger is None:
            trigger = BehaviorTrigger(
                event=event,
                conditions=dict(context.get("conditions") or {}),
                delay=context.get("delay") or 0,
                max_executions=context.get("max_executions"),
                cooldown_period=context.get("cooldown_period"),
            )

        return self._dispatch(
            AutomationType.BEHAVIORAL_TRIGGERS,
            lambda: self.communication.execute_behavioral_trigger(member, trigger, context),
            hook_data=lambda r: {
                **_member_payload(member),
                "workflow_type": event,
                "context": context,
            },
            context={"member_id": member.id, "event": event},
        )

    def on_tier_changed(
        self,
        member: Member,
        old_tier: MembershipTier,
        new_tier: MembershipTier,
    ) -> WorkflowResult:
        """Announce a tier upgrade to the external automation system."""

        def _record() -> WorkflowResult:
            result = WorkflowResult()
            result.actions_executed.append(
                f"Tier upgraded: {getattr(old_tier, 'value', old_tier)} -> "
                f"{getattr(new_tier, 'value', new_tier)}"
            )
            return result.finish()

        upgrade_date = self.services.now()
        return self._dispatch(
            AutomationType.TIER_UPGRADE,
            _record,
            hook_data=lambda r: {
                "member_id": member.id,
                "member_email": member.email,
                "member_name": f"{member.first_name} {member.last_name}",
                "old_tier": old_tier,
                "new_tier": new_tier,
                "total_donated": member.total_donated,
                "upgrade_date": upgrade_date,
            },
            context={"member_id": member.id},
        )

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _event_payload(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
    ) -> dict[str, Any]:
        return {
            **_member_payload(member),
            "event_id": event.id,
            "event_name": event.name,
            "event_date": event.start_date,
            "registration_id": registration.id,
            "registration_status": registration.status,
        }

    def on_event_registration(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.EVENT_REGISTRATION,
            lambda: self.events.execute_registration_confirmation(event, member, registration),
            hook_data=lambda r: self._event_payload(event, member, registration),
            context={"member_id": member.id, "event_id": event.id},
        )

    def on_event_reminder(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
        reminder_type: str,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.EVENT_REMINDER,
            lambda: self.events.execute_event_reminder(event, member, registration, reminder_type),
            hook_data=lambda r: {
                **self._event_payload(event, member, registration),
                "reminder_type": reminder_type,
            },
            context={"member_id": member.id, "event_id": event.id},
        )

    def on_event_check_in(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.EVENT_CHECK_IN,
            lambda: self.events.execute_check_in(event, member, registration),
            hook_data=lambda r: {
                **self._event_payload(event, member, registration),
                "check_in_time": self.services.now(),
            },
            context={"member_id": member.id, "event_id": event.id},
        )

    def on_post_event_survey(
        self,
        event: Event,
        member: Member,
        registration: EventRegistration,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.POST_EVENT_SURVEY,
            lambda: self.events.execute_post_event_survey(event, member, registration),
            hook_data=lambda r: self._event_payload(event, member, registration),
            context={"member_id": member.id, "event_id": event.id},
        )

    # =========================================================================
    # CAMPAIGNS (cron and staff initiated)
    # =========================================================================

    def run_newsletter(
        self,
        newsletter: NewsletterContent,
        segmentation_rules: Optional[Sequence[SegmentationRule]] = None,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.NEWSLETTER,
            lambda: self.communication.execute_newsletter_automation(newsletter, segmentation_rules),
        )

    def run_reengagement(self, inactivity_threshold_days: int = DEFAULT_INACTIVITY_DAYS) -> WorkflowResult:
        return self._dispatch(
            AutomationType.REENGAGEMENT,
            lambda: self.communication.execute_reengagement_campaign(inactivity_threshold_days),
            context={"threshold_days": inactivity_threshold_days},
        )

    def run_drip_campaign(
        self,
        member: Member,
        campaign_type: str,
        custom_data: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.DRIP_CAMPAIGNS,
            lambda: self.communication.execute_drip_campaign(member, campaign_type, custom_data),
            context={"member_id": member.id, "campaign_type": campaign_type},
        )

    def run_ab_test(
        self,
        campaign_data: Mapping[str, Any],
        variants: Sequence[Mapping[str, Any]],
        test_percentage: float = DEFAULT_TEST_PERCENTAGE,
        segmentation_rules: Optional[Sequence[SegmentationRule]] = None,
    ) -> WorkflowResult:
        return self._dispatch(
            AutomationType.AB_TEST,
            lambda: self.communication.execute_ab_test_workflow(
                campaign_data, variants, test_percentage, segmentation_rules
            ),
        )
