"""Member onboarding workflow.

Welcome email (sent immediately), tier introduction (+60 min), portal
guide (+180 min) and a staff follow-up task due after three days.
"""

from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, Optional

from charityflow.core.logging import get_logger
from charityflow.db.models import Member, MembershipTier, StaffTask, TaskPriority, WorkflowResult
from charityflow.engine.pipeline import WorkflowRun
from charityflow.engine.services import WorkflowServices

logger = get_logger(__name__)


ONBOARDING_BENEFITS: dict[MembershipTier, tuple[str, ...]] = {
    MembershipTier.BRONZE: (
        "Monthly newsletter with impact updates",
        "Annual impact report",
        "Member-only content access",
        "Community forum participation",
    ),
    MembershipTier.SILVER: (
        "All Bronze benefits",
        "Quarterly member meetups",
        "Priority event registration",
        "Direct communication with program managers",
        "Volunteer opportunity matching",
    ),
    MembershipTier.GOLD: (
        "All Silver benefits",
        "Monthly impact calls with leadership",
        "Behind-the-scenes facility tours",
        "Early access to new programs",
        "Personalized impact reports",
    ),
    MembershipTier.PLATINUM: (
        "All Gold benefits",
        "Quarterly strategy sessions with board members",
        "VIP event access and recognition",
        "Custom volunteer project opportunities",
        "Annual appreciation dinner invitation",
    ),
}


def onboarding_benefits(tier: Any) -> tuple[str, ...]:
    """Benefits introduced to a new member; bronze for tiers without a list."""
    try:
        key = MembershipTier(tier)
    except ValueError:
        key = MembershipTier.BRONZE
    return ONBOARDING_BENEFITS.get(key, ONBOARDING_BENEFITS[MembershipTier.BRONZE])


@dataclass(frozen=True)
class OnboardingConfig:
    """Delays are minutes for emails and hours for the staff task."""

    send_welcome_email: bool = True
    welcome_email_delay: float = 0
    send_tier_introduction: bool = True
    tier_intro_delay: float = 60
    send_portal_guide: bool = True
    portal_guide_delay: float = 180
    create_followup_task: bool = True
    followup_task_delay: float = 72


class MemberOnboardingWorkflow:
    def __init__(
        self,
        services: WorkflowServices,
        config: Optional[OnboardingConfig] = None,
    ):
        self.services = services
        self.config = config or OnboardingConfig()

    def execute(self, member: Member, **overrides: Any) -> WorkflowResult:
        """Welcome a new member.

        Args:
            member: The new member
            **overrides: OnboardingConfig fields for this run only

        Returns:
            WorkflowResult with the delayed onboarding emails
        """
        config = replace(self.config, **overrides) if overrides else self.config
        variables = {
            "portal_url": self.services.portal_url(),
            "tier_benefits": "\n".join(f"- {b}" for b in onboarding_benefits(member.tier)),
        }

        emails = []
        if config.send_welcome_email:
            emails.append(("welcome_email", "member_welcome", config.welcome_email_delay, TaskPriority.HIGH))
        if config.send_tier_introduction:
            emails.append(("tier_introduction", "tier_introduction", config.tier_intro_delay, TaskPriority.MEDIUM))
        if config.send_portal_guide:
            emails.append(("portal_guide", "portal_guide", config.portal_guide_delay, TaskPriority.MEDIUM))

        with WorkflowRun("member_onboarding", member_id=member.id) as run:
            for name, template_id, delay, priority in emails:
                content = self.services.personalizer.render(template_id, member, variables)
                task = run.step(
                    f"Failed to send {name.replace('_', ' ')}",
                    self.services.deliver_or_schedule,
                    name,
                    member.email,
                    content,
                    timedelta(minutes=delay),
                    priority,
                    {"member_id": member.id, "template": template_id},
                    default=False,
                )
                if task is False:
                    continue
                if task is None:
                    run.action(f"{name}_sent")
                else:
                    run.schedule([task])
                    run.action(f"{name}_scheduled")

            if config.create_followup_task:
                created = run.step(
                    "Failed to create follow-up task",
                    self._create_followup_task,
                    member,
                    config.followup_task_delay,
                    default=False,
                )
                if created:
                    run.action("followup_task_scheduled")

        return run.finish()

    def _create_followup_task(self, member: Member, delay_hours: float) -> bool:
        self.services.staff_tasks.create_task(
            StaffTask(
                description=f"Follow up with new member: {member.first_name} {member.last_name}",
                due_at=self.services.now() + timedelta(hours=delay_hours),
                member_id=member.id,
            )
        )
        return True
