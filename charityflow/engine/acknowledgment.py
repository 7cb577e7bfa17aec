"""Donation acknowledgment workflow.

Runs once per confirmed payment:
    1. Thank-you email (sent now, or scheduled when delayed)
    2. Tax receipt
    3. Tier upgrade check on the current calendar year's giving
    4. Impact update (always delayed)
    5. Donor recognition for large gifts (off by default)
    6. Staff follow-up task
    7. Acknowledgment status written back to the donation record

Stages are independent: one failing stage is recorded in errors and the
rest still run.

Usage:
    from charityflow.engine.acknowledgment import DonationAcknowledgmentWorkflow

    workflow = DonationAcknowledgmentWorkflow(services)
    result = workflow.execute(donation, member)
"""

from dataclasses import dataclass, replace
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional

from charityflow.core.logging import get_logger
from charityflow.db.models import (
    Donation,
    Member,
    RenderedContent,
    StaffTask,
    TaskPriority,
    TierChange,
    WorkflowResult,
)
from charityflow.engine.pipeline import WorkflowRun
from charityflow.engine.scheduler import delayed_task
from charityflow.engine.services import WorkflowServices
from charityflow.engine.tiers import ACKNOWLEDGMENT_LADDER, check_upgrade, tier_benefits, yearly_total

logger = get_logger(__name__)

DEFAULT_DESIGNATION = "General Fund"


@dataclass(frozen=True)
class AcknowledgmentConfig:
    """Acknowledgment workflow switches and delays.

    Attributes:
        send_thank_you_email: Send the thank-you email
        thank_you_email_delay: Minutes; 0 sends immediately
        send_tax_receipt: Send the tax receipt
        tax_receipt_delay: Minutes; 0 sends immediately
        check_tier_upgrade: Recompute the member's tier
        tier_upgrade_delay: Minutes before the celebration email
        send_impact_update: Schedule the impact update
        impact_update_delay: Hours
        send_donor_recognition: Schedule recognition for large gifts
        recognition_delay: Days
        recognition_min_amount: Smallest gift that earns recognition
        personalized_content: Designation-specific impact message
        create_follow_up_task: Create a staff follow-up task
        task_delay: Days until the staff task is due
    """

    send_thank_you_email: bool = True
    thank_you_email_delay: float = 0
    send_tax_receipt: bool = True
    tax_receipt_delay: float = 5
    check_tier_upgrade: bool = True
    tier_upgrade_delay: float = 1
    send_impact_update: bool = True
    impact_update_delay: float = 24
    send_donor_recognition: bool = False
    recognition_delay: float = 7
    recognition_min_amount: Decimal = Decimal("500")
    personalized_content: bool = True
    create_follow_up_task: bool = True
    task_delay: float = 30


def _money(amount: Decimal) -> str:
    return f"{Decimal(str(amount)):.2f}"


def impact_message(designation: Optional[str], amount: Decimal) -> str:
    """Designation-specific impact line; unknown designations use the General Fund line."""
    value = Decimal(str(amount))
    dollars = _money(value)
    messages = {
        "General Fund": (
            f"Your ${dollars} donation helps us maintain our core programs and "
            "respond to urgent community needs."
        ),
        "Education Program": (
            f"Your ${dollars} contribution will provide educational resources "
            f"for {int(value // 25)} students."
        ),
        "Community Outreach": (
            f"Your ${dollars} gift enables us to reach {int(value // 15)} more "
            "community members with essential services."
        ),
        "Emergency Relief Fund": (
            f"Your ${dollars} donation helps us provide immediate assistance to "
            "families in crisis."
        ),
        "Youth Programs": (
            f"Your ${dollars} investment supports youth development activities "
            f"for {int(value // 30)} young people."
        ),
    }
    return messages.get(designation or DEFAULT_DESIGNATION, messages[DEFAULT_DESIGNATION])


def generic_impact_message(designation: Optional[str]) -> str:
    return (
        f"Your generous donation to {designation or DEFAULT_DESIGNATION} helps us "
        "continue our mission of serving the community and making a positive "
        "impact in people's lives."
    )


def receipt_number(donation_id: str, year: int) -> str:
    """RECEIPT-<last 8 characters of the donation id, upper case>-<year>."""
    return f"RECEIPT-{donation_id[-8:].upper()}-{year}"


class DonationAcknowledgmentWorkflow:
    """Thank, receipt, upgrade and follow up on a donation."""

    def __init__(
        self,
        services: WorkflowServices,
        config: Optional[AcknowledgmentConfig] = None,
    ):
        self.services = services
        self.config = config or AcknowledgmentConfig()

    def execute(
        self,
        donation: Donation,
        member: Member,
        **overrides: Any,
    ) -> WorkflowResult:
        """Run the acknowledgment workflow for one donation.

        Args:
            donation: The confirmed donation
            member: The donor
            **overrides: AcknowledgmentConfig fields for this run only

        Returns:
            WorkflowResult; tier_change is set when the member was upgraded
        """
        config = replace(self.config, **overrides) if overrides else self.config
        now = self.services.now()
        variables = self._donation_variables(donation, member, config)

        with WorkflowRun("donation_acknowledgment", donation_id=donation.id, member_id=member.id) as run:
            if config.send_thank_you_email:
                task = run.step(
                    "Failed to send thank you email",
                    self._deliver,
                    "thank_you_email",
                    "acknowledgment_thank_you",
                    member,
                    variables,
                    timedelta(minutes=config.thank_you_email_delay),
                    TaskPriority.HIGH,
                    donation,
                    default=False,
                )
                if task is not False:
                    run.schedule([task] if task else [])
                    run.action("thank_you_email")

            if config.send_tax_receipt:
                task = run.step(
                    "Failed to send tax receipt",
                    self._deliver,
                    "tax_receipt",
                    "tax_receipt",
                    member,
                    {**variables, "receipt_number": receipt_number(donation.id, now.year)},
                    timedelta(minutes=config.tax_receipt_delay),
                    TaskPriority.HIGH,
                    donation,
                    default=False,
                )
                if task is not False:
                    run.schedule([task] if task else [])
                    run.action("tax_receipt")

            if config.check_tier_upgrade:
                change = run.step(
                    "Failed to check tier upgrade",
                    self._check_tier_upgrade,
                    donation,
                    member,
                )
                if change is not None:
                    run.result.tier_change = change
                    task = run.step(
                        "Failed to send tier upgrade celebration",
                        self._deliver,
                        "tier_upgrade_celebration",
                        "tier_upgrade_celebration",
                        member,
                        {
                            "new_tier_title": change.new_tier.value.capitalize(),
                            "tier_benefits": "\n".join(
                                f"- {b}" for b in tier_benefits(change.new_tier)
                            ),
                            "old_tier": change.old_tier,
                            "new_tier": change.new_tier,
                        },
                        timedelta(minutes=config.tier_upgrade_delay),
                        TaskPriority.MEDIUM,
                        donation,
                        default=False,
                    )
                    if task:
                        run.schedule([task])
                    run.action("tier_upgrade_check")

            if config.send_impact_update:
                content = self.services.personalizer.render("impact_update", member, variables)
                run.schedule(
                    [
                        delayed_task(
                            now,
                            "impact_update",
                            self._task_data(member, donation, content),
                            TaskPriority.LOW,
                            hours=config.impact_update_delay,
                        )
                    ]
                )
                run.action("impact_update_scheduled")

            if config.send_donor_recognition and donation.amount >= config.recognition_min_amount:
                content = self.services.personalizer.render("donor_recognition", member, variables)
                run.schedule(
                    [
                        delayed_task(
                            now,
                            "donor_recognition",
                            self._task_data(member, donation, content),
                            TaskPriority.LOW,
                            days=config.recognition_delay,
                        )
                    ]
                )
                run.action("donor_recognition_scheduled")

            if config.create_follow_up_task:
                created = run.step(
                    "Failed to create staff follow-up task",
                    self._create_follow_up_task,
                    donation,
                    member,
                    config.task_delay,
                    default=False,
                )
                if created:
                    run.action("staff_follow_up_task")

            run.step(
                "Failed to update donation status",
                self.services.update_donation,
                donation.id,
                {
                    "acknowledgment_sent": True,
                    "acknowledgment_date": now,
                    "workflow_completed": not run.result.errors,
                    "actions_executed": list(run.result.actions_executed),
                    "scheduled_actions": len(run.result.scheduled_tasks),
                },
            )

        return run.finish()

    # =========================================================================
    # STAGES
    # =========================================================================

    def _donation_variables(
        self,
        donation: Donation,
        member: Member,
        config: AcknowledgmentConfig,
    ) -> dict[str, Any]:
        designation = donation.designation or DEFAULT_DESIGNATION
        if config.personalized_content:
            message = impact_message(designation, donation.amount)
        else:
            message = generic_impact_message(designation)

        recurring_line = ""
        if donation.is_recurring:
            recurring_line = f"Frequency: {donation.recurring_frequency or 'Monthly'}\n"

        return {
            "donation_amount": _money(donation.amount),
            "designation": designation,
            "donation_date": donation.created_at.strftime("%m/%d/%Y"),
            "recurring_line": recurring_line,
            "impact_message": message,
            "portal_url": self.services.portal_url("/portal/donations"),
            "tax_id": self.services.config.tax_id,
            "member_email": member.email,
        }

    def _task_data(
        self,
        member: Member,
        donation: Donation,
        content: RenderedContent,
    ) -> dict[str, Any]:
        return {
            "member_id": member.id,
            "recipient": member.email,
            "donation_id": donation.id,
            "content": content,
        }

    def _deliver(
        self,
        task_type: str,
        template_id: str,
        member: Member,
        variables: dict[str, Any],
        delay: timedelta,
        priority: TaskPriority,
        donation: Donation,
    ):
        content = self.services.personalizer.render(template_id, member, variables)
        return self.services.deliver_or_schedule(
            task_type,
            member.email,
            content,
            delay,
            priority,
            data={"member_id": member.id, "donation_id": donation.id},
        )

    def _check_tier_upgrade(self, donation: Donation, member: Member) -> Optional[TierChange]:
        """Recompute the tier from this calendar year's giving.

        The donation being acknowledged is counted even if the store has not
        recorded it yet.
        """
        now = self.services.now()
        donations = self.services.store.get_member_donations(member.id)
        extra = Decimal("0")
        if all(d.id != donation.id for d in donations):
            extra = Decimal(str(donation.amount))
        total = yearly_total(donations, now, extra)

        new_tier = check_upgrade(ACKNOWLEDGMENT_LADDER, member.tier, total)
        if new_tier is None:
            return None

        self.services.update_member(member.id, {"tier": new_tier})
        old = getattr(member.tier, "value", member.tier)
        logger.info(
            f"Member {member.id} upgraded from {old} to {new_tier.value}",
            extra={"context": {"member_id": member.id, "yearly_total": str(total)}},
        )
        return TierChange(
            member_id=member.id,
            old_tier=member.tier,
            new_tier=new_tier,
            total=total,
        )

    def _create_follow_up_task(self, donation: Donation, member: Member, delay_days: float) -> bool:
        self.services.staff_tasks.create_task(
            StaffTask(
                description=(
                    f"Follow up with {member.first_name} {member.last_name} on "
                    f"${_money(donation.amount)} donation to "
                    f"{donation.designation or DEFAULT_DESIGNATION}"
                ),
                due_at=self.services.now() + timedelta(days=delay_days),
                member_id=member.id,
                reference_id=donation.id,
            )
        )
        return True
