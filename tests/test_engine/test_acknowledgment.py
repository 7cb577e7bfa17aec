"""Tests for the donation acknowledgment workflow."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from charityflow.db.models import Donation, Member, MembershipTier, TaskPriority
from charityflow.db.stores import InMemoryMemberStore
from charityflow.engine.acknowledgment import (
    AcknowledgmentConfig,
    DonationAcknowledgmentWorkflow,
    generic_impact_message,
    impact_message,
    receipt_number,
)
from charityflow.engine.services import WorkflowServices
from charityflow.integrations.local import RecordingTransport


@pytest.fixture
def friend(store: InMemoryMemberStore, now: datetime) -> Member:
    """Friend-tier donor already on the acknowledgment ladder."""
    member = Member(
        id="m-friend",
        first_name="Fran",
        last_name="Allen",
        email="fran@example.org",
        tier=MembershipTier.FRIEND,
        engagement_score=55,
        total_donated=Decimal("400"),
        last_donation_date=now - timedelta(days=40),
        member_since=now - timedelta(days=700),
    )
    store.add_member(member)
    return member


@pytest.fixture
def donation(store: InMemoryMemberStore, friend: Member, now: datetime) -> Donation:
    """$100 gift to the Education Program, recorded in the store."""
    gift = Donation(
        id="don-7f3a9c2e1b",
        member_id=friend.id,
        amount=Decimal("100"),
        created_at=now,
        designation="Education Program",
    )
    store.add_donation(gift)
    return gift


@pytest.fixture
def workflow(services: WorkflowServices) -> DonationAcknowledgmentWorkflow:
    return DonationAcknowledgmentWorkflow(services)


class TestImpactMessages:
    """Test designation-specific impact lines."""

    def test_education_program(self):
        message = impact_message("Education Program", Decimal("100"))
        assert message == (
            "Your $100.00 contribution will provide educational resources for 4 students."
        )

    def test_community_outreach(self):
        assert "reach 6 more community members" in impact_message("Community Outreach", Decimal("90"))

    def test_youth_programs(self):
        assert "for 5 young people" in impact_message("Youth Programs", Decimal("150"))

    def test_unknown_designation_uses_general_fund(self):
        assert impact_message("Roof Repairs", Decimal("20")) == impact_message(
            "General Fund", Decimal("20")
        )
        assert impact_message(None, Decimal("20")).startswith("Your $20.00 donation")

    def test_generic_message(self):
        assert "donation to Youth Programs" in generic_impact_message("Youth Programs")

    def test_receipt_number(self):
        assert receipt_number("don-7f3a9c2e1b", 2026) == "RECEIPT-3A9C2E1B-2026"


class TestDonationAcknowledgment:
    """Test the full acknowledgment run."""

    def test_default_run(self, workflow, services, store, friend, donation, now):
        result = workflow.execute(donation, friend)

        assert result.success is True
        assert result.actions_executed == [
            "thank_you_email",
            "tax_receipt",
            "impact_update_scheduled",
            "staff_follow_up_task",
        ]
        assert result.tier_change is None
        assert [(t.task_type, t.scheduled_for) for t in result.scheduled_tasks] == [
            ("tax_receipt", now + timedelta(minutes=5)),
            ("impact_update", now + timedelta(hours=24)),
        ]

    def test_thank_you_sent_immediately(self, workflow, services, friend, donation):
        workflow.execute(donation, friend)

        sent = services.transport.sent_to("fran@example.org")
        assert len(sent) == 1
        assert sent[0].content.subject == "Thank you for your generous donation, Fran!"
        assert "Amount: $100.00" in sent[0].content.content
        assert "educational resources for 4 students" in sent[0].content.content
        assert "https://members.harborfood.org/portal/donations" in sent[0].content.content
        assert "Tax ID: 98-7654321" in sent[0].content.content

    def test_tax_receipt_content(self, workflow, friend, donation):
        result = workflow.execute(donation, friend)
        receipt = result.scheduled_tasks[0]

        assert receipt.priority == TaskPriority.HIGH
        assert receipt.data["content"].subject == "Tax Receipt - RECEIPT-3A9C2E1B-2026"
        assert "Donor: Fran Allen" in receipt.data["content"].content
        assert receipt.data["donation_id"] == "don-7f3a9c2e1b"

    def test_donation_status_written_back(self, workflow, store, friend, donation, now):
        workflow.execute(donation, friend)
        status = store.get_donation_status("don-7f3a9c2e1b")

        assert status["acknowledgment_sent"] is True
        assert status["acknowledgment_date"] == now
        assert status["workflow_completed"] is True
        assert status["scheduled_actions"] == 2

    def test_staff_follow_up_task(self, workflow, services, friend, donation, now):
        workflow.execute(donation, friend)
        task = services.staff_tasks.tasks[0]

        assert task.due_at == now + timedelta(days=30)
        assert task.reference_id == "don-7f3a9c2e1b"
        assert "$100.00 donation to Education Program" in task.description

    def test_tier_upgrade_on_yearly_total(self, workflow, store, friend, donation, now):
        """$900 earlier this year plus $100 now reaches advocate."""
        store.add_donation(
            Donation("don-jan", friend.id, Decimal("900"), datetime(2026, 1, 10), "General Fund")
        )
        result = workflow.execute(donation, friend)

        assert result.success is True
        assert "tier_upgrade_check" in result.actions_executed
        assert result.tier_change.old_tier == MembershipTier.FRIEND
        assert result.tier_change.new_tier == MembershipTier.ADVOCATE
        assert result.tier_change.total == Decimal("1000")
        assert store.get_member("m-friend").tier == MembershipTier.ADVOCATE

        celebration = next(
            t for t in result.scheduled_tasks if t.task_type == "tier_upgrade_celebration"
        )
        assert celebration.scheduled_for == now + timedelta(minutes=1)
        assert celebration.data["content"].subject == "Congratulations! You've been upgraded to Advocate"
        assert "- Exclusive advocate events" in celebration.data["content"].content

    def test_prior_year_gifts_do_not_count(self, workflow, store, friend, donation):
        store.add_donation(
            Donation("don-old", friend.id, Decimal("5000"), datetime(2025, 12, 31))
        )
        result = workflow.execute(donation, friend)
        assert result.tier_change is None

    def test_unrecorded_donation_still_counts_for_tier(self, workflow, store, friend, now):
        """A gift the store has not recorded yet counts toward the yearly total."""
        gift = Donation("don-new", friend.id, Decimal("1000"), now)
        result = workflow.execute(gift, friend)

        assert result.tier_change.new_tier == MembershipTier.ADVOCATE
        # The status write-back needs the stored record
        assert result.success is False
        assert result.errors[-1].startswith("Failed to update donation status:")

    def test_small_gift_keeps_donation_ladder_tier(self, workflow, store, active_member, now):
        """A platinum or gold member giving $50 is not moved to a lower rung."""
        store.update_member(active_member.id, {"tier": MembershipTier.PLATINUM})
        platinum = store.get_member(active_member.id)
        gift = Donation("don-small", platinum.id, Decimal("50"), now, "General Fund")
        store.add_donation(gift)

        result = workflow.execute(gift, platinum)

        assert result.success is True
        assert result.tier_change is None
        assert store.get_member(platinum.id).tier == MembershipTier.PLATINUM
        assert all(t.task_type != "tier_upgrade_celebration" for t in result.scheduled_tasks)

    def test_upgrade_disabled(self, workflow, store, friend, donation):
        store.add_donation(Donation("don-jan", friend.id, Decimal("900"), datetime(2026, 1, 10)))
        result = workflow.execute(donation, friend, check_tier_upgrade=False)
        assert result.tier_change is None
        assert store.get_member("m-friend").tier == MembershipTier.FRIEND

    def test_donor_recognition_for_large_gifts(self, services, store, friend, now):
        gift = Donation("don-big", friend.id, Decimal("500"), now)
        store.add_donation(gift)
        workflow = DonationAcknowledgmentWorkflow(
            services, AcknowledgmentConfig(send_donor_recognition=True)
        )
        result = workflow.execute(gift, friend)

        recognition = next(t for t in result.scheduled_tasks if t.task_type == "donor_recognition")
        assert recognition.scheduled_for == now + timedelta(days=7)
        assert "donor_recognition_scheduled" in result.actions_executed

    def test_small_gift_not_recognized(self, workflow, friend, donation):
        result = workflow.execute(donation, friend, send_donor_recognition=True)
        assert "donor_recognition_scheduled" not in result.actions_executed

    def test_delayed_thank_you_is_scheduled(self, workflow, services, friend, donation, now):
        result = workflow.execute(donation, friend, thank_you_email_delay=10)

        assert services.transport.sent == []
        thank_you = result.scheduled_tasks[0]
        assert thank_you.task_type == "thank_you_email"
        assert thank_you.scheduled_for == now + timedelta(minutes=10)

    def test_generic_content(self, workflow, services, friend, donation):
        workflow.execute(donation, friend, personalized_content=False)
        content = services.transport.sent[0].content.content
        assert "Your generous donation to Education Program helps us" in content

    def test_recurring_line(self, workflow, services, friend, store, now):
        gift = Donation("don-rec", friend.id, Decimal("25"), now, is_recurring=True)
        store.add_donation(gift)
        workflow.execute(gift, friend)
        assert "Frequency: Monthly" in services.transport.sent[0].content.content

    def test_failed_stage_does_not_stop_others(self, store, mock_config, friend, donation, now):
        services = WorkflowServices(
            store=store,
            config=mock_config,
            transport=RecordingTransport(fail_for={"fran@example.org"}),
            clock=lambda: now,
        )
        result = DonationAcknowledgmentWorkflow(services).execute(donation, friend)

        assert result.success is False
        assert result.errors == [
            "Failed to send thank you email: Delivery to fran@example.org rejected"
        ]
        assert result.actions_executed == [
            "tax_receipt",
            "impact_update_scheduled",
            "staff_follow_up_task",
        ]
        assert store.get_donation_status(donation.id)["workflow_completed"] is False
