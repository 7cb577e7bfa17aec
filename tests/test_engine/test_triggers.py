"""Tests for behavioral trigger evaluation."""

from datetime import datetime, timedelta

from charityflow.db.models import BehaviorTrigger, Member, MembershipTier
from charityflow.db.stores import InMemoryExecutionLog
from charityflow.engine.triggers import (
    check_execution_limits,
    claim_execution,
    evaluate_trigger_conditions,
    updated_engagement_score,
)


class TestEvaluateTriggerConditions:
    """Test AND-combined conditions."""

    def test_empty_conditions_pass(self, now: datetime, new_member: Member):
        assert evaluate_trigger_conditions(new_member, {}, now=now)

    def test_min_engagement_below_threshold(self, now: datetime):
        """Score 40 does not meet a minimum of 50."""
        member = Member(id="m", engagement_score=40)
        assert not evaluate_trigger_conditions(member, {"min_engagement_score": 50}, now=now)

    def test_min_engagement_is_inclusive(self, now: datetime):
        member = Member(id="m", engagement_score=50)
        assert evaluate_trigger_conditions(member, {"min_engagement_score": 50}, now=now)

    def test_tier_condition(self, now: datetime, active_member: Member):
        assert evaluate_trigger_conditions(active_member, {"tier": "gold"}, now=now)
        assert not evaluate_trigger_conditions(
            active_member, {"tier": MembershipTier.PLATINUM}, now=now
        )

    def test_days_since_last_donation(self, now: datetime, lapsed_member: Member):
        assert evaluate_trigger_conditions(lapsed_member, {"days_since_last_donation": 180}, now=now)
        assert not evaluate_trigger_conditions(
            lapsed_member, {"days_since_last_donation": 365}, now=now
        )

    def test_days_since_last_donation_never_donated(self, now: datetime, new_member: Member):
        """A member who never gave has no elapsed days."""
        assert not evaluate_trigger_conditions(new_member, {"days_since_last_donation": 0}, now=now)

    def test_unknown_condition_passes(self, now: datetime, new_member: Member):
        assert evaluate_trigger_conditions(new_member, {"favorite_color": "teal"}, now=now)

    def test_all_conditions_must_hold(self, now: datetime, active_member: Member):
        conditions = {"min_engagement_score": 50, "tier": "silver"}
        assert not evaluate_trigger_conditions(active_member, conditions, now=now)


class TestCheckExecutionLimits:
    """Test lifetime cap and cooldown."""

    def test_no_limits(self, now: datetime, active_member: Member):
        trigger = BehaviorTrigger(event="donation_made")
        assert check_execution_limits(active_member, trigger, InMemoryExecutionLog(), now)

    def test_lifetime_cap(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        trigger = BehaviorTrigger(event="donation_made", max_executions=2)
        log.record_execution(active_member.id, "donation_made", now - timedelta(days=60))
        assert check_execution_limits(active_member, trigger, log, now)
        log.record_execution(active_member.id, "donation_made", now - timedelta(days=30))
        assert not check_execution_limits(active_member, trigger, log, now)

    def test_cooldown(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        trigger = BehaviorTrigger(event="donation_made", cooldown_period=24)
        log.record_execution(active_member.id, "donation_made", now - timedelta(hours=23))
        assert not check_execution_limits(active_member, trigger, log, now)

    def test_cooldown_expired(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        trigger = BehaviorTrigger(event="donation_made", cooldown_period=24)
        log.record_execution(active_member.id, "donation_made", now - timedelta(hours=25))
        assert check_execution_limits(active_member, trigger, log, now)

    def test_limits_are_per_event(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        log.record_execution(active_member.id, "event_registered", now)
        trigger = BehaviorTrigger(event="donation_made", max_executions=1, cooldown_period=24)
        assert check_execution_limits(active_member, trigger, log, now)


class TestClaimExecution:
    """Test the recording gate used by workflows."""

    def test_claim_records_execution(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        trigger = BehaviorTrigger(event="donation_made", max_executions=1)

        assert claim_execution(active_member, trigger, log, now)
        assert log.count_recent_executions(active_member.id, "donation_made") == 1
        assert not claim_execution(active_member, trigger, log, now)
        assert log.count_recent_executions(active_member.id, "donation_made") == 1

    def test_claim_honors_cooldown(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        trigger = BehaviorTrigger(event="donation_made", cooldown_period=24)
        log.record_execution(active_member.id, "donation_made", now - timedelta(hours=23))
        assert not claim_execution(active_member, trigger, log, now)

        later = now + timedelta(hours=2)
        assert claim_execution(active_member, trigger, log, later)

    def test_no_limits_always_claims(self, now: datetime, active_member: Member):
        log = InMemoryExecutionLog()
        trigger = BehaviorTrigger(event="email_opened")
        assert claim_execution(active_member, trigger, log, now)
        assert claim_execution(active_member, trigger, log, now)


class TestEngagementScore:
    def test_modifiers(self):
        assert updated_engagement_score(40, "donation_made") == 50
        assert updated_engagement_score(40, "email_clicked") == 43
        assert updated_engagement_score(40, "unknown_event") == 40

    def test_clamped_to_100(self):
        assert updated_engagement_score(95, "donation_made") == 100
