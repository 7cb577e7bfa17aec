"""Member segmentation by weighted rules.

Each rule tests one condition against a member. A member's weight is the sum
of the weights of the rules it matches; members with zero weight are left
out of the segmented set.

Conditions:
    - high_engagement: engagement_score > 75
    - recent_donor: last donation within 30 days
    - premium_tier: gold or platinum
    - new_member: joined within 30 days
    - anything else: never matches

Usage:
    from charityflow.engine.segmentation import SegmentationEvaluator

    evaluator = SegmentationEvaluator()
    outcome = evaluator.evaluate(members, rules, now=datetime.now())
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from charityflow.core.logging import get_logger
from charityflow.db.models import (
    Member,
    MembershipTier,
    RuleMatch,
    SegmentationCondition,
    SegmentationResult,
    SegmentationRule,
)

logger = get_logger(__name__)

HIGH_ENGAGEMENT_THRESHOLD = 75
RECENT_WINDOW = timedelta(days=30)
PREMIUM_TIERS = frozenset({MembershipTier.GOLD, MembershipTier.PLATINUM})


def _high_engagement(member: Member, now: datetime) -> bool:
    return member.engagement_score > HIGH_ENGAGEMENT_THRESHOLD


def _recent_donor(member: Member, now: datetime) -> bool:
    return member.last_donation_date is not None and member.last_donation_date > now - RECENT_WINDOW


def _premium_tier(member: Member, now: datetime) -> bool:
    return member.tier in PREMIUM_TIERS


def _new_member(member: Member, now: datetime) -> bool:
    return member.member_since is not None and member.member_since > now - RECENT_WINDOW


_EVALUATORS: dict[str, Callable[[Member, datetime], bool]] = {
    SegmentationCondition.HIGH_ENGAGEMENT.value: _high_engagement,
    SegmentationCondition.RECENT_DONOR.value: _recent_donor,
    SegmentationCondition.PREMIUM_TIER.value: _premium_tier,
    SegmentationCondition.NEW_MEMBER.value: _new_member,
}


def evaluate_rule(member: Member, rule: SegmentationRule, now: datetime) -> bool:
    """Whether one rule matches one member. Unknown conditions fail closed."""
    condition = rule.condition
    if isinstance(condition, SegmentationCondition):
        condition = condition.value
    evaluator = _EVALUATORS.get(condition)
    if evaluator is None:
        return False
    return evaluator(member, now)


@dataclass
class SegmentationOutcome:
    """Segmented member set plus the reportable result.

    Attributes:
        members: Included members, input order preserved
        weights: member id -> summed matched weight
        result: Segments, per-rule matches and aggregate score
    """

    members: list[Member] = field(default_factory=list)
    weights: dict[str, float] = field(default_factory=dict)
    result: SegmentationResult = field(default_factory=SegmentationResult)


class SegmentationEvaluator:
    """Score members against a rule list.

    Pure: rules are never mutated, so one rule list can be shared by
    concurrent evaluations.
    """

    def evaluate(
        self,
        members: Sequence[Member],
        rules: Sequence[SegmentationRule],
        now: Optional[datetime] = None,
    ) -> SegmentationOutcome:
        """Segment members.

        Args:
            members: Candidates
            rules: Weighted rules
            now: Reference time for the 30-day windows

        Returns:
            SegmentationOutcome with included members, first-seen segment
            names and score = total weight / included count (0 if none)
        """
        now = now or datetime.now()
        outcome = SegmentationOutcome()
        matched_rules: set[int] = set()
        segments: list[str] = []
        total = 0.0

        for member in members:
            member_weight = 0.0
            member_segments: list[str] = []

            for index, rule in enumerate(rules):
                if evaluate_rule(member, rule, now):
                    member_weight += rule.weight
                    member_segments.append(rule.name)
                    matched_rules.add(index)

            if member_weight > 0:
                outcome.members.append(member)
                outcome.weights[member.id] = member_weight
                total += member_weight
                for name in member_segments:
                    if name not in segments:
                        segments.append(name)

        included = len(outcome.members)
        outcome.result = SegmentationResult(
            segments=segments,
            rules=[RuleMatch(rule=rule, matched=i in matched_rules) for i, rule in enumerate(rules)],
            score=total / included if included else 0.0,
        )

        logger.debug(
            "Segmentation evaluated",
            extra={
                "context": {
                    "candidates": len(members),
                    "included": included,
                    "segments": segments,
                }
            },
        )
        return outcome
