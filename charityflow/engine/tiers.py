"""Membership tier ladders.

Two ladders are in use, each bound to its own call path:

    DONATION_LADDER (lifetime giving, drip upgrade eligibility):
        >= 10000 platinum, >= 2500 gold, >= 500 silver, else bronze

    ACKNOWLEDGMENT_LADDER (current calendar year, donation acknowledgment):
        >= 10000 champion, >= 5000 patron, >= 1000 advocate,
        >= 500 supporter, >= 100 friend, else member

They disagree at some totals: $1000 is "advocate" on the acknowledgment
ladder and "silver" on the donation ladder. A tier from the other ladder
ranks as its equivalent rung (the rung its entry threshold reaches), so a
gold member is ranked as an advocate when acknowledging donations and is
never moved down to a lower rung.

Usage:
    from charityflow.engine.tiers import ACKNOWLEDGMENT_LADDER

    tier = ACKNOWLEDGMENT_LADDER.tier_for(Decimal("1000"))
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Union

from charityflow.db.models import Donation, MembershipTier

Amount = Union[Decimal, int, float]


@dataclass(frozen=True)
class TierLadder:
    """Ordered (threshold, tier) pairs, highest threshold first.

    Attributes:
        name: Ladder name for logs
        thresholds: (minimum total, tier) from the top down
        base: Tier below the lowest threshold
        equivalents: Rung standing in for each tier of the other ladder
    """

    name: str
    thresholds: tuple[tuple[Decimal, MembershipTier], ...]
    base: MembershipTier
    equivalents: tuple[tuple[MembershipTier, MembershipTier], ...] = ()

    @property
    def tiers(self) -> list[MembershipTier]:
        """Tiers from lowest to highest."""
        return [self.base] + [tier for _, tier in reversed(self.thresholds)]

    def tier_for(self, total: Amount) -> MembershipTier:
        """Tier reached by a donation total."""
        amount = Decimal(str(total))
        for minimum, tier in self.thresholds:
            if amount >= minimum:
                return tier
        return self.base

    def rung(self, tier: Union[MembershipTier, str]) -> Optional[MembershipTier]:
        """Tier itself when on this ladder, else its equivalent rung."""
        try:
            key = MembershipTier(tier)
        except ValueError:
            return None
        if key in self.tiers:
            return key
        return dict(self.equivalents).get(key)

    def rank(self, tier: Union[MembershipTier, str]) -> int:
        """Position of the tier's rung on this ladder, -1 if it has none."""
        rung = self.rung(tier)
        if rung is None:
            return -1
        return self.tiers.index(rung)

    def is_upgrade(self, current: Union[MembershipTier, str], candidate: MembershipTier) -> bool:
        """True only when candidate ranks strictly above current."""
        return self.rank(candidate) > self.rank(current)

    def is_top(self, tier: Union[MembershipTier, str]) -> bool:
        return self.rank(tier) == len(self.tiers) - 1


DONATION_LADDER = TierLadder(
    name="donation",
    thresholds=(
        (Decimal("10000"), MembershipTier.PLATINUM),
        (Decimal("2500"), MembershipTier.GOLD),
        (Decimal("500"), MembershipTier.SILVER),
    ),
    base=MembershipTier.BRONZE,
    equivalents=(
        (MembershipTier.MEMBER, MembershipTier.BRONZE),
        (MembershipTier.FRIEND, MembershipTier.BRONZE),
        (MembershipTier.SUPPORTER, MembershipTier.SILVER),
        (MembershipTier.ADVOCATE, MembershipTier.SILVER),
        (MembershipTier.PATRON, MembershipTier.GOLD),
        (MembershipTier.CHAMPION, MembershipTier.PLATINUM),
    ),
)

ACKNOWLEDGMENT_LADDER = TierLadder(
    name="acknowledgment",
    thresholds=(
        (Decimal("10000"), MembershipTier.CHAMPION),
        (Decimal("5000"), MembershipTier.PATRON),
        (Decimal("1000"), MembershipTier.ADVOCATE),
        (Decimal("500"), MembershipTier.SUPPORTER),
        (Decimal("100"), MembershipTier.FRIEND),
    ),
    base=MembershipTier.MEMBER,
    equivalents=(
        (MembershipTier.BRONZE, MembershipTier.MEMBER),
        (MembershipTier.SILVER, MembershipTier.SUPPORTER),
        (MembershipTier.GOLD, MembershipTier.ADVOCATE),
        (MembershipTier.PLATINUM, MembershipTier.CHAMPION),
    ),
)


TIER_BENEFITS: dict[MembershipTier, tuple[str, ...]] = {
    MembershipTier.FRIEND: (
        "Quarterly newsletter updates",
        "Annual impact report",
        "Access to member portal",
    ),
    MembershipTier.SUPPORTER: (
        "Monthly newsletter updates",
        "Quarterly impact reports",
        "Member-only events invitation",
        "Priority customer support",
    ),
    MembershipTier.ADVOCATE: (
        "Weekly updates and insights",
        "Exclusive advocate events",
        "Direct communication with leadership",
        "Early access to new programs",
    ),
    MembershipTier.PATRON: (
        "Personal impact reports",
        "VIP event access",
        "One-on-one meetings with leadership",
        "Program naming opportunities",
    ),
    MembershipTier.CHAMPION: (
        "Executive briefings",
        "Board meeting invitations",
        "Personal stewardship visits",
        "Legacy program enrollment",
    ),
}


def tier_benefits(tier: Union[MembershipTier, str]) -> tuple[str, ...]:
    """Benefits listed in tier emails; friend benefits for tiers without a list."""
    try:
        key = MembershipTier(tier)
    except ValueError:
        key = MembershipTier.FRIEND
    return TIER_BENEFITS.get(key, TIER_BENEFITS[MembershipTier.FRIEND])


def yearly_total(donations: Iterable[Donation], now: datetime, extra: Amount = 0) -> Decimal:
    """Sum of donations made in now's calendar year, plus extra."""
    total = Decimal(str(extra))
    for donation in donations:
        if donation.created_at.year == now.year:
            total += Decimal(str(donation.amount))
    return total


def check_upgrade(
    ladder: TierLadder,
    current: Union[MembershipTier, str],
    total: Amount,
) -> Optional[MembershipTier]:
    """New tier if total lifts the member up the ladder, else None."""
    candidate = ladder.tier_for(total)
    if ladder.is_upgrade(current, candidate):
        return candidate
    return None
