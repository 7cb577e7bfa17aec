"""Shared pytest fixtures for CharityFlow tests.

Fixtures:
    - now: Fixed clock value every workflow sees
    - mock_config: Test configuration
    - active_member: Engaged gold member who gave recently
    - new_member: Bronze member who joined this month and never gave
    - lapsed_member: Silver member with no gift for 200 days
    - store: In-memory member store holding the three sample members
    - services: WorkflowServices wired to recording collaborators
    - sample_event / sample_registration: Event three weeks out
"""

from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

from charityflow.core.config import Config
from charityflow.db.models import (
    Event,
    EventRegistration,
    Member,
    MembershipTier,
)
from charityflow.db.stores import InMemoryMemberStore
from charityflow.engine.services import WorkflowServices
from charityflow.integrations.base import RetryPolicy

NOW = datetime(2026, 3, 15, 9, 0)


def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def now() -> datetime:
    """Fixed current time (a Sunday morning, before the newsletter slot)."""
    return NOW


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """Test configuration with temp paths."""
    return Config(
        organization_name="Harbor Food Bank",
        staff_email="events@harborfood.org",
        app_url="https://members.harborfood.org",
        tax_id="98-7654321",
        log_path=tmp_path / "logs",
        debug=True,
    )


@pytest.fixture
def active_member() -> Member:
    """Gold member, engagement 80, last gift ten days ago."""
    return Member(
        id="m-active",
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.org",
        tier=MembershipTier.GOLD,
        engagement_score=80,
        total_donated=Decimal("3000"),
        last_donation_date=NOW - timedelta(days=10),
        member_since=NOW - timedelta(days=400),
    )


@pytest.fixture
def new_member() -> Member:
    """Bronze member who joined five days ago and never gave."""
    return Member(
        id="m-new",
        first_name="Grace",
        last_name="Hopper",
        email="grace@example.org",
        tier=MembershipTier.BRONZE,
        engagement_score=20,
        member_since=NOW - timedelta(days=5),
    )


@pytest.fixture
def lapsed_member() -> Member:
    """Silver member, engagement 40, last gift 200 days ago."""
    return Member(
        id="m-lapsed",
        first_name="Alan",
        last_name="Turing",
        email="alan@example.org",
        tier=MembershipTier.SILVER,
        engagement_score=40,
        total_donated=Decimal("750"),
        last_donation_date=NOW - timedelta(days=200),
        member_since=NOW - timedelta(days=800),
    )


@pytest.fixture
def store(
    active_member: Member,
    new_member: Member,
    lapsed_member: Member,
) -> InMemoryMemberStore:
    """Member store pre-populated with sample members.

    Contains:
        - m-active (gold, recent donor)
        - m-new (bronze, never donated)
        - m-lapsed (silver, inactive)
    """
    member_store = InMemoryMemberStore()
    for member in (active_member, new_member, lapsed_member):
        member_store.add_member(member)
    return member_store


@pytest.fixture
def services(store: InMemoryMemberStore, mock_config: Config) -> WorkflowServices:
    """Collaborators with a fixed clock and no retry sleeps."""
    return WorkflowServices(
        store=store,
        config=mock_config,
        retry_policy=RetryPolicy(max_retries=2, base_delay=0, sleep=no_sleep),
        clock=lambda: NOW,
    )


@pytest.fixture
def sample_event() -> Event:
    """Gala three weeks from now, 40 of 100 seats taken."""
    return Event(
        id="evt-gala",
        name="Spring Gala 2026",
        start_date=NOW + timedelta(days=21, hours=9),
        end_date=NOW + timedelta(days=21, hours=13),
        venue_name="Harbor Hall",
        location="12 Pier Road",
        description="Annual fundraising dinner",
        current_registrations=40,
        max_capacity=100,
    )


@pytest.fixture
def sample_registration(
    store: InMemoryMemberStore,
    sample_event: Event,
    active_member: Member,
) -> EventRegistration:
    """Registration for active_member, recorded in the store."""
    registration = EventRegistration(
        id="reg-0001",
        event_id=sample_event.id,
        member_id=active_member.id,
    )
    store.add_registration(registration)
    return registration


# Markers for different test types
def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests requiring external services")
