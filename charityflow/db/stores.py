"""Member store and execution log collaborators.

The workflow core never owns persistence. Orchestrators talk to these
interfaces; the host application supplies real implementations backed by
its database. The in-memory implementations here serve tests and
single-process deployments.

Usage:
    from charityflow.db.stores import InMemoryMemberStore, InMemoryExecutionLog

    store = InMemoryMemberStore()
    store.add_member(member)
    log = InMemoryExecutionLog()
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Optional

from charityflow.core.exceptions import StoreError
from charityflow.core.logging import get_logger
from charityflow.db.models import Donation, EventRegistration, Member

logger = get_logger(__name__)


class MemberStore(ABC):
    """Record store the workflows read members and donations from."""

    @abstractmethod
    def get_member(self, member_id: str) -> Optional[Member]:
        """Get member by id, None if absent."""
        pass

    @abstractmethod
    def update_member(self, member_id: str, patch: dict[str, Any]) -> Member:
        """Apply a partial update to a member.

        Raises:
            StoreError: If the member does not exist or the patch is invalid
        """
        pass

    @abstractmethod
    def get_member_donations(self, member_id: str) -> list[Donation]:
        """Get all donations for a member, oldest first."""
        pass

    @abstractmethod
    def list_inactive_members(self, threshold_days: int, now: datetime) -> list[Member]:
        """Members whose last donation is older than threshold_days (or never)."""
        pass

    @abstractmethod
    def list_newsletter_subscribers(self) -> list[Member]:
        """Members with email_subscribed set."""
        pass

    @abstractmethod
    def update_donation(self, donation_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial update to a donation record."""
        pass

    @abstractmethod
    def update_registration(self, registration_id: str, patch: dict[str, Any]) -> None:
        """Apply a partial update to an event registration."""
        pass


class ExecutionLog(ABC):
    """Per-member record of behavioral trigger executions.

    try_record_execution is the gate workflows use: it must count and record
    as one atomic operation (a lock, a transaction or a conditional write),
    so two near-simultaneous triggers for the same member and event cannot
    both pass the limits.
    """

    @abstractmethod
    def record_execution(self, member_id: str, trigger_event: str, timestamp: datetime) -> None:
        pass

    @abstractmethod
    def count_recent_executions(
        self,
        member_id: str,
        trigger_event: str,
        since: Optional[datetime] = None,
    ) -> int:
        """Count executions at or after since (all executions if since is None)."""
        pass

    @abstractmethod
    def try_record_execution(
        self,
        member_id: str,
        trigger_event: str,
        timestamp: datetime,
        max_executions: Optional[int] = None,
        cooldown_since: Optional[datetime] = None,
    ) -> bool:
        """Record an execution only if the limits still allow it.

        Args:
            member_id: Member that triggered
            trigger_event: Trigger event name
            timestamp: Time to record
            max_executions: Lifetime cap, None for no cap
            cooldown_since: Start of the cooldown window, None for no cooldown

        Returns:
            True if the execution was recorded, False if a limit blocked it
        """
        pass


class InMemoryMemberStore(MemberStore):
    """Thread-safe dict-backed member store.

    Members and donations are copied on read so callers cannot mutate
    stored state without going through update_member.
    """

    _MEMBER_FIELDS = frozenset(Member.__dataclass_fields__)

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._members: dict[str, Member] = {}
        self._donations: dict[str, Donation] = {}
        self._donation_status: dict[str, dict[str, Any]] = {}
        self._registrations: dict[str, EventRegistration] = {}

    # =========================================================================
    # SEEDING
    # =========================================================================

    def add_member(self, member: Member) -> None:
        with self._lock:
            self._members[member.id] = replace(member)

    def add_donation(self, donation: Donation) -> None:
        with self._lock:
            self._donations[donation.id] = replace(donation)

    def add_registration(self, registration: EventRegistration) -> None:
        with self._lock:
            self._registrations[registration.id] = replace(registration)

    # =========================================================================
    # MEMBER STORE INTERFACE
    # =========================================================================

    def get_member(self, member_id: str) -> Optional[Member]:
        with self._lock:
            member = self._members.get(member_id)
            return replace(member) if member else None

    def update_member(self, member_id: str, patch: dict[str, Any]) -> Member:
        unknown = set(patch) - self._MEMBER_FIELDS
        if unknown:
            raise StoreError(f"Unknown member fields: {', '.join(sorted(unknown))}")

        with self._lock:
            member = self._members.get(member_id)
            if member is None:
                raise StoreError(f"Member not found: {member_id}")
            if "total_donated" in patch and patch["total_donated"] < member.total_donated:
                raise StoreError(f"total_donated cannot decrease for member {member_id}")

            updated = replace(member, **patch)
            self._members[member_id] = updated

        logger.debug(
            "Member updated",
            extra={"context": {"member_id": member_id, "fields": sorted(patch)}},
        )
        return replace(updated)

    def get_member_donations(self, member_id: str) -> list[Donation]:
        with self._lock:
            donations = [replace(d) for d in self._donations.values() if d.member_id == member_id]
        return sorted(donations, key=lambda d: d.created_at)

    def list_inactive_members(self, threshold_days: int, now: datetime) -> list[Member]:
        cutoff = now - timedelta(days=threshold_days)
        with self._lock:
            return [
                replace(m)
                for m in self._members.values()
                if m.last_donation_date is None or m.last_donation_date < cutoff
            ]

    def list_newsletter_subscribers(self) -> list[Member]:
        with self._lock:
            return [replace(m) for m in self._members.values() if m.email_subscribed]

    def update_donation(self, donation_id: str, patch: dict[str, Any]) -> None:
        with self._lock:
            if donation_id not in self._donations:
                raise StoreError(f"Donation not found: {donation_id}")
            self._donation_status.setdefault(donation_id, {}).update(patch)

    def get_donation_status(self, donation_id: str) -> dict[str, Any]:
        """Acknowledgment fields recorded against a donation."""
        with self._lock:
            return dict(self._donation_status.get(donation_id, {}))

    def update_registration(self, registration_id: str, patch: dict[str, Any]) -> None:
        with self._lock:
            registration = self._registrations.get(registration_id)
            if registration is None:
                raise StoreError(f"Registration not found: {registration_id}")
            try:
                self._registrations[registration_id] = replace(registration, **patch)
            except TypeError as e:
                raise StoreError(f"Invalid registration update: {e}") from e

    def get_registration(self, registration_id: str) -> Optional[EventRegistration]:
        with self._lock:
            registration = self._registrations.get(registration_id)
            return replace(registration) if registration else None


class InMemoryExecutionLog(ExecutionLog):
    """Thread-safe list-backed execution log."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], list[datetime]] = {}

    def record_execution(self, member_id: str, trigger_event: str, timestamp: datetime) -> None:
        with self._lock:
            self._entries.setdefault((member_id, trigger_event), []).append(timestamp)

    def count_recent_executions(
        self,
        member_id: str,
        trigger_event: str,
        since: Optional[datetime] = None,
    ) -> int:
        with self._lock:
            stamps = self._entries.get((member_id, trigger_event), [])
            if since is None:
                return len(stamps)
            return sum(1 for ts in stamps if ts >= since)

    def try_record_execution(
        self,
        member_id: str,
        trigger_event: str,
        timestamp: datetime,
        max_executions: Optional[int] = None,
        cooldown_since: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            stamps = self._entries.setdefault((member_id, trigger_event), [])
            if max_executions is not None and len(stamps) >= max_executions:
                return False
            if cooldown_since is not None and any(ts >= cooldown_since for ts in stamps):
                return False
            stamps.append(timestamp)
            return True
