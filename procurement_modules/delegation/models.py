"""
Delegation Domain Models.

A delegation is a time-bounded grant of one user's approval authority on
one vessel to another user.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from procurement_kernel.domain.roles import Capability


@dataclass(frozen=True)
class DelegationRequest:
    """What a caller supplies to create a delegation."""
    to_user_id: str
    vessel_id: str
    start_date: datetime
    end_date: datetime
    permissions: frozenset[Capability]
    reason: str = ""
    from_user_id: str | None = None


@dataclass(frozen=True)
class Delegation:
    """In effect iff ``is_active and start_date <= now < end_date``."""
    id: str
    from_user_id: str
    to_user_id: str
    vessel_id: str
    start_date: datetime
    end_date: datetime
    permissions: frozenset[Capability]
    created_at: datetime
    reason: str = ""
    is_active: bool = True
    revoked_at: datetime | None = None
    revoked_by: str | None = None
    version: int = 1

    def in_effect(self, now: datetime) -> bool:
        return self.is_active and self.start_date <= now < self.end_date

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_date < end and start < self.end_date
