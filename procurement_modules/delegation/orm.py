"""
SQLAlchemy ORM persistence model for the Delegation module.

Invariants enforced
-------------------
* Window bounds are stored as tz-aware UTC; the window is half-open.
* Permissions are stored as a sorted JSON list of capability names.
* Revocation flips ``is_active``; rows are never deleted.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import VersionedBase
from procurement_kernel.domain.roles import Capability
from procurement_modules.delegation.models import Delegation


class DelegationModel(VersionedBase):
    """Maps to the ``Delegation`` DTO."""

    __tablename__ = "delegations"

    __table_args__ = (
        Index("idx_delegation_vessel", "vessel_id"),
        Index("idx_delegation_from_user", "from_user_id", "vessel_id"),
    )

    from_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    to_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vessel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    revoked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    @staticmethod
    def column_values(dto: Delegation) -> dict[str, Any]:
        return {
            "from_user_id": dto.from_user_id,
            "to_user_id": dto.to_user_id,
            "vessel_id": dto.vessel_id,
            "start_date": dto.start_date,
            "end_date": dto.end_date,
            "permissions": sorted(p.value for p in dto.permissions),
            "reason": dto.reason,
            "is_active": dto.is_active,
            "revoked_at": dto.revoked_at,
            "revoked_by": dto.revoked_by,
            "updated_at": dto.revoked_at or dto.created_at,
        }

    @classmethod
    def from_dto(cls, dto: Delegation) -> "DelegationModel":
        return cls(
            id=dto.id,
            version=dto.version,
            created_at=dto.created_at,
            **cls.column_values(dto),
        )

    def to_dto(self) -> Delegation:
        return Delegation(
            id=self.id,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            vessel_id=self.vessel_id,
            start_date=self.start_date,
            end_date=self.end_date,
            permissions=frozenset(Capability(p) for p in self.permissions or ()),
            created_at=self.created_at,
            reason=self.reason,
            is_active=self.is_active,
            revoked_at=self.revoked_at,
            revoked_by=self.revoked_by,
            version=self.version,
        )
