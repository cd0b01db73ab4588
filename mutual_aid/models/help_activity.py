"""Help activity: a member's standing intent to give or to receive."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AwareDateTime, Base


class HelpRole(str, enum.Enum):
    """Side of the exchange a member stands on."""

    GIVER = "GIVER"
    RECEIVER = "RECEIVER"


class HelpActivityStatus(str, enum.Enum):
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


LIVE_ACTIVITY_STATUSES = (
    HelpActivityStatus.PENDING,
    HelpActivityStatus.MATCHED,
    HelpActivityStatus.ACTIVE,
)
_LIVE_ACTIVITY_SQL = text("status IN ('PENDING', 'MATCHED', 'ACTIVE')")


@dataclass(frozen=True)
class Offer:
    giver_id: int


@dataclass(frozen=True)
class Request:
    receiver_id: int


@dataclass(frozen=True)
class Paired:
    giver_id: int
    receiver_id: int


HelpVariant = Offer | Request | Paired


class HelpActivity(Base):
    """One row per registered offer (GIVER) or request (RECEIVER).

    The owner is always ``user_id``; which side they stand on is ``role``.
    Pairing is recorded on :class:`PaymentMatch`, never by filling in a
    second party column here.
    """

    __tablename__ = "help_activities"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_help_activity_positive_amount"),
        Index("ix_help_activities_pool", "role", "status", "created_at"),
        Index(
            "uq_help_activity_live_role",
            "user_id",
            "role",
            unique=True,
            sqlite_where=_LIVE_ACTIVITY_SQL,
            postgresql_where=_LIVE_ACTIVITY_SQL,
        ),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    role: Mapped[HelpRole] = mapped_column(SqlEnum(HelpRole, name="help_role"), nullable=False)
    package_id: Mapped[str] = mapped_column(String(64), ForeignKey("packages.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    status: Mapped[HelpActivityStatus] = mapped_column(
        SqlEnum(HelpActivityStatus, name="help_activity_status"),
        nullable=False,
        default=HelpActivityStatus.PENDING,
    )
    admin_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    matched_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    maturity_date: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    payment_deadline: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)

    package = relationship("Package")
    matches = relationship(
        "PaymentMatch",
        primaryjoin=(
            "or_(HelpActivity.id == foreign(PaymentMatch.help_activity_id), "
            "HelpActivity.id == foreign(PaymentMatch.giver_activity_id))"
        ),
        viewonly=True,
        order_by="PaymentMatch.id",
    )

    @property
    def giver_id(self) -> int | None:
        return self.user_id if self.role == HelpRole.GIVER else None

    @property
    def receiver_id(self) -> int | None:
        return self.user_id if self.role == HelpRole.RECEIVER else None

    @property
    def variant(self) -> HelpVariant:
        """Return the tagged view of this activity.

        An activity that has been paired (live or settled) reports both
        parties from its latest match.
        """

        if self.matches:
            match = self.matches[-1]
            return Paired(giver_id=match.giver_id, receiver_id=match.receiver_id)
        if self.role == HelpRole.GIVER:
            return Offer(giver_id=self.user_id)
        return Request(receiver_id=self.user_id)

    @property
    def kind(self) -> str:
        return type(self.variant).__name__.upper()

    @property
    def counterparty_id(self) -> int | None:
        variant = self.variant
        if isinstance(variant, Paired):
            return variant.receiver_id if self.role == HelpRole.GIVER else variant.giver_id
        return None


__all__ = [
    "HelpActivity",
    "HelpActivityStatus",
    "HelpRole",
    "HelpVariant",
    "LIVE_ACTIVITY_STATUSES",
    "Offer",
    "Paired",
    "Request",
]
