"""Payment match: a concrete giver → receiver obligation with a deadline."""
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Enum as SqlEnum, ForeignKey, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AwareDateTime, Base


class MatchStatus(str, enum.Enum):
    """Settlement states. Transitions only move forward."""

    PENDING = "PENDING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    COMPLETED = "COMPLETED"


LIVE_MATCH_STATUSES = (MatchStatus.PENDING, MatchStatus.AWAITING_CONFIRMATION)
_LIVE_MATCH_SQL = text("status IN ('PENDING', 'AWAITING_CONFIRMATION')")
AUTO_MATCHER = "auto"


class PaymentMatch(Base):
    """Represents one giver owing one receiver a payment before a deadline."""

    __tablename__ = "payment_matches"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_match_positive_amount"),
        CheckConstraint("giver_id <> receiver_id", name="ck_payment_match_distinct_parties"),
        Index("ix_payment_matches_status_deadline", "status", "payment_deadline"),
        Index(
            "uq_payment_match_live_giver",
            "giver_id",
            unique=True,
            sqlite_where=_LIVE_MATCH_SQL,
            postgresql_where=_LIVE_MATCH_SQL,
        ),
        Index(
            "uq_payment_match_live_receiver",
            "receiver_id",
            unique=True,
            sqlite_where=_LIVE_MATCH_SQL,
            postgresql_where=_LIVE_MATCH_SQL,
        ),
    )

    giver_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    receiver_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    help_activity_id: Mapped[int] = mapped_column(
        ForeignKey("help_activities.id"), nullable=False, index=True
    )
    giver_activity_id: Mapped[int | None] = mapped_column(
        ForeignKey("help_activities.id"), nullable=True, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    payment_deadline: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)
    status: Mapped[MatchStatus] = mapped_column(
        SqlEnum(MatchStatus, name="match_status"), nullable=False, default=MatchStatus.PENDING
    )
    matched_by: Mapped[str] = mapped_column(String(100), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    giver = relationship("User", foreign_keys=[giver_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
    help_activity = relationship("HelpActivity", foreign_keys=[help_activity_id])
    giver_activity = relationship("HelpActivity", foreign_keys=[giver_activity_id])
