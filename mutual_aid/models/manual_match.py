"""Operator-authored match against a counterparty outside the platform."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Enum as SqlEnum, ForeignKey, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AwareDateTime, Base
from .help_activity import HelpRole
from .payment_match import MatchStatus

_LIVE_MANUAL_SQL = text("status IN ('PENDING', 'AWAITING_CONFIRMATION')")


class ManualMatch(Base):
    """Out-of-band payment obligation for a single platform member.

    ``matched_with_*`` describe the counterparty, who has no account here.
    """

    __tablename__ = "manual_matches"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_manual_match_positive_amount"),
        Index(
            "uq_manual_match_live_role",
            "user_id",
            "role",
            unique=True,
            sqlite_where=_LIVE_MANUAL_SQL,
            postgresql_where=_LIVE_MANUAL_SQL,
        ),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    role: Mapped[HelpRole] = mapped_column(SqlEnum(HelpRole, name="help_role"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    matched_with_name: Mapped[str] = mapped_column(String(255), nullable=False)
    matched_with_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    matched_with_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_account: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[MatchStatus] = mapped_column(
        SqlEnum(MatchStatus, name="match_status"), nullable=False, default=MatchStatus.PENDING
    )
    payment_deadline: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)
    help_activity_id: Mapped[int | None] = mapped_column(
        ForeignKey("help_activities.id"), nullable=True, index=True
    )
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)

    user = relationship("User")
    help_activity = relationship("HelpActivity")
