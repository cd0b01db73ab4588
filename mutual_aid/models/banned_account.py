"""Append-only ledger of account suspensions."""
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AwareDateTime, Base


class BannedAccount(Base):
    """One suspension event; lifting it flips ``is_active``, the row stays."""

    __tablename__ = "banned_accounts"
    __table_args__ = (
        Index(
            "uq_banned_account_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    banned_by: Mapped[str] = mapped_column(String(100), nullable=False)
    banned_at: Mapped[datetime] = mapped_column(AwareDateTime(), nullable=False)
    unbanned_at: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    user = relationship("User")
