"""Role slots held by members while a payment or manual match is unsettled."""
from sqlalchemy import CheckConstraint, Enum as SqlEnum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .help_activity import HelpRole


class LiveParty(Base):
    """One row per ``(member, role)`` slot taken by a live match.

    A payment match takes both slots of each party, a manual match only the
    slot of its own role. The unique key then lets two manual matches of
    opposite roles coexist while any overlap with a payment match, on either
    side, fails at insert time.
    """

    __tablename__ = "live_parties"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_live_parties_user_role"),
        CheckConstraint(
            "(payment_match_id IS NULL) <> (manual_match_id IS NULL)",
            name="ck_live_party_single_source",
        ),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[HelpRole] = mapped_column(SqlEnum(HelpRole, name="help_role"), nullable=False)
    payment_match_id: Mapped[int | None] = mapped_column(
        ForeignKey("payment_matches.id"), nullable=True, index=True
    )
    manual_match_id: Mapped[int | None] = mapped_column(
        ForeignKey("manual_matches.id"), nullable=True, index=True
    )
