"""User package subscription with operator-controlled maturity."""
import enum
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Enum as SqlEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AwareDateTime, Base


class UserPackageStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"


class UserPackage(Base):
    """Package subscription; ``maturity_date`` is set only by operator approval."""

    __tablename__ = "user_packages"
    __table_args__ = (
        CheckConstraint("extended_count >= 0", name="ck_user_package_extended_count"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    package_id: Mapped[str] = mapped_column(String(64), ForeignKey("packages.id"), nullable=False)
    status: Mapped[UserPackageStatus] = mapped_column(
        SqlEnum(UserPackageStatus, name="user_package_status"),
        nullable=False,
        default=UserPackageStatus.PENDING,
    )
    admin_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    maturity_date: Mapped[datetime | None] = mapped_column(AwareDateTime(), nullable=True)
    extended_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    package = relationship("Package")
