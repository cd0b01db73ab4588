"""Maturity tracking for package subscriptions."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from mutual_aid.db import atomic
from mutual_aid.models import UserPackage, UserPackageStatus
from mutual_aid.services.catalog import get_package
from mutual_aid.services.users import get_user
from mutual_aid.utils.audit import log_audit
from mutual_aid.utils.errors import NotFound, PreconditionFailed, ValidationError
from mutual_aid.utils.time import ensure_utc

logger = logging.getLogger(__name__)


def get_user_package(db: Session, user_package_id: int, *, for_update: bool = False) -> UserPackage:
    stmt = select(UserPackage).where(UserPackage.id == user_package_id)
    if for_update:
        stmt = stmt.with_for_update()
    user_package = db.scalars(stmt).first()
    if user_package is None:
        raise NotFound("USER_PACKAGE_NOT_FOUND", "User package not found.")
    return user_package


def _require_date(value: datetime | None, field: str) -> datetime:
    if value is None:
        raise ValidationError("MATURITY_DATE_REQUIRED", "A maturity date is required.", fields=[field])
    return ensure_utc(value)


def subscribe(db: Session, user_id: int, package_id: str | None) -> UserPackage:
    """Create a PENDING subscription awaiting operator approval."""

    with atomic(db):
        get_user(db, user_id)
        package = get_package(db, package_id)
        if not package.active:
            raise PreconditionFailed("PACKAGE_INACTIVE", "This package is not currently available.")
        user_package = UserPackage(
            user_id=user_id,
            package_id=package.id,
            status=UserPackageStatus.PENDING,
            admin_approved=False,
            extended_count=0,
        )
        db.add(user_package)
        db.flush()
        log_audit(
            db,
            actor=f"user:{user_id}",
            action="USER_PACKAGE_SUBSCRIBED",
            entity="UserPackage",
            entity_id=user_package.id,
            data={"package_id": package.id},
        )
    logger.info("Package subscription created", extra={"user_package_id": user_package.id})
    return user_package


def approve(db: Session, user_package_id: int, maturity_date: datetime | None, *, operator: str) -> UserPackage:
    maturity = _require_date(maturity_date, "maturity_date")
    with atomic(db):
        user_package = get_user_package(db, user_package_id, for_update=True)
        if user_package.admin_approved:
            raise PreconditionFailed("PACKAGE_ALREADY_APPROVED", "Package has already been approved.")
        user_package.admin_approved = True
        user_package.status = UserPackageStatus.ACTIVE
        user_package.maturity_date = maturity
        log_audit(
            db,
            actor=operator,
            action="USER_PACKAGE_APPROVED",
            entity="UserPackage",
            entity_id=user_package.id,
            data={"maturity_date": maturity.isoformat()},
        )
    logger.info("Package subscription approved", extra={"user_package_id": user_package.id})
    return user_package


def reject(db: Session, user_package_id: int, *, operator: str) -> UserPackage:
    with atomic(db):
        user_package = get_user_package(db, user_package_id, for_update=True)
        if user_package.admin_approved:
            raise PreconditionFailed(
                "PACKAGE_ALREADY_APPROVED", "An approved package cannot be rejected; reset it first."
            )
        user_package.status = UserPackageStatus.REJECTED
        log_audit(
            db,
            actor=operator,
            action="USER_PACKAGE_REJECTED",
            entity="UserPackage",
            entity_id=user_package.id,
            data={},
        )
    logger.info("Package subscription rejected", extra={"user_package_id": user_package.id})
    return user_package


def extend(
    db: Session, user_package_id: int, new_maturity_date: datetime | None, *, operator: str
) -> UserPackage:
    """Move the maturity date; the number of extensions is not capped here."""

    maturity = _require_date(new_maturity_date, "new_maturity_date")
    with atomic(db):
        user_package = get_user_package(db, user_package_id, for_update=True)
        if not user_package.admin_approved:
            raise PreconditionFailed("PACKAGE_NOT_APPROVED", "Only approved packages can be extended.")
        previous = user_package.maturity_date
        user_package.maturity_date = maturity
        user_package.extended_count += 1
        log_audit(
            db,
            actor=operator,
            action="USER_PACKAGE_EXTENDED",
            entity="UserPackage",
            entity_id=user_package.id,
            data={
                "previous_maturity_date": previous.isoformat() if previous else None,
                "maturity_date": maturity.isoformat(),
                "extended_count": user_package.extended_count,
            },
        )
    logger.info(
        "Package maturity extended",
        extra={"user_package_id": user_package.id, "extended_count": user_package.extended_count},
    )
    return user_package


def reset(db: Session, user_package_id: int, *, operator: str) -> UserPackage:
    """Return to PENDING. ``extended_count`` is kept as the history of extensions."""

    with atomic(db):
        user_package = get_user_package(db, user_package_id, for_update=True)
        user_package.status = UserPackageStatus.PENDING
        user_package.admin_approved = False
        user_package.maturity_date = None
        log_audit(
            db,
            actor=operator,
            action="USER_PACKAGE_RESET",
            entity="UserPackage",
            entity_id=user_package.id,
            data={"extended_count": user_package.extended_count},
        )
    logger.info("Package subscription reset", extra={"user_package_id": user_package.id})
    return user_package


def list_user_packages(db: Session, *, status: UserPackageStatus | None = None) -> list[UserPackage]:
    stmt = select(UserPackage).order_by(UserPackage.created_at.desc(), UserPackage.id.desc())
    if status is not None:
        stmt = stmt.where(UserPackage.status == status)
    return list(db.scalars(stmt).all())


__all__ = [
    "approve",
    "extend",
    "get_user_package",
    "list_user_packages",
    "reject",
    "reset",
    "subscribe",
]
