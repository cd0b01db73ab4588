"""User lookups and the all-or-nothing user removal cascade."""
from __future__ import annotations

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from mutual_aid.db import atomic
from mutual_aid.models import (
    ApiKey,
    BannedAccount,
    HelpActivity,
    LiveParty,
    ManualMatch,
    PaymentMatch,
    User,
    UserPackage,
    UserRole,
)
from mutual_aid.utils.audit import log_audit
from mutual_aid.utils.errors import NotFound, PreconditionFailed, ValidationError

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int, *, role: str = "User") -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("USER_NOT_FOUND", f"{role} does not exist.")
    return user


def find_user(db: Session, identifier: str | None) -> User:
    """Look a member up by username or email, ignoring case."""

    needle = (identifier or "").strip().lower()
    if not needle:
        raise ValidationError("USER_IDENTIFIER_REQUIRED", "A username or email is required.", fields=["user"])
    user = db.scalars(
        select(User)
        .where(or_(func.lower(User.username) == needle, func.lower(User.email) == needle))
        .order_by(User.id)
        .limit(1)
    ).first()
    if user is None:
        raise NotFound("USER_NOT_FOUND", f"User '{identifier.strip()}' not found.")
    return user


def lock_users(db: Session, *user_ids: int) -> list[User]:
    """Take row locks on ``user_ids`` in ascending id order.

    Every operation that binds a member to a match locks the member row
    first, so concurrent pairings touching the same member run one after
    the other.
    """

    stmt = select(User).where(User.id.in_(set(user_ids))).order_by(User.id).with_for_update()
    return list(db.scalars(stmt).all())


def delete_user(db: Session, user_id: int, *, actor: str) -> dict[str, int]:
    """Remove a member and every row that depends on them in one transaction.

    Returns the number of rows removed per table. Operator accounts cannot
    be removed.
    """

    with atomic(db):
        user = get_user(db, user_id)
        if user.role == UserRole.ADMIN:
            raise PreconditionFailed("ADMIN_DELETE_FORBIDDEN", "Cannot delete admin users.")

        activity_ids = select(HelpActivity.id).where(HelpActivity.user_id == user_id)
        match_ids = select(PaymentMatch.id).where(
            or_(
                PaymentMatch.giver_id == user_id,
                PaymentMatch.receiver_id == user_id,
                PaymentMatch.help_activity_id.in_(activity_ids),
                PaymentMatch.giver_activity_id.in_(activity_ids),
            )
        )
        manual_ids = select(ManualMatch.id).where(ManualMatch.user_id == user_id)
        removed: dict[str, int] = {}
        # Counterparties of removed matches are released as well.
        db.execute(
            delete(LiveParty).where(
                or_(
                    LiveParty.user_id == user_id,
                    LiveParty.payment_match_id.in_(match_ids),
                    LiveParty.manual_match_id.in_(manual_ids),
                )
            )
        )
        removed["payment_matches"] = db.execute(
            delete(PaymentMatch).where(PaymentMatch.id.in_(match_ids))
        ).rowcount
        removed["manual_matches"] = db.execute(
            delete(ManualMatch).where(ManualMatch.user_id == user_id)
        ).rowcount
        removed["help_activities"] = db.execute(
            delete(HelpActivity).where(HelpActivity.user_id == user_id)
        ).rowcount
        removed["user_packages"] = db.execute(
            delete(UserPackage).where(UserPackage.user_id == user_id)
        ).rowcount
        removed["banned_accounts"] = db.execute(
            delete(BannedAccount).where(BannedAccount.user_id == user_id)
        ).rowcount
        removed["api_keys"] = db.execute(delete(ApiKey).where(ApiKey.user_id == user_id)).rowcount

        log_audit(
            db,
            actor=actor,
            action="USER_DELETED",
            entity="User",
            entity_id=user.id,
            data={"username": user.username, "email": user.email, "removed": removed},
        )
        db.delete(user)

    logger.warning("User removed with dependent rows", extra={"user_id": user_id, "removed": removed})
    return removed
