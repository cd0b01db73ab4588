"""Ban ledger: append-only record of account suspensions."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mutual_aid.db import atomic
from mutual_aid.models import BannedAccount
from mutual_aid.services.users import get_user
from mutual_aid.utils.audit import log_audit
from mutual_aid.utils.errors import Conflict, NotFound
from mutual_aid.utils.time import utcnow

logger = logging.getLogger(__name__)


def active_ban_for(db: Session, user_id: int) -> BannedAccount | None:
    stmt = (
        select(BannedAccount)
        .where(BannedAccount.user_id == user_id)
        .where(BannedAccount.is_active.is_(True))
        .limit(1)
    )
    return db.scalars(stmt).first()


def ban_user(
    db: Session,
    user_id: int,
    *,
    reason: str | None = None,
    banned_by: str,
    reference_time: datetime | None = None,
) -> BannedAccount:
    """Suspend ``user_id``.

    Live activities and matches are left as they are: they remain evidence
    of the default and are resolved through settlement or by an operator.
    """

    try:
        with atomic(db):
            get_user(db, user_id)
            if active_ban_for(db, user_id) is not None:
                raise Conflict("ALREADY_BANNED", "User is already banned.")
            ban = BannedAccount(
                user_id=user_id,
                reason=(reason or "").strip() or None,
                banned_by=banned_by,
                banned_at=reference_time or utcnow(),
                is_active=True,
            )
            db.add(ban)
            db.flush()
            log_audit(
                db,
                actor=banned_by,
                action="USER_BANNED",
                entity="BannedAccount",
                entity_id=ban.id,
                data={"user_id": user_id, "reason": ban.reason},
            )
    except IntegrityError as exc:
        raise Conflict("ALREADY_BANNED", "User is already banned.") from exc

    logger.warning("User banned", extra={"user_id": user_id, "ban_id": ban.id, "banned_by": banned_by})
    return ban


def unban_user(
    db: Session, ban_id: int, *, operator: str, reference_time: datetime | None = None
) -> BannedAccount:
    with atomic(db):
        ban = db.scalars(
            select(BannedAccount).where(BannedAccount.id == ban_id).with_for_update()
        ).first()
        if ban is None or not ban.is_active:
            raise NotFound("BAN_NOT_FOUND", "Active ban not found.")
        ban.is_active = False
        ban.unbanned_at = reference_time or utcnow()
        log_audit(
            db,
            actor=operator,
            action="USER_UNBANNED",
            entity="BannedAccount",
            entity_id=ban.id,
            data={"user_id": ban.user_id},
        )

    logger.warning("User unbanned", extra={"user_id": ban.user_id, "ban_id": ban.id, "operator": operator})
    return ban


def list_bans(db: Session, *, active_only: bool = True) -> list[BannedAccount]:
    stmt = select(BannedAccount).order_by(BannedAccount.banned_at.desc(), BannedAccount.id.desc())
    if active_only:
        stmt = stmt.where(BannedAccount.is_active.is_(True))
    return list(db.scalars(stmt).all())


__all__ = ["active_ban_for", "ban_user", "list_bans", "unban_user"]
