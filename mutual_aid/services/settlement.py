"""Settlement state machine for payment and manual matches.

States only move forward: PENDING -> AWAITING_CONFIRMATION -> COMPLETED.
Repeating a confirmation that has already taken effect returns the current
match unchanged, so clients may retry safely.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from mutual_aid.config import get_settings
from mutual_aid.db import atomic
from mutual_aid.models import (
    HelpActivity,
    HelpActivityStatus,
    HelpRole,
    LiveParty,
    ManualMatch,
    MatchStatus,
    PaymentMatch,
)
from mutual_aid.utils.audit import log_audit
from mutual_aid.utils.errors import NotFound, PreconditionFailed, Unauthorized
from mutual_aid.utils.time import utcnow

logger = logging.getLogger(__name__)


def get_match(db: Session, match_id: int, *, for_update: bool = False) -> PaymentMatch:
    stmt = select(PaymentMatch).where(PaymentMatch.id == match_id)
    if for_update:
        stmt = stmt.with_for_update()
    match = db.scalars(stmt).first()
    if match is None:
        raise NotFound("PAYMENT_MATCH_NOT_FOUND", "Payment match not found.")
    return match


def get_manual_match(db: Session, manual_id: int, *, for_update: bool = False) -> ManualMatch:
    stmt = select(ManualMatch).where(ManualMatch.id == manual_id)
    if for_update:
        stmt = stmt.with_for_update()
    manual = db.scalars(stmt).first()
    if manual is None:
        raise NotFound("MANUAL_MATCH_NOT_FOUND", "Manual match not found.")
    return manual


def _maturity_from(activity: HelpActivity, completed_at: datetime) -> datetime:
    days = activity.package.duration_days if activity.package else None
    return completed_at + timedelta(days=days or get_settings().DEFAULT_MATURITY_DAYS)


def _complete_activity(activity: HelpActivity | None, completed_at: datetime) -> None:
    if activity is None or activity.status == HelpActivityStatus.CANCELLED:
        return
    activity.status = HelpActivityStatus.COMPLETED
    if activity.role == HelpRole.GIVER:
        # The giver's offer matures once their payment has been acknowledged.
        activity.maturity_date = _maturity_from(activity, completed_at)


def _complete(db: Session, match: PaymentMatch, *, completed_by: str, now: datetime) -> None:
    match.status = MatchStatus.COMPLETED
    match.completed_at = now
    match.completed_by = completed_by
    db.execute(delete(LiveParty).where(LiveParty.payment_match_id == match.id))
    _complete_activity(match.help_activity, now)
    _complete_activity(match.giver_activity, now)
    log_audit(
        db,
        actor=completed_by,
        action="PAYMENT_MATCH_COMPLETED",
        entity="PaymentMatch",
        entity_id=match.id,
        data={
            "giver_id": match.giver_id,
            "receiver_id": match.receiver_id,
            "amount": str(match.amount),
            "completed_at": now.isoformat(),
        },
    )


def confirm_sent(
    db: Session, match_id: int, requesting_user_id: int, *, reference_time: datetime | None = None
) -> PaymentMatch:
    """Giver declares the payment sent."""

    with atomic(db):
        match = get_match(db, match_id, for_update=True)
        if match.giver_id != requesting_user_id:
            raise Unauthorized("NOT_MATCH_GIVER", "Only the giver can confirm the payment was sent.")
        if match.status != MatchStatus.PENDING:
            return match
        now = reference_time or utcnow()
        match.status = MatchStatus.AWAITING_CONFIRMATION
        match.sent_at = now
        log_audit(
            db,
            actor=f"user:{requesting_user_id}",
            action="PAYMENT_SENT_CONFIRMED",
            entity="PaymentMatch",
            entity_id=match.id,
            data={"sent_at": now.isoformat()},
        )
    logger.info("Payment marked as sent", extra={"match_id": match.id, "giver_id": match.giver_id})
    return match


def confirm_received(
    db: Session, match_id: int, requesting_user_id: int, *, reference_time: datetime | None = None
) -> PaymentMatch:
    """Receiver acknowledges the payment; the match completes."""

    with atomic(db):
        match = get_match(db, match_id, for_update=True)
        if match.receiver_id != requesting_user_id:
            raise Unauthorized(
                "NOT_MATCH_RECEIVER", "Only the receiver can confirm the payment was received."
            )
        if match.status == MatchStatus.COMPLETED:
            return match
        if match.status == MatchStatus.PENDING:
            raise PreconditionFailed(
                "PAYMENT_NOT_SENT", "The giver has not confirmed sending the payment yet."
            )
        _complete(db, match, completed_by=f"user:{requesting_user_id}", now=reference_time or utcnow())
    logger.info("Payment match completed by receiver", extra={"match_id": match.id})
    return match


def operator_confirm(
    db: Session, match_id: int, *, operator: str, reference_time: datetime | None = None
) -> PaymentMatch:
    """Operator marks a match completed after verifying the payment off-platform.

    Works from PENDING as well, for givers who paid without declaring it;
    ``sent_at`` is then stamped with the completion time.
    """

    with atomic(db):
        match = get_match(db, match_id, for_update=True)
        if match.status == MatchStatus.COMPLETED:
            return match
        now = reference_time or utcnow()
        if match.sent_at is None:
            match.sent_at = now
        _complete(db, match, completed_by=operator, now=now)
    logger.info("Payment match completed by operator", extra={"match_id": match.id, "operator": operator})
    return match


def confirm_manual(
    db: Session, manual_id: int, requesting_user_id: int, *, reference_time: datetime | None = None
) -> ManualMatch:
    """Member declares their side of a manual match done."""

    with atomic(db):
        manual = get_manual_match(db, manual_id, for_update=True)
        if manual.user_id != requesting_user_id:
            raise Unauthorized("NOT_MANUAL_MATCH_OWNER", "You can only confirm your own manual match.")
        if manual.status != MatchStatus.PENDING:
            return manual
        now = reference_time or utcnow()
        manual.status = MatchStatus.AWAITING_CONFIRMATION
        manual.sent_at = now
        log_audit(
            db,
            actor=f"user:{requesting_user_id}",
            action="MANUAL_MATCH_CONFIRMED",
            entity="ManualMatch",
            entity_id=manual.id,
            data={"role": manual.role.value},
        )
    logger.info("Manual match confirmed by member", extra={"manual_match_id": manual.id})
    return manual


def operator_confirm_manual(
    db: Session, manual_id: int, *, operator: str, reference_time: datetime | None = None
) -> ManualMatch:
    """Operator closes a manual match and the activity it satisfies."""

    with atomic(db):
        manual = get_manual_match(db, manual_id, for_update=True)
        if manual.status == MatchStatus.COMPLETED:
            return manual
        now = reference_time or utcnow()
        manual.status = MatchStatus.COMPLETED
        manual.completed_at = now
        db.execute(delete(LiveParty).where(LiveParty.manual_match_id == manual.id))
        _complete_activity(manual.help_activity, now)
        log_audit(
            db,
            actor=operator,
            action="MANUAL_MATCH_COMPLETED",
            entity="ManualMatch",
            entity_id=manual.id,
            data={"user_id": manual.user_id, "role": manual.role.value, "amount": str(manual.amount)},
        )
    logger.info("Manual match completed by operator", extra={"manual_match_id": manual.id})
    return manual


__all__ = [
    "confirm_manual",
    "confirm_received",
    "confirm_sent",
    "get_manual_match",
    "get_match",
    "operator_confirm",
    "operator_confirm_manual",
]
