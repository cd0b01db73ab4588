"""Obligation registry: members' standing offers and requests."""
from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mutual_aid.db import atomic
from mutual_aid.models import (
    LIVE_ACTIVITY_STATUSES,
    LIVE_MATCH_STATUSES,
    HelpActivity,
    HelpActivityStatus,
    HelpRole,
    ManualMatch,
    PaymentMatch,
)
from mutual_aid.services.catalog import get_package
from mutual_aid.services.users import get_user
from mutual_aid.utils.audit import log_audit
from mutual_aid.utils.errors import Conflict, NotFound, PreconditionFailed, Unauthorized

logger = logging.getLogger(__name__)


def live_activity(
    db: Session, user_id: int, role: HelpRole, *, for_update: bool = False
) -> HelpActivity | None:
    """Return the user's PENDING/MATCHED/ACTIVE activity for ``role``, if any."""

    stmt = (
        select(HelpActivity)
        .where(HelpActivity.user_id == user_id)
        .where(HelpActivity.role == role)
        .where(HelpActivity.status.in_(LIVE_ACTIVITY_STATUSES))
        .order_by(HelpActivity.created_at.desc(), HelpActivity.id.desc())
        .limit(1)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalars(stmt).first()


def live_manual_match(db: Session, user_id: int, role: HelpRole | None = None) -> ManualMatch | None:
    stmt = (
        select(ManualMatch)
        .where(ManualMatch.user_id == user_id)
        .where(ManualMatch.status.in_(LIVE_MATCH_STATUSES))
    )
    if role is not None:
        stmt = stmt.where(ManualMatch.role == role)
    return db.scalars(stmt.order_by(ManualMatch.id.desc()).limit(1)).first()


def live_payment_match(db: Session, user_id: int) -> PaymentMatch | None:
    """Return the non-completed match referencing ``user_id`` in either role."""

    stmt = (
        select(PaymentMatch)
        .where(or_(PaymentMatch.giver_id == user_id, PaymentMatch.receiver_id == user_id))
        .where(PaymentMatch.status.in_(LIVE_MATCH_STATUSES))
        .order_by(PaymentMatch.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def has_live_obligation(db: Session, user_id: int, role: HelpRole) -> bool:
    """True when the user holds a live activity or live manual match for ``role``."""

    return live_activity(db, user_id, role) is not None or live_manual_match(db, user_id, role) is not None


def _register(
    db: Session,
    *,
    user_id: int,
    package_id: str | None,
    role: HelpRole,
) -> HelpActivity:
    package = get_package(db, package_id)
    if not package.active:
        raise PreconditionFailed("PACKAGE_INACTIVE", "This package is not currently available.")

    if has_live_obligation(db, user_id, role):
        if role == HelpRole.GIVER:
            raise Conflict("ACTIVE_OFFER_EXISTS", "You already have an active help offer.")
        raise Conflict("ACTIVE_REQUEST_EXISTS", "You already have an active help request.")

    activity = HelpActivity(
        user_id=user_id,
        role=role,
        package_id=package.id,
        amount=package.amount,
        status=HelpActivityStatus.PENDING,
    )
    db.add(activity)
    db.flush()
    log_audit(
        db,
        actor=f"user:{user_id}",
        action="HELP_OFFER_REGISTERED" if role == HelpRole.GIVER else "HELP_REQUEST_REGISTERED",
        entity="HelpActivity",
        entity_id=activity.id,
        data={"package_id": package.id, "amount": str(activity.amount)},
    )
    return activity


def register_offer(db: Session, user_id: int, package_id: str | None) -> HelpActivity:
    """Register ``user_id`` as a giver for ``package_id``."""

    try:
        with atomic(db):
            get_user(db, user_id)
            activity = _register(db, user_id=user_id, package_id=package_id, role=HelpRole.GIVER)
    except IntegrityError as exc:
        # Another request registered an offer between our check and insert.
        raise Conflict("ACTIVE_OFFER_EXISTS", "You already have an active help offer.") from exc
    logger.info("Help offer registered", extra={"activity_id": activity.id, "user_id": user_id})
    return activity


def register_request(db: Session, user_id: int, package_id: str | None) -> HelpActivity:
    """Register ``user_id`` as a receiver; giving must come first."""

    try:
        with atomic(db):
            get_user(db, user_id)
            if not has_live_obligation(db, user_id, HelpRole.GIVER):
                raise PreconditionFailed(
                    "OFFER_REQUIRED", "You must offer help first before requesting help."
                )
            activity = _register(db, user_id=user_id, package_id=package_id, role=HelpRole.RECEIVER)
    except IntegrityError as exc:
        raise Conflict("ACTIVE_REQUEST_EXISTS", "You already have an active help request.") from exc
    logger.info("Help request registered", extra={"activity_id": activity.id, "user_id": user_id})
    return activity


def get_activity(db: Session, activity_id: int, *, for_update: bool = False) -> HelpActivity:
    stmt = select(HelpActivity).where(HelpActivity.id == activity_id)
    if for_update:
        stmt = stmt.with_for_update()
    activity = db.scalars(stmt).first()
    if activity is None:
        raise NotFound("HELP_ACTIVITY_NOT_FOUND", "Help activity not found.")
    return activity


def cancel_activity(db: Session, activity_id: int, requesting_user_id: int) -> HelpActivity:
    """Cancel the caller's own activity while it is still PENDING."""

    with atomic(db):
        activity = get_activity(db, activity_id, for_update=True)
        if activity.user_id != requesting_user_id:
            raise Unauthorized("NOT_ACTIVITY_OWNER", "You can only cancel your own help activity.")
        if activity.status != HelpActivityStatus.PENDING:
            raise Conflict(
                "ACTIVITY_NOT_CANCELLABLE",
                f"Only pending activities can be cancelled (current status: {activity.status.value}).",
            )
        activity.status = HelpActivityStatus.CANCELLED
        log_audit(
            db,
            actor=f"user:{requesting_user_id}",
            action="HELP_ACTIVITY_CANCELLED",
            entity="HelpActivity",
            entity_id=activity.id,
            data={"role": activity.role.value},
        )
    logger.info("Help activity cancelled", extra={"activity_id": activity.id})
    return activity


def reopen_activity(db: Session, activity_id: int, *, actor: str) -> HelpActivity:
    """Return a MATCHED activity to the pool when nothing live still depends on it."""

    with atomic(db):
        activity = get_activity(db, activity_id, for_update=True)
        if activity.status != HelpActivityStatus.MATCHED:
            raise Conflict(
                "ACTIVITY_NOT_MATCHED",
                f"Only matched activities can be reopened (current status: {activity.status.value}).",
            )
        blocking_match = db.scalars(
            select(PaymentMatch.id)
            .where(
                or_(
                    PaymentMatch.help_activity_id == activity.id,
                    PaymentMatch.giver_activity_id == activity.id,
                )
            )
            .where(PaymentMatch.status.in_(LIVE_MATCH_STATUSES))
            .limit(1)
        ).first()
        blocking_manual = db.scalars(
            select(ManualMatch.id)
            .where(ManualMatch.help_activity_id == activity.id)
            .where(ManualMatch.status.in_(LIVE_MATCH_STATUSES))
            .limit(1)
        ).first()
        if blocking_match is not None or blocking_manual is not None:
            raise Conflict(
                "ACTIVITY_HAS_LIVE_MATCH",
                "This activity still has a live payment match; settle it or ban the defaulting party first.",
            )
        activity.status = HelpActivityStatus.PENDING
        activity.matched_at = None
        activity.payment_deadline = None
        log_audit(
            db,
            actor=actor,
            action="HELP_ACTIVITY_REOPENED",
            entity="HelpActivity",
            entity_id=activity.id,
            data={"role": activity.role.value},
        )
    logger.info("Help activity reopened", extra={"activity_id": activity.id})
    return activity


def list_activities(db: Session, *, status: HelpActivityStatus | None = None) -> list[HelpActivity]:
    stmt = select(HelpActivity).order_by(HelpActivity.created_at.desc(), HelpActivity.id.desc())
    if status is not None:
        stmt = stmt.where(HelpActivity.status == status)
    return list(db.scalars(stmt).all())


def activities_for_user(db: Session, user_id: int) -> list[HelpActivity]:
    stmt = (
        select(HelpActivity)
        .where(HelpActivity.user_id == user_id)
        .order_by(HelpActivity.created_at.desc(), HelpActivity.id.desc())
    )
    return list(db.scalars(stmt).all())
