"""Matching engine: pairs receivers with givers and records the obligation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mutual_aid.config import get_settings
from mutual_aid.db import atomic
from mutual_aid.models import (
    AUTO_MATCHER,
    LIVE_MATCH_STATUSES,
    BannedAccount,
    HelpActivity,
    HelpActivityStatus,
    HelpRole,
    LiveParty,
    ManualMatch,
    MatchStatus,
    PaymentMatch,
)
from mutual_aid.services.registry import get_activity, live_activity, live_manual_match, live_payment_match
from mutual_aid.services.users import get_user, lock_users
from mutual_aid.utils.audit import log_audit
from mutual_aid.utils.errors import Conflict, PreconditionFailed, ValidationError
from mutual_aid.utils.time import utcnow

logger = logging.getLogger(__name__)


def _to_decimal(value: Any, *, field: str = "amount") -> Decimal:
    """Convert a money amount to a 2-decimal ``Decimal``; reject non-positive values."""

    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            # str() avoids binary float artefacts
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise ValidationError("INVALID_AMOUNT", f"Invalid money amount: {value!r}.", fields=[field]) from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("INVALID_AMOUNT", "Amount must be greater than zero.", fields=[field])
    return amount.quantize(Decimal("0.01"))


def payment_deadline_from(start: datetime) -> datetime:
    """Deadline for a match created at ``start``; computed once and stored."""

    return start + timedelta(hours=get_settings().PAYMENT_WINDOW_HOURS)


# --- Candidate pools ---------------------------------------------------------


def _excluded_users_clause(user_column):
    """Users holding a live match, a live manual match or an active ban stay out of pools."""

    live_givers = select(PaymentMatch.giver_id).where(PaymentMatch.status.in_(LIVE_MATCH_STATUSES))
    live_receivers = select(PaymentMatch.receiver_id).where(PaymentMatch.status.in_(LIVE_MATCH_STATUSES))
    live_manual = select(ManualMatch.user_id).where(ManualMatch.status.in_(LIVE_MATCH_STATUSES))
    banned = select(BannedAccount.user_id).where(BannedAccount.is_active.is_(True))
    return ~or_(
        user_column.in_(live_givers),
        user_column.in_(live_receivers),
        user_column.in_(live_manual),
        user_column.in_(banned),
    )


def _pool(db: Session, role: HelpRole) -> list[HelpActivity]:
    stmt = (
        select(HelpActivity)
        .where(HelpActivity.role == role)
        .where(HelpActivity.status == HelpActivityStatus.PENDING)
        .where(_excluded_users_clause(HelpActivity.user_id))
        .order_by(HelpActivity.created_at.asc(), HelpActivity.id.asc())
    )
    return list(db.scalars(stmt).all())


def pending_receivers(db: Session) -> list[HelpActivity]:
    """Unmatched requests, oldest first."""

    return _pool(db, HelpRole.RECEIVER)


def available_givers(db: Session) -> list[HelpActivity]:
    """Unmatched offers, oldest first."""

    return _pool(db, HelpRole.GIVER)


# --- Pairing primitive -------------------------------------------------------


def _ensure_not_banned(db: Session, user_id: int, *, party: str) -> None:
    banned = db.scalars(
        select(BannedAccount.id)
        .where(BannedAccount.user_id == user_id)
        .where(BannedAccount.is_active.is_(True))
        .limit(1)
    ).first()
    if banned is not None:
        raise PreconditionFailed("ACCOUNT_BANNED", f"The {party} account is suspended.")


def _ensure_free(db: Session, user_id: int, *, party: str) -> None:
    if live_payment_match(db, user_id) is not None or live_manual_match(db, user_id) is not None:
        raise Conflict(
            "PARTY_ALREADY_MATCHED",
            f"The {party} already has a payment match in progress.",
            {"user_id": user_id},
        )


def create_match(
    db: Session,
    *,
    giver_id: int,
    receiver_id: int,
    help_activity_id: int,
    matched_by: str,
    amount: Any = None,
    reference_time: datetime | None = None,
) -> PaymentMatch:
    """Pair ``giver_id`` with ``receiver_id`` against the receiver's request.

    Everything from the availability re-check to the activity updates runs in
    one transaction; the partial unique indexes on live matches turn a lost
    race into an ``IntegrityError`` which is reported as ``Conflict``.
    """

    if giver_id == receiver_id:
        raise ValidationError(
            "SAME_PARTY", "Giver and receiver must be different members.", fields=["giver_id", "receiver_id"]
        )
    match_amount = _to_decimal(amount) if amount is not None else None
    now = reference_time or utcnow()
    deadline = payment_deadline_from(now)

    try:
        with atomic(db):
            get_user(db, giver_id, role="Giver")
            get_user(db, receiver_id, role="Receiver")
            lock_users(db, giver_id, receiver_id)

            request = get_activity(db, help_activity_id, for_update=True)
            if request.role != HelpRole.RECEIVER or request.user_id != receiver_id:
                raise ValidationError(
                    "ACTIVITY_MISMATCH",
                    "The help activity is not a request owned by the receiver.",
                    fields=["help_activity_id"],
                )
            if request.status != HelpActivityStatus.PENDING:
                raise Conflict(
                    "ACTIVITY_ALREADY_MATCHED",
                    f"The help request is no longer pending (current status: {request.status.value}).",
                )

            _ensure_not_banned(db, giver_id, party="giver")
            _ensure_not_banned(db, receiver_id, party="receiver")
            _ensure_free(db, giver_id, party="giver")
            _ensure_free(db, receiver_id, party="receiver")

            offer = live_activity(db, giver_id, HelpRole.GIVER, for_update=True)
            if offer is not None and offer.status != HelpActivityStatus.PENDING:
                offer = None

            match = PaymentMatch(
                giver_id=giver_id,
                receiver_id=receiver_id,
                help_activity_id=request.id,
                giver_activity_id=offer.id if offer else None,
                amount=match_amount if match_amount is not None else request.amount,
                payment_deadline=deadline,
                status=MatchStatus.PENDING,
                matched_by=matched_by,
            )
            db.add(match)

            for activity in (request, offer):
                if activity is None:
                    continue
                activity.status = HelpActivityStatus.MATCHED
                activity.matched_at = now
                activity.payment_deadline = deadline
                activity.admin_approved = True

            db.flush()
            # Both role slots of each party; a racing pairing of either kind fails here.
            db.add_all(
                LiveParty(user_id=party_id, role=role, payment_match_id=match.id)
                for party_id in (giver_id, receiver_id)
                for role in HelpRole
            )
            db.flush()
            for activity in (request, offer):
                if activity is not None:
                    # ``matches`` is view-only; reload it so the variant reads Paired.
                    db.expire(activity, ["matches"])
            log_audit(
                db,
                actor=matched_by,
                action="PAYMENT_MATCH_CREATED",
                entity="PaymentMatch",
                entity_id=match.id,
                data={
                    "giver_id": giver_id,
                    "receiver_id": receiver_id,
                    "help_activity_id": request.id,
                    "giver_activity_id": match.giver_activity_id,
                    "amount": str(match.amount),
                    "payment_deadline": deadline.isoformat(),
                },
            )
    except IntegrityError as exc:
        raise Conflict(
            "PARTY_ALREADY_MATCHED",
            "One of the parties was matched concurrently; refresh the pools and retry.",
        ) from exc

    logger.info(
        "Payment match created",
        extra={"match_id": match.id, "giver_id": giver_id, "receiver_id": receiver_id, "matched_by": matched_by},
    )
    return match


@dataclass
class AutoMatchResult:
    matches: list[PaymentMatch]
    skipped: list[dict[str, Any]]


def auto_match(
    db: Session,
    *,
    matched_by: str = AUTO_MATCHER,
    reference_time: datetime | None = None,
) -> AutoMatchResult:
    """Pair every pending receiver with the oldest giver still free in this run."""

    receivers = pending_receivers(db)
    givers = available_givers(db)
    paired_users: set[int] = set()
    created: list[PaymentMatch] = []
    skipped: list[dict[str, Any]] = []

    for request in receivers:
        if request.user_id in paired_users:
            continue
        giver = next(
            (
                offer
                for offer in givers
                if offer.user_id != request.user_id and offer.user_id not in paired_users
            ),
            None,
        )
        if giver is None:
            continue
        giver_user_id = giver.user_id
        receiver_user_id = request.user_id
        try:
            match = create_match(
                db,
                giver_id=giver_user_id,
                receiver_id=receiver_user_id,
                help_activity_id=request.id,
                matched_by=matched_by,
                reference_time=reference_time,
            )
        except Conflict as exc:
            logger.warning(
                "Auto-match pair skipped",
                extra={"giver_id": giver_user_id, "receiver_id": receiver_user_id, "code": exc.code},
            )
            skipped.append({"giver_id": giver_user_id, "receiver_id": receiver_user_id, "reason": exc.code})
            # Both were re-checked inside the transaction; neither is usable in this run.
            paired_users.update({giver_user_id, receiver_user_id})
            continue
        paired_users.update({giver_user_id, receiver_user_id})
        created.append(match)

    logger.info(
        "Auto-match run finished",
        extra={"receivers": len(receivers), "created": len(created), "skipped": len(skipped)},
    )
    return AutoMatchResult(matches=created, skipped=skipped)


# --- Manual (out-of-band) matches -------------------------------------------


@dataclass
class Counterparty:
    """Contact details of a counterparty who is not a platform member."""

    name: str
    email: str | None = None
    phone: str | None = None
    payment_account: str | None = None
    payment_method: str | None = None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def create_manual_match(
    db: Session,
    *,
    user_id: int,
    role: HelpRole,
    amount: Any,
    counterparty: Counterparty,
    created_by: str,
    reference_time: datetime | None = None,
) -> ManualMatch:
    """Record an operator-authored match with an off-platform counterparty."""

    missing = []
    if amount is None:
        missing.append("amount")
    if not _clean(counterparty.name):
        missing.append("matched_with_name")
    if missing:
        raise ValidationError(
            "MANUAL_MATCH_FIELDS_REQUIRED",
            "Amount and matched user name are required.",
            fields=missing,
        )
    match_amount = _to_decimal(amount)
    now = reference_time or utcnow()

    try:
        with atomic(db):
            get_user(db, user_id)
            lock_users(db, user_id)
            if live_manual_match(db, user_id, role) is not None:
                raise Conflict(
                    "MANUAL_MATCH_EXISTS",
                    f"The user already has a live manual match as {role.value.lower()}.",
                )
            if live_payment_match(db, user_id) is not None:
                raise Conflict("PARTY_ALREADY_MATCHED", "The user already has a payment match in progress.")

            activity = live_activity(db, user_id, role, for_update=True)
            if activity is not None and activity.status != HelpActivityStatus.PENDING:
                activity = None

            deadline = payment_deadline_from(now)
            manual = ManualMatch(
                user_id=user_id,
                role=role,
                amount=match_amount,
                matched_with_name=_clean(counterparty.name),
                matched_with_email=_clean(counterparty.email),
                matched_with_phone=_clean(counterparty.phone),
                payment_account=_clean(counterparty.payment_account),
                payment_method=_clean(counterparty.payment_method) or "Manual Entry",
                status=MatchStatus.PENDING,
                payment_deadline=deadline,
                help_activity_id=activity.id if activity else None,
                created_by=created_by,
            )
            db.add(manual)
            if activity is not None:
                activity.status = HelpActivityStatus.MATCHED
                activity.matched_at = now
                activity.payment_deadline = deadline
                activity.admin_approved = True
            db.flush()
            db.add(LiveParty(user_id=user_id, role=role, manual_match_id=manual.id))
            db.flush()
            log_audit(
                db,
                actor=created_by,
                action="MANUAL_MATCH_CREATED",
                entity="ManualMatch",
                entity_id=manual.id,
                data={
                    "user_id": user_id,
                    "role": role.value,
                    "amount": str(manual.amount),
                    "matched_with_email": manual.matched_with_email,
                    "matched_with_phone": manual.matched_with_phone,
                    "payment_account": manual.payment_account,
                    "help_activity_id": manual.help_activity_id,
                },
            )
    except IntegrityError as exc:
        raise Conflict(
            "PARTY_ALREADY_MATCHED", "The user was matched concurrently; refresh and retry."
        ) from exc

    logger.info(
        "Manual match created",
        extra={"manual_match_id": manual.id, "user_id": user_id, "role": role.value},
    )
    return manual


def list_manual_matches(db: Session, *, live_only: bool = False) -> list[ManualMatch]:
    stmt = select(ManualMatch).order_by(ManualMatch.created_at.desc(), ManualMatch.id.desc())
    if live_only:
        stmt = stmt.where(ManualMatch.status.in_(LIVE_MATCH_STATUSES))
    return list(db.scalars(stmt).all())


def list_matches(db: Session, *, status: MatchStatus | None = None) -> list[PaymentMatch]:
    stmt = select(PaymentMatch).order_by(PaymentMatch.created_at.desc(), PaymentMatch.id.desc())
    if status is not None:
        stmt = stmt.where(PaymentMatch.status == status)
    return list(db.scalars(stmt).all())
