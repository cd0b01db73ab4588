"""Deadline monitor: read-only views over live obligations.

Nothing here mutates state. Overdue obligations are surfaced to operators,
who decide whether to ban; the monitor never acts on its own.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from mutual_aid.models import (
    LIVE_MATCH_STATUSES,
    HelpRole,
    ManualMatch,
    MatchStatus,
    Package,
    PaymentMatch,
    User,
)
from mutual_aid.services.registry import live_manual_match
from mutual_aid.utils.time import ensure_utc, utcnow


@dataclass(frozen=True)
class DeadlineStatus:
    payment_deadline: datetime
    seconds_remaining: int
    overdue: bool


def time_remaining(obligation: PaymentMatch | ManualMatch, reference_time: datetime | None = None) -> timedelta:
    now = ensure_utc(reference_time) or utcnow()
    return ensure_utc(obligation.payment_deadline) - now


def deadline_status(
    obligation: PaymentMatch | ManualMatch, reference_time: datetime | None = None
) -> DeadlineStatus:
    """Derive the overdue flag; completed obligations are never overdue."""

    remaining = time_remaining(obligation, reference_time)
    completed = obligation.status == MatchStatus.COMPLETED
    return DeadlineStatus(
        payment_deadline=ensure_utc(obligation.payment_deadline),
        seconds_remaining=int(remaining.total_seconds()),
        overdue=not completed and remaining.total_seconds() < 0,
    )


@dataclass(frozen=True)
class MatchWithDeadline:
    match: PaymentMatch
    deadline: DeadlineStatus


def active_matches(
    db: Session, *, reference_time: datetime | None = None, overdue_only: bool = False
) -> list[MatchWithDeadline]:
    """Live matches, most urgent (earliest deadline) first."""

    now = reference_time or utcnow()
    stmt = (
        select(PaymentMatch)
        .where(PaymentMatch.status.in_(LIVE_MATCH_STATUSES))
        .order_by(PaymentMatch.payment_deadline.asc(), PaymentMatch.id.asc())
    )
    results = [
        MatchWithDeadline(match=match, deadline=deadline_status(match, now))
        for match in db.scalars(stmt).all()
    ]
    if overdue_only:
        results = [item for item in results if item.deadline.overdue]
    return results


def overdue_matches(db: Session, *, reference_time: datetime | None = None) -> list[MatchWithDeadline]:
    return active_matches(db, reference_time=reference_time, overdue_only=True)


@dataclass(frozen=True)
class Counterparty:
    name: str | None
    email: str | None = None
    phone: str | None = None
    payment_account: str | None = None
    payment_method: str | None = None


@dataclass(frozen=True)
class PayoutState:
    """What the member dashboard polls for: who to pay (or expect) and by when."""

    role: HelpRole
    source: str
    obligation_id: int
    status: MatchStatus
    amount: Decimal
    counterparty: Counterparty
    deadline: DeadlineStatus
    package: dict[str, Any] | None = None


def _package_summary(package: Package | None) -> dict[str, Any] | None:
    if package is None:
        return None
    return {
        "id": package.id,
        "name": package.name,
        "amount": package.amount,
        "return_percentage": package.return_percentage,
        "duration_days": package.duration_days,
    }


def _member_counterparty(user: User) -> Counterparty:
    return Counterparty(name=user.display_name, email=user.email, phone=user.phone_number)


def _match_as(db: Session, user_id: int, role: HelpRole) -> PaymentMatch | None:
    column = PaymentMatch.giver_id if role == HelpRole.GIVER else PaymentMatch.receiver_id
    stmt = (
        select(PaymentMatch)
        .where(column == user_id)
        .where(PaymentMatch.status.in_(LIVE_MATCH_STATUSES))
        .order_by(PaymentMatch.created_at.desc(), PaymentMatch.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def user_payout_state(
    db: Session, user_id: int, *, reference_time: datetime | None = None
) -> PayoutState | None:
    """The member's live obligation: giver match first, then receiver match, then manual match."""

    now = reference_time or utcnow()
    for role in (HelpRole.GIVER, HelpRole.RECEIVER):
        match = _match_as(db, user_id, role)
        if match is None:
            continue
        other = match.receiver if role == HelpRole.GIVER else match.giver
        request = match.help_activity
        return PayoutState(
            role=role,
            source="payment_match",
            obligation_id=match.id,
            status=match.status,
            amount=match.amount,
            counterparty=_member_counterparty(other),
            deadline=deadline_status(match, now),
            package=_package_summary(request.package if request else None),
        )

    manual = live_manual_match(db, user_id)
    if manual is None:
        return None
    return PayoutState(
        role=manual.role,
        source="manual_match",
        obligation_id=manual.id,
        status=manual.status,
        amount=manual.amount,
        counterparty=Counterparty(
            name=manual.matched_with_name,
            email=manual.matched_with_email,
            phone=manual.matched_with_phone,
            payment_account=manual.payment_account,
            payment_method=manual.payment_method,
        ),
        deadline=deadline_status(manual, now),
        package=_package_summary(manual.help_activity.package if manual.help_activity else None),
    )


__all__ = [
    "Counterparty",
    "DeadlineStatus",
    "MatchWithDeadline",
    "PayoutState",
    "active_matches",
    "deadline_status",
    "overdue_matches",
    "time_remaining",
    "user_payout_state",
]
