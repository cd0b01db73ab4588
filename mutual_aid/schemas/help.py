"""Schemas for help offers, requests and the member payout dashboard."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from mutual_aid.models.help_activity import HelpActivityStatus, HelpRole
from mutual_aid.models.payment_match import MatchStatus


class HelpRegister(BaseModel):
    """Offer or request registration; an empty package id is rejected by the registry."""

    package_id: str | None = None


class HelpActivityRead(BaseModel):
    id: int
    user_id: int
    role: HelpRole
    kind: str
    giver_id: int | None = None
    receiver_id: int | None = None
    counterparty_id: int | None = None
    package_id: str
    amount: Decimal
    status: HelpActivityStatus
    admin_approved: bool
    created_at: datetime
    matched_at: datetime | None = None
    maturity_date: datetime | None = None
    payment_deadline: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DeadlineRead(BaseModel):
    payment_deadline: datetime
    seconds_remaining: int
    overdue: bool

    model_config = ConfigDict(from_attributes=True)


class CounterpartyRead(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    payment_account: str | None = None
    payment_method: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PackageSummary(BaseModel):
    id: str
    name: str
    amount: Decimal
    return_percentage: int
    duration_days: int

    model_config = ConfigDict(from_attributes=True)


class PayoutStateRead(BaseModel):
    role: HelpRole
    source: str
    obligation_id: int
    status: MatchStatus
    amount: Decimal
    counterparty: CounterpartyRead
    deadline: DeadlineRead
    package: PackageSummary | None = None

    model_config = ConfigDict(from_attributes=True)


class PayoutStateResponse(BaseModel):
    """``state`` is null while the member has nothing live to pay or receive."""

    state: PayoutStateRead | None = None
