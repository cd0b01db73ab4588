"""Schemas for payment matches and operator-authored manual matches."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from mutual_aid.models.help_activity import HelpRole
from mutual_aid.models.payment_match import MatchStatus


class MatchCreate(BaseModel):
    """Operator pairing; both parties travel in one call."""

    giver_id: int = Field(gt=0)
    receiver_id: int = Field(gt=0)
    help_activity_id: int = Field(gt=0)
    amount: Decimal | None = None


class PaymentMatchRead(BaseModel):
    id: int
    giver_id: int
    receiver_id: int
    help_activity_id: int
    giver_activity_id: int | None = None
    amount: Decimal
    payment_deadline: datetime
    status: MatchStatus
    matched_by: str
    created_at: datetime
    sent_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ActiveMatchRead(PaymentMatchRead):
    seconds_remaining: int
    overdue: bool


class AutoMatchSkip(BaseModel):
    giver_id: int
    receiver_id: int
    reason: str


class AutoMatchRead(BaseModel):
    created: int
    matches: list[PaymentMatchRead]
    skipped: list[AutoMatchSkip] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class ManualMatchCreate(BaseModel):
    user_id: int | None = Field(default=None, gt=0)
    # Username or email, for operators who do not have the member id at hand.
    user: str | None = Field(default=None, max_length=255)
    role: HelpRole
    amount: Decimal | None = None
    matched_with_name: str | None = None
    matched_with_email: EmailStr | None = None
    matched_with_phone: str | None = Field(default=None, max_length=50)
    payment_account: str | None = Field(default=None, max_length=255)
    payment_method: str | None = Field(default=None, max_length=100)


class ManualMatchRead(BaseModel):
    id: int
    user_id: int
    role: HelpRole
    amount: Decimal
    matched_with_name: str
    matched_with_email: str | None = None
    matched_with_phone: str | None = None
    payment_account: str | None = None
    payment_method: str | None = None
    status: MatchStatus
    payment_deadline: datetime
    help_activity_id: int | None = None
    created_by: str
    created_at: datetime
    sent_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
