"""Member endpoints: register, cancel, confirm and poll the payout state."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mutual_aid.db import get_db
from mutual_aid.models.user import User
from mutual_aid.schemas.help import (
    HelpActivityRead,
    HelpRegister,
    PackageSummary,
    PayoutStateRead,
    PayoutStateResponse,
)
from mutual_aid.schemas.matching import ManualMatchRead, PaymentMatchRead
from mutual_aid.schemas.user_package import SubscribeIn, UserPackageRead
from mutual_aid.security import require_member
from mutual_aid.services import catalog, maturity, monitor, registry, settlement

router = APIRouter(prefix="/help", tags=["help"])


@router.get("/packages", response_model=list[PackageSummary])
def list_packages(db: Session = Depends(get_db), _: User = Depends(require_member)):
    return catalog.list_packages(db)


@router.post("/offers", response_model=HelpActivityRead, status_code=status.HTTP_201_CREATED)
def register_offer(
    payload: HelpRegister,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    """Offer help for a package."""

    return registry.register_offer(db, member.id, payload.package_id)


@router.post("/requests", response_model=HelpActivityRead, status_code=status.HTTP_201_CREATED)
def register_request(
    payload: HelpRegister,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    """Request help; only members already offering help may do so."""

    return registry.register_request(db, member.id, payload.package_id)


@router.get("/activities", response_model=list[HelpActivityRead])
def my_activities(db: Session = Depends(get_db), member: User = Depends(require_member)):
    return registry.activities_for_user(db, member.id)


@router.post("/activities/{activity_id}/cancel", response_model=HelpActivityRead)
def cancel_activity(
    activity_id: int,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    return registry.cancel_activity(db, activity_id, member.id)


@router.get("/payout-state", response_model=PayoutStateResponse)
def payout_state(db: Session = Depends(get_db), member: User = Depends(require_member)):
    """Polled by the dashboard: current counterparty, amount and deadline."""

    state = monitor.user_payout_state(db, member.id)
    if state is None:
        return PayoutStateResponse(state=None)
    return PayoutStateResponse(state=PayoutStateRead.model_validate(state, from_attributes=True))


@router.post("/matches/{match_id}/confirm-sent", response_model=PaymentMatchRead)
def confirm_sent(
    match_id: int,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    return settlement.confirm_sent(db, match_id, member.id)


@router.post("/matches/{match_id}/confirm-received", response_model=PaymentMatchRead)
def confirm_received(
    match_id: int,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    return settlement.confirm_received(db, match_id, member.id)


@router.post("/manual-matches/{manual_id}/confirm", response_model=ManualMatchRead)
def confirm_manual(
    manual_id: int,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    return settlement.confirm_manual(db, manual_id, member.id)


@router.post("/packages", response_model=UserPackageRead, status_code=status.HTTP_201_CREATED)
def subscribe_package(
    payload: SubscribeIn,
    db: Session = Depends(get_db),
    member: User = Depends(require_member),
):
    """Subscribe to a package; maturity starts once an operator approves it."""

    return maturity.subscribe(db, member.id, payload.package_id)
