"""Operator console: candidate pools, matching, manual matches and verification."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mutual_aid.db import get_db
from mutual_aid.models.api_key import ApiKey, ApiScope
from mutual_aid.models.help_activity import HelpActivityStatus
from mutual_aid.schemas.help import HelpActivityRead
from mutual_aid.schemas.matching import (
    ActiveMatchRead,
    AutoMatchRead,
    AutoMatchSkip,
    ManualMatchCreate,
    ManualMatchRead,
    MatchCreate,
    PaymentMatchRead,
)
from mutual_aid.security import require_scope
from mutual_aid.services import matching, monitor, registry, settlement
from mutual_aid.services import users as user_service
from mutual_aid.utils.audit import actor_from_api_key
from mutual_aid.utils.errors import ValidationError

router = APIRouter(prefix="/admin", tags=["admin"])

require_operator = require_scope({ApiScope.admin})


def _operator(api_key: ApiKey) -> str:
    return actor_from_api_key(api_key, fallback="admin")


@router.get("/pending-receivers", response_model=list[HelpActivityRead])
def pending_receivers(db: Session = Depends(get_db), _: ApiKey = Depends(require_operator)):
    return matching.pending_receivers(db)


@router.get("/available-givers", response_model=list[HelpActivityRead])
def available_givers(db: Session = Depends(get_db), _: ApiKey = Depends(require_operator)):
    return matching.available_givers(db)


@router.post("/auto-match", response_model=AutoMatchRead)
def auto_match(db: Session = Depends(get_db), _: ApiKey = Depends(require_operator)) -> AutoMatchRead:
    """Pair every pending receiver with an available giver."""

    result = matching.auto_match(db)
    return AutoMatchRead(
        created=len(result.matches),
        matches=[PaymentMatchRead.model_validate(match) for match in result.matches],
        skipped=[AutoMatchSkip(**skip) for skip in result.skipped],
    )


@router.post("/matches", response_model=PaymentMatchRead, status_code=status.HTTP_201_CREATED)
def create_match(
    payload: MatchCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    """Pair a giver with a receiver chosen by the operator."""

    return matching.create_match(
        db,
        giver_id=payload.giver_id,
        receiver_id=payload.receiver_id,
        help_activity_id=payload.help_activity_id,
        amount=payload.amount,
        matched_by=_operator(api_key),
    )


@router.get("/matches", response_model=list[ActiveMatchRead])
def active_matches(
    overdue_only: bool = False,
    db: Session = Depends(get_db),
    _: ApiKey = Depends(require_operator),
) -> list[ActiveMatchRead]:
    """Live matches with their deadline status, most urgent first."""

    return [
        ActiveMatchRead.model_validate(
            {
                **PaymentMatchRead.model_validate(item.match).model_dump(),
                "seconds_remaining": item.deadline.seconds_remaining,
                "overdue": item.deadline.overdue,
            }
        )
        for item in monitor.active_matches(db, overdue_only=overdue_only)
    ]


@router.post("/matches/{match_id}/confirm", response_model=PaymentMatchRead)
def operator_confirm(
    match_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    return settlement.operator_confirm(db, match_id, operator=_operator(api_key))


@router.post("/manual-matches", response_model=ManualMatchRead, status_code=status.HTTP_201_CREATED)
def create_manual_match(
    payload: ManualMatchCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    """Match a member with a counterparty who has no account."""

    user_id = payload.user_id
    if user_id is None:
        if not (payload.user or "").strip():
            raise ValidationError(
                "MANUAL_MATCH_FIELDS_REQUIRED",
                "A member id, username or email is required.",
                fields=["user_id"],
            )
        user_id = user_service.find_user(db, payload.user).id

    return matching.create_manual_match(
        db,
        user_id=user_id,
        role=payload.role,
        amount=payload.amount,
        counterparty=matching.Counterparty(
            name=payload.matched_with_name or "",
            email=payload.matched_with_email,
            phone=payload.matched_with_phone,
            payment_account=payload.payment_account,
            payment_method=payload.payment_method,
        ),
        created_by=_operator(api_key),
    )


@router.get("/manual-matches", response_model=list[ManualMatchRead])
def list_manual_matches(
    live_only: bool = False,
    db: Session = Depends(get_db),
    _: ApiKey = Depends(require_operator),
):
    return matching.list_manual_matches(db, live_only=live_only)


@router.post("/manual-matches/{manual_id}/confirm", response_model=ManualMatchRead)
def operator_confirm_manual(
    manual_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    return settlement.operator_confirm_manual(db, manual_id, operator=_operator(api_key))


@router.get("/help-activities", response_model=list[HelpActivityRead])
def list_help_activities(
    status_filter: HelpActivityStatus | None = None,
    db: Session = Depends(get_db),
    _: ApiKey = Depends(require_operator),
):
    return registry.list_activities(db, status=status_filter)


@router.post("/help-activities/{activity_id}/reopen", response_model=HelpActivityRead)
def reopen_activity(
    activity_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    """Put a matched activity back in the pool once nothing live depends on it."""

    return registry.reopen_activity(db, activity_id, actor=_operator(api_key))
