"""Operator endpoints for the ban ledger."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mutual_aid.db import get_db
from mutual_aid.models.api_key import ApiKey, ApiScope
from mutual_aid.schemas.bans import BanCreate, BanRead
from mutual_aid.security import require_scope
from mutual_aid.services import bans as ban_service
from mutual_aid.utils.audit import actor_from_api_key

router = APIRouter(prefix="/admin/bans", tags=["bans"])


@router.post("", response_model=BanRead, status_code=status.HTTP_201_CREATED)
def ban_user(
    payload: BanCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
):
    """Suspend a member, typically after a missed payment deadline."""

    return ban_service.ban_user(
        db,
        payload.user_id,
        reason=payload.reason,
        banned_by=actor_from_api_key(api_key, fallback="admin"),
    )


@router.get("", response_model=list[BanRead])
def list_bans(
    active_only: bool = True,
    db: Session = Depends(get_db),
    _: ApiKey = Depends(require_scope({ApiScope.admin})),
):
    return ban_service.list_bans(db, active_only=active_only)


@router.post("/{ban_id}/unban", response_model=BanRead)
def unban_user(
    ban_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
):
    return ban_service.unban_user(db, ban_id, operator=actor_from_api_key(api_key, fallback="admin"))
