"""Operator endpoints for package maturity."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mutual_aid.db import get_db
from mutual_aid.models.api_key import ApiKey, ApiScope
from mutual_aid.models.user_package import UserPackageStatus
from mutual_aid.schemas.user_package import ApproveIn, ExtendIn, UserPackageRead
from mutual_aid.security import require_scope
from mutual_aid.services import maturity
from mutual_aid.utils.audit import actor_from_api_key

router = APIRouter(prefix="/admin/user-packages", tags=["user-packages"])

require_operator = require_scope({ApiScope.admin})


@router.get("", response_model=list[UserPackageRead])
def list_user_packages(
    status_filter: UserPackageStatus | None = None,
    db: Session = Depends(get_db),
    _: ApiKey = Depends(require_operator),
):
    return maturity.list_user_packages(db, status=status_filter)


@router.post("/{user_package_id}/approve", response_model=UserPackageRead)
def approve(
    user_package_id: int,
    payload: ApproveIn,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    return maturity.approve(
        db, user_package_id, payload.maturity_date, operator=actor_from_api_key(api_key, fallback="admin")
    )


@router.post("/{user_package_id}/reject", response_model=UserPackageRead)
def reject(
    user_package_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    return maturity.reject(db, user_package_id, operator=actor_from_api_key(api_key, fallback="admin"))


@router.post("/{user_package_id}/extend", response_model=UserPackageRead)
def extend(
    user_package_id: int,
    payload: ExtendIn,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    return maturity.extend(
        db,
        user_package_id,
        payload.new_maturity_date,
        operator=actor_from_api_key(api_key, fallback="admin"),
    )


@router.post("/{user_package_id}/reset", response_model=UserPackageRead)
def reset(
    user_package_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_operator),
):
    """Send the subscription back to PENDING; the extension count is kept."""

    return maturity.reset(db, user_package_id, operator=actor_from_api_key(api_key, fallback="admin"))
