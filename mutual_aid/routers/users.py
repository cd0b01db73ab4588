"""User endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mutual_aid.db import get_db
from mutual_aid.models.api_key import ApiKey, ApiScope
from mutual_aid.models.user import User
from mutual_aid.schemas.user import UserCreate, UserDeleteRead, UserRead
from mutual_aid.security import require_scope
from mutual_aid.services import users as user_service
from mutual_aid.utils.audit import actor_from_api_key, log_audit
from mutual_aid.utils.errors import error_response

router = APIRouter(prefix="/users", tags=["users"])


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    """Create a new user."""

    user = User(**payload.model_dump())
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("USER_CREATE_FAILED", "Could not create user."),
        ) from exc

    actor = actor_from_api_key(api_key, fallback="apikey:unknown")
    log_audit(
        db,
        actor=actor,
        action="CREATE_USER",
        entity="User",
        entity_id=user.id,
        data={"username": user.username, "email": user.email},
    )

    db.commit()
    db.refresh(user)
    return user


@router.get(
    "/{user_id}",
    response_model=UserRead,
)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> User:
    """Retrieve a user by identifier."""

    return user_service.get_user(db, user_id)


@router.delete("/{user_id}", response_model=UserDeleteRead)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_scope({ApiScope.admin})),
) -> UserDeleteRead:
    """Remove a member together with their activities, matches, bans and keys."""

    removed = user_service.delete_user(
        db, user_id, actor=actor_from_api_key(api_key, fallback="apikey:unknown")
    )
    return UserDeleteRead(user_id=user_id, removed=removed)
