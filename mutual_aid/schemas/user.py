"""User schemas."""
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from mutual_aid.models.user import UserRole


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    full_name: str | None = None
    phone_number: str | None = Field(default=None, max_length=50)
    role: UserRole = UserRole.MEMBER
    is_active: bool = True


class UserRead(BaseModel):
    id: int
    username: str
    email: EmailStr
    full_name: str | None = None
    phone_number: str | None = None
    role: UserRole
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class UserDeleteRead(BaseModel):
    user_id: int
    removed: dict[str, int]
