"""User-facing DTOs and the persisted user entity."""
from __future__ import annotations

from datetime import datetime
from typing import Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

NIL_UUID = UUID(int=0)

T = TypeVar("T")


def _normalize_email(value: str) -> str:
    return value.strip().lower()


class UserBase(BaseModel):
    """Base user fields."""
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    email: EmailStr = Field(..., description="User email address")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("email", mode="after")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class UserRegistration(UserBase):
    """Registration payload."""
    password: str = Field(..., min_length=8, description="Raw password (not stored).")


class UserUpdate(UserBase):
    """Mutable fields of a user record."""


class LoginForm(BaseModel):
    """Login payload."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="Password")


class User(BaseModel):
    """Persisted user record."""
    id: UUID
    name: str
    email: str
    password_hash: str
    is_superuser: bool = False
    created_at: datetime
    updated_at: datetime


class UserOut(BaseModel):
    """Safe user representation."""
    id: UUID = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="User email address")
    is_superuser: bool = Field(default=False)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, user: User) -> "UserOut":
        return cls(**user.model_dump(exclude={"password_hash"}))


class TokenResponse(BaseModel):
    """Access token response."""
    token: str = Field(..., description="Authorization header value (Bearer <jwt>)")
    expires_at: datetime = Field(..., description="Token expiry (UTC)")


class UserQuery(BaseModel):
    """Query string for listing users."""
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
    search: Optional[str] = Field(default=None, max_length=255)


class NoQuery(BaseModel):
    """Empty query for endpoints without query parameters."""


class PaginationResult(BaseModel, Generic[T]):
    page: int
    page_size: int
    total: int
    items: List[T]
