"""Pydantic models for authentication domain."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from starter.core.security import MIN_PASSWORD_LENGTH, check_password_strength

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


class Role(StrEnum):
    """Closed set of account roles."""

    USER = "USER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"


class AuthUser(BaseModel):
    """Persisted auth user model, credential hash included."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    username: str
    password_hash: str
    first_name: str | None = None
    last_name: str | None = None
    role: Role = Role.USER
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_public(self) -> "UserPublic":
        """Return the user without its credential hash."""
        return UserPublic(**self.model_dump(exclude={"password_hash"}))


class UserPublic(BaseModel):
    """User as returned to API clients."""

    id: str
    email: str
    username: str
    first_name: str | None = None
    last_name: str | None = None
    role: Role
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RefreshTokenRecord(BaseModel):
    """Refresh token persistence record."""

    model_config = ConfigDict(from_attributes=True)

    token: str
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class StoredRefreshToken:
    """Refresh token record joined with its owning user."""

    record: RefreshTokenRecord
    user: AuthUser


class TokenPair(BaseModel):
    """Access/refresh token pair returned to clients."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResult(BaseModel):
    """Outcome of registration or login."""

    user: UserPublic
    tokens: TokenPair


class RegisterRequest(BaseModel):
    """Registration request payload."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)

    @field_validator("username")
    @classmethod
    def _username_charset(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("username may only contain letters, digits and underscores")
        return value

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class LoginRequest(BaseModel):
    """Login request payload."""

    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    """Refresh and logout request payload."""

    refresh_token: str = Field(min_length=1)


class RoleUpdateRequest(BaseModel):
    """Admin role change payload."""

    role: Role
