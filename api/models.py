"""
API request and response models for PropDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Every response shares one envelope: {success, message, data?, errors?}.
Routes dump with exclude_none=True so absent keys are omitted, not null.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import Role, UserProfile
from auth.passwords import MAX_PASSWORD_BYTES
from auth.service import PHONE_PATTERN

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately permissive: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# At least one lowercase, uppercase, digit and special character; only those classes.
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, max_length=16)
    password: str = Field(min_length=8, max_length=MAX_PASSWORD_BYTES)
    role: Role
    landlord_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: Optional[str]) -> Optional[str]:
        """Treat "" as absent; otherwise require an international number."""
        if not value:
            return None
        if not re.match(PHONE_PATTERN, value):
            raise ValueError("Phone must be a valid international number")
        return value

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        if not _PASSWORD_RE.match(value):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, "
                "one number, and one special character"
            )
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value

    @model_validator(mode="after")
    def landlord_link_only_for_managed_roles(self) -> "RegisterRequest":
        if self.role is Role.LANDLORD and self.landlord_id is not None:
            raise ValueError("landlord_id is only valid for AGENT or TENANT accounts")
        return self


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is an email or phone number."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public-safe user representation. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    role: Role
    is_active: bool
    landlord_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "UserResponse":
        return cls(
            id=profile.id,
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            phone=profile.phone,
            role=profile.role,
            is_active=profile.is_active,
            landlord_id=profile.landlord_id,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class AuthData(BaseModel):
    """data payload for register and login responses."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class FieldError(BaseModel):
    """One per-field validation failure."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class Envelope(BaseModel):
    """Top-level envelope shared by success and error responses."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str = ""
    data: Optional[Any] = None
    errors: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
