"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store, services and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of account roles.

    LANDLORD accounts own data; AGENT and TENANT accounts are linked to the
    landlord that manages them through User.landlord_id.
    """

    LANDLORD = "LANDLORD"
    AGENT = "AGENT"
    TENANT = "TENANT"


@dataclass
class User:
    """A stored account, including its credential.

    hashed_password never leaves the store/service boundary -- routes only
    ever see UserProfile.

    landlord_id is non-null only for AGENT/TENANT accounts and references the
    id of a LANDLORD user.
    """

    first_name: str
    last_name: str
    email: str
    hashed_password: str
    role: Role
    id: int | None = None
    phone: str | None = None
    landlord_id: int | None = None
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class UserProfile:
    """Public-safe projection of a User. Carries no credential material."""

    id: int
    first_name: str
    last_name: str
    email: str
    role: Role
    is_active: bool
    phone: str | None = None
    landlord_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_user(cls, user: User) -> UserProfile:
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            phone=user.phone,
            landlord_id=user.landlord_id,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


@dataclass(frozen=True)
class TokenPayload:
    """Claims recovered from a verified access token."""

    user_id: int
    role: Role
    issued_at: datetime
    expires_at: datetime
    landlord_id: int | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a request."""

    user_id: int
    role: Role
    landlord_id: int | None = None

    @classmethod
    def from_payload(cls, payload: TokenPayload) -> Principal:
        return cls(user_id=payload.user_id, role=payload.role, landlord_id=payload.landlord_id)

    @classmethod
    def from_user(cls, user: User) -> Principal:
        return cls(user_id=user.id, role=user.role, landlord_id=user.landlord_id)


@dataclass
class BlacklistEntry:
    """A revoked access token.

    expires_at always equals the token's own exp claim. Once it passes, the
    entry is garbage: the token fails signature/expiry verification anyway.
    """

    token: str
    user_id: int
    expires_at: datetime
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful register() or login()."""

    user: UserProfile
    access_token: str

    @property
    def principal(self) -> Principal:
        return Principal(user_id=self.user.id, role=self.user.role, landlord_id=self.user.landlord_id)
