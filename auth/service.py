"""
auth/service.py -- Registration, login, logout and profile orchestration.

AuthService composes the credential store, password hasher and token
service. It takes already-validated input (api/models.py does the field
checks) and returns domain values or raises an auth.errors exception.

Security:
  [C1] login() always runs bcrypt, against a dummy hash when the identifier
       matches nobody, so response time does not reveal account existence.
  Unknown identifier and wrong password raise the SAME AuthenticationError.
  A deactivated account is reported distinctly as soon as it is found,
       before the password is checked: the account is known to exist.
  register() hashes before touching the store and issues a token only after
       the insert commits: a failed insert leaves no user and no token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError

from auth.errors import AccountDeactivatedError, AuthenticationError, ConflictError, NotFoundError, ValidationError
from auth.models import AuthResult, Principal, Role, User, UserProfile
from auth.passwords import PasswordHasher
from auth.permissions import ensure_ownership
from auth.store import UserStore
from auth.tokens import TokenService

logger = logging.getLogger("propdesk.auth")

# E.164-style: optional "+", no leading zero, up to 15 digits.
PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"
_PHONE_RE = re.compile(PHONE_PATTERN)


def looks_like_phone(identifier: str) -> bool:
    return bool(_PHONE_RE.match(identifier))


class AuthService:
    """Use-case layer for the /auth routes.

    Usage:
        service = AuthService(store, hasher, tokens)
        result = service.login("ada@example.com", "Aa1!aaaa")
        result.access_token, result.user
    """

    def __init__(self, store: UserStore, hasher: PasswordHasher, tokens: TokenService) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------

    def register(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        role: Role,
        phone: str | None = None,
        landlord_id: int | None = None,
    ) -> AuthResult:
        """Create an account and issue its first token.

        Raises ConflictError if the email is taken (including a lost race on
        the UNIQUE constraint) and ValidationError if landlord_id does not
        name an existing LANDLORD.
        """
        role = Role(role)
        if self.store.get_by_email(email) is not None:
            raise ConflictError("Email already registered.")

        if landlord_id is not None:
            if self.store.get_landlord(landlord_id) is None:
                raise ValidationError("Invalid landlord ID or landlord not found.", code="invalid_landlord")
        elif role is not Role.LANDLORD:
            # Linkage may be assigned later; note it for operators.
            logger.warning("%s account registered without a landlord", role.value)

        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone or None,
            hashed_password=self.hasher.hash(password),
            role=role,
            landlord_id=landlord_id,
        )
        try:
            user.id = self.store.create_user(user)
        except IntegrityError as exc:
            raise ConflictError("A user with this email already exists.") from exc

        created = self.store.get_by_id(user.id) or user
        token = self.tokens.issue(created.id, created.role, created.landlord_id)
        logger.info("Registered %s user %s", created.role.value, created.id)
        return AuthResult(user=UserProfile.from_user(created), access_token=token)

    def login(self, identifier: str, password: str) -> AuthResult:
        """Verify credentials by email (or phone) and issue a fresh token."""
        user = self.store.get_by_email(identifier)
        if user is None and looks_like_phone(identifier):
            user = self.store.get_by_phone(identifier)

        if user is None:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify(password, self.hasher.dummy_hash)
            logger.info("Failed login: unknown identifier")
            raise AuthenticationError("Invalid credentials.")
        if not user.is_active:
            logger.info("Login refused for deactivated user %s", user.id)
            raise AccountDeactivatedError("Account is deactivated.")
        if not self.hasher.verify(password, user.hashed_password):
            logger.info("Failed login for user %s", user.id)
            raise AuthenticationError("Invalid credentials.")

        token = self.tokens.issue(user.id, user.role, user.landlord_id)
        logger.info("User %s logged in", user.id)
        return AuthResult(user=UserProfile.from_user(user), access_token=token)

    def logout(self, token: str, user_id: int) -> None:
        """Revoke the presented token. Safe to call repeatedly."""
        self.tokens.revoke(token, user_id)
        logger.info("User %s logged out", user_id)

    def get_profile(self, user_id: int) -> UserProfile:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return UserProfile.from_user(user)

    # ------------------------------------------------------------------
    # Landlord-scoped queries
    # ------------------------------------------------------------------

    def list_managed_users(self, principal: Principal, role: Role | None = None) -> list[UserProfile]:
        """Users whose landlord linkage points at the principal.

        Role gating (LANDLORD only) happens before this call; the landlord_id
        filter is what keeps one landlord from seeing another's users.
        """
        users = self.store.list_by_landlord(principal.user_id, role)
        return [UserProfile.from_user(u) for u in users]

    def get_managed_user(self, principal: Principal, user_id: int) -> UserProfile:
        """Fetch one user, allowed only if the principal owns it via landlord linkage."""
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        ensure_ownership(principal, user.landlord_id)
        return UserProfile.from_user(user)
