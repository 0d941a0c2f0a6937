"""
auth/dependencies.py -- Request authentication and FastAPI Depends() helpers.

authenticate_bearer() is the gate itself, framework-free. Check order:
  1. Authorization: Bearer <token> present and well-formed   -> else no_credentials
  2. token not blacklisted                                   -> else token_revoked
  3. signature and expiry valid                              -> else invalid_token
  4. referenced user still exists and is active              -> else account_unavailable
Cheap checks come first; the liveness check needs a store round-trip.
Any store fault during the sequence surfaces as InternalError (500), never
as a partially-evaluated decision.

get_current_principal() wraps the gate for routes and attaches the result to
request.state. require_roles() layers the role decision on top.

Layer rule: may import from fastapi (Request) because this module is part of
the dependency injection system. No imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthenticationError, InternalError
from auth.models import Principal, Role
from auth.permissions import ensure_role
from auth.store import UserStore
from auth.tokens import TokenService

logger = logging.getLogger("propdesk.auth")

_BEARER_PREFIX = "Bearer "


def extract_bearer_token(auth_header: str | None) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' header, else None."""
    if not auth_header or not auth_header.startswith(_BEARER_PREFIX):
        return None
    token = auth_header[len(_BEARER_PREFIX) :].strip()
    return token or None


def authenticate_bearer(auth_header: str | None, tokens: TokenService, store: UserStore) -> tuple[Principal, str]:
    """Resolve the request's principal or raise AuthenticationError.

    Returns (principal, raw_token); logout needs the raw token to revoke it.
    """
    token = extract_bearer_token(auth_header)
    if token is None:
        raise AuthenticationError("Access denied. No token provided.", code="no_credentials")

    try:
        if tokens.is_revoked(token):
            raise AuthenticationError("Token has been invalidated.", code="token_revoked")

        payload = tokens.verify(token)
        if payload is None:
            raise AuthenticationError("Invalid or expired token.", code="invalid_token")

        user = store.get_by_id(payload.user_id)
    except SQLAlchemyError as exc:
        logger.exception("Credential store failure during authentication")
        raise InternalError("Authentication error.") from exc

    if user is None or not user.is_active:
        raise AuthenticationError("User account is deactivated or does not exist.", code="account_unavailable")

    return Principal.from_payload(payload), token


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises AuthenticationError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal, token = authenticate_bearer(
        request.headers.get("Authorization"),
        request.app.state.token_service,
        request.app.state.user_store,
    )
    request.state.principal = principal
    request.state.access_token = token
    return principal


def require_roles(*roles: Role) -> Callable[[Request], Principal]:
    """Build a dependency that authenticates, then demands one of the given roles.

    Use as a FastAPI dependency:
        @router.get("/landlord-only")
        def route(principal: Principal = Depends(require_roles(Role.LANDLORD))): ...
    """

    def dependency(request: Request) -> Principal:
        principal = get_current_principal(request)
        ensure_role(principal, roles)
        return principal

    return dependency
