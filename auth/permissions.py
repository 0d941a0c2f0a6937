"""
auth/permissions.py -- Role and ownership decisions.

Pure functions: no I/O, no side effects. Looking up who owns a resource is
the caller's job; these functions only compare identities.

The check_* functions answer allow (True) / deny (False). The ensure_*
wrappers raise AuthorizationError on deny for use inside request handlers.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Iterable

from auth.errors import AuthorizationError
from auth.models import Principal, Role


def check_role(principal: Principal, allowed_roles: Iterable[Role]) -> bool:
    """Allow iff the principal's role is one of allowed_roles."""
    return Role(principal.role) in {Role(r) for r in allowed_roles}


def check_ownership(principal: Principal, resource_owner_id: int | None) -> bool:
    """Allow iff the principal owns the landlord-scoped resource.

    LANDLORD: owner id must equal the principal's own user id.
    AGENT / TENANT: always denied. Delegated access for these roles is not
        defined yet; see DESIGN.md before relaxing this.
    """
    role = Role(principal.role)
    if role is Role.LANDLORD:
        return resource_owner_id is not None and resource_owner_id == principal.user_id
    if role is Role.AGENT or role is Role.TENANT:
        return False
    raise ValueError(f"Unhandled role: {role!r}")


def ensure_role(principal: Principal, allowed_roles: Iterable[Role]) -> None:
    if not check_role(principal, allowed_roles):
        raise AuthorizationError("Forbidden: insufficient permissions.")


def ensure_ownership(principal: Principal, resource_owner_id: int | None) -> None:
    if not check_ownership(principal, resource_owner_id):
        raise AuthorizationError("Forbidden: you can only access your own resources.")
