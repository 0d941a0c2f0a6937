"""
api/routes/v1/auth.py -- Authentication and landlord-scoped user REST endpoints.

Routes:
  POST /api/v1/auth/register           -- create account; returns token + user (public)
  POST /api/v1/auth/login              -- email/phone + password login (public)
  POST /api/v1/auth/logout             -- revoke the presented token (requires auth)
  GET  /api/v1/auth/me                 -- current user profile (requires auth)
  GET  /api/v1/auth/users?role=        -- users managed by the caller (LANDLORD only)
  GET  /api/v1/auth/users/{id}         -- one managed user (requires auth + ownership)

Security:
  [C1] AuthService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on responses that carry a token.
  register and login are sync handlers: FastAPI runs them in the threadpool,
  so bcrypt work never blocks the event loop.

Handlers raise auth.errors exceptions; api/main.py maps them to status codes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import AuthData, Envelope, LoginRequest, RegisterRequest, UserResponse
from auth.dependencies import get_current_principal, require_roles
from auth.models import AuthResult, Principal, Role
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:      public
# - POST /api/v1/auth/login:         public
# - POST /api/v1/auth/logout:        requires auth (get_current_principal)
# - GET  /api/v1/auth/me:            requires auth (get_current_principal)
# - GET  /api/v1/auth/users:         requires LANDLORD (require_roles)
# - GET  /api/v1/auth/users/{id}:    requires auth + ownership check in service
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _envelope(status_code: int, message: str, data=None) -> JSONResponse:
    body = Envelope(success=True, message=message, data=data)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


def _token_response(request: Request, status_code: int, message: str, result: AuthResult) -> JSONResponse:
    data = AuthData(
        access_token=result.access_token,
        expires_in=request.app.state.token_service.lifetime_seconds,
        user=UserResponse.from_profile(result.user),
    )
    resp = _envelope(status_code, message, data)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and return its first access token.

    The token is returned as data.access_token (OAuth2 naming), alongside
    token_type and expires_in.

    409 if the email is taken, 400 if landlord_id does not name a LANDLORD.
    """
    result = _service(request).register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        role=body.role,
        phone=body.phone,
        landlord_id=body.landlord_id,
    )
    return _token_response(request, 201, "Registration successful", result)


@router.post("/auth/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email (or phone) and password.

    Unknown identifier and wrong password return the same 401 body. A
    deactivated account gets 403 whatever password is sent. The token is
    returned as data.access_token with token_type and expires_in.
    """
    result = _service(request).login(body.identifier, body.password)
    return _token_response(request, 200, "Login successful", result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout")
def logout(request: Request, principal: Principal = Depends(get_current_principal)) -> JSONResponse:
    """Revoke the bearer token used for this request. Always 200 once authenticated."""
    _service(request).logout(request.state.access_token, principal.user_id)
    return _envelope(200, "Logout successful")


@router.get("/auth/me")
def me(request: Request, principal: Principal = Depends(get_current_principal)) -> JSONResponse:
    """Return the profile of the authenticated user."""
    profile = _service(request).get_profile(principal.user_id)
    return _envelope(200, "Profile retrieved", UserResponse.from_profile(profile))


@router.get("/auth/users")
def list_users(
    request: Request,
    role: Optional[Role] = None,
    principal: Principal = Depends(require_roles(Role.LANDLORD)),
) -> JSONResponse:
    """List users linked to the calling landlord, optionally filtered by role."""
    users = _service(request).list_managed_users(principal, role)
    return _envelope(200, "Users retrieved", [UserResponse.from_profile(u) for u in users])


@router.get("/auth/users/{user_id}")
def get_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(get_current_principal),
) -> JSONResponse:
    """Return one user, only to the landlord that manages it."""
    profile = _service(request).get_managed_user(principal, user_id)
    return _envelope(200, "User retrieved", UserResponse.from_profile(profile))
