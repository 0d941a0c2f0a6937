"""
api/main.py -- FastAPI application entry point for PropDesk.

Run with:      uvicorn asgi:app --reload

This module is the composition root: it is the only place that calls
get_settings(). Lifespan builds the credential store, password hasher,
token service and auth service from that one Settings instance and hangs
them on app.state for the route layer.

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- adds CORS headers for the configured browser origins
  2. log_requests    -- one log line per request with latency

Every error leaves through the exception handlers below and is rendered in
the shared {success, message, errors?} envelope.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import Envelope, FieldError, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import (
    AccountDeactivatedError,
    AuthenticationError,
    AuthorizationError,
    AuthServiceError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings

VERSION = "0.1.0"

# Fail fast: a missing or short SECRET_KEY aborts import, i.e. process start.
settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("propdesk.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build auth collaborators on startup; release the DB engine on shutdown.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The hasher and token service are configured once here and are
    read-only for the rest of the process lifetime.
    """
    logger.info("PropDesk API starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.token_service = TokenService(
        app.state.user_store,
        secret_key=settings.secret_key,
        lifetime_seconds=settings.token_expire_seconds,
        algorithm=settings.jwt_algorithm,
    )
    app.state.auth_service = AuthService(
        app.state.user_store,
        app.state.password_hasher,
        app.state.token_service,
    )
    logger.info(
        "Auth initialized (token_lifetime=%ss, bcrypt_rounds=%s)",
        settings.token_expire_seconds,
        settings.bcrypt_rounds,
    )

    yield

    app.state.user_store.close()
    logger.info("PropDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PropDesk API",
    description="Authentication and role-based access for landlords, agents and tenants.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler; wall-clock time around call_next gives per-request latency.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same Envelope so API clients can parse errors
# uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific first: AccountDeactivatedError is an AuthenticationError.
_STATUS_BY_ERROR: list[tuple[type[AuthServiceError], int]] = [
    (AccountDeactivatedError, 403),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (ValidationError, 400),
    (ConflictError, 409),
    (NotFoundError, 404),
    (InternalError, 500),
]


def status_for(exc: AuthServiceError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_response(status_code: int, message: str, errors: list[FieldError] | None = None) -> JSONResponse:
    body = Envelope(success=False, message=message, errors=errors)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


@app.exception_handler(AuthServiceError)
async def auth_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Render a typed core failure. Messages are client-safe by construction."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.__cause__ or exc)
    response = _error_response(status_code, exc.message)
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one entry per offending field."""
    errors = [
        FieldError(
            field=".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")),
            message=err.get("msg", "Invalid value"),
        )
        for err in exc.errors()
    ]
    return _error_response(400, "Validation failed", errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404 route, 405 method) in the envelope."""
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log only. In DEBUG mode the exception text is
    added to the message to speed up local diagnosis; production clients get
    a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = "Internal server error"
    if settings.debug:
        message = f"{message}: {exc}"
    return _error_response(500, message)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    try:
        db_status = "ok" if request.app.state.user_store.ping() else "error"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        db_status = "error"
    status = "healthy" if db_status == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": db_status})
