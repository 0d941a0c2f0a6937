"""
auth/errors.py -- Typed failure outcomes raised by the auth core.

The core never builds HTTP responses. Each exception carries a stable
machine-readable code and a client-safe message; api/main.py maps the class
to a status code and renders the response envelope.

Message policy:
  Credential mismatches (unknown identifier, wrong password) share ONE
  message so responses cannot be used to enumerate accounts. Deactivation
  gets its own message because the account is already known to exist.
"""

from __future__ import annotations


class AuthServiceError(Exception):
    """Base class for every failure the auth core reports to its callers."""

    code = "error"
    message = "Request failed."

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ValidationError(AuthServiceError):
    """Input is well-formed but semantically unacceptable (e.g. unknown landlord)."""

    code = "validation_error"
    message = "Validation failed."


class ConflictError(AuthServiceError):
    code = "email_taken"
    message = "Email already registered."


class AuthenticationError(AuthServiceError):
    """Missing, invalid, expired, revoked or mismatched credentials."""

    code = "invalid_credentials"
    message = "Invalid credentials."


class AccountDeactivatedError(AuthenticationError):
    code = "account_deactivated"
    message = "Account is deactivated."


class AuthorizationError(AuthServiceError):
    code = "forbidden"
    message = "Forbidden: insufficient permissions."


class NotFoundError(AuthServiceError):
    code = "not_found"
    message = "Resource not found."


class InternalError(AuthServiceError):
    """Unexpected store or crypto fault. Detail goes to the log, never the client."""

    code = "internal_error"
    message = "Internal server error."
