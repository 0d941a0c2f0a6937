"""
auth/passwords.py -- bcrypt password hashing.

Security design decisions:
  bcrypt directly (no passlib wrapper). passlib's wrap-bug detection builds a
  password longer than 72 bytes, which bcrypt 4.x+ rejects. Direct usage has
  no compatibility shim and is actively maintained.

  Cost factor comes from Settings.bcrypt_rounds and is fixed per hasher
  instance. Each bcrypt.gensalt() call draws a fresh random salt, so hashing
  the same password twice yields two different strings.

  verify() never raises: a malformed stored hash is simply a mismatch.

  dummy_hash enables timing equalization in AuthService.login() so response
  time does not reveal whether an identifier exists [C1].

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.errors import InternalError

logger = logging.getLogger("propdesk.auth")

# bcrypt only consumes the first 72 bytes of input; newer releases reject
# anything longer outright.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way hashing with a configurable bcrypt work factor.

    Usage:
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        stored = hasher.hash("s3cret!A")
        hasher.verify("s3cret!A", stored)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        Library failures are logged and re-raised as a generic InternalError;
        the caller never learns which step failed.
        """
        try:
            return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as exc:
            logger.error("Password hashing failed: %s", type(exc).__name__)
            raise InternalError() from exc

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            return False

    @property
    def dummy_hash(self) -> str:
        """A throwaway hash at the same cost factor, computed on first use [C1]."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("propdesk_timing_dummy")
        return self._dummy_hash
