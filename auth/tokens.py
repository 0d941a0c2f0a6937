"""
auth/tokens.py -- JWT issuance, verification and revocation.

Security design decisions:
  JWT: python-jose, HMAC algorithm from Settings.jwt_algorithm (HS256 by
       default). Tokens carry user_id, role, optional landlord_id, iat, exp
       and a random jti. The jti keeps two tokens issued to the same user in
       the same second distinct, which matters because revocation is keyed
       by the literal token string.

  verify() returns None on ANY failure -- bad signature, expired, malformed,
       non-canonical base64url, missing claims. Callers get one shape for
       every failure, so responses cannot be used as a signature-vs-expiry
       oracle.

  Revocation: logout records the token in blacklisted_tokens with expires_at
       equal to the token's own exp. Entries never outlive the token, so the
       table stays bounded by (active logouts x token lifetime). Expired
       entries are pruned lazily on read; correctness never depends on the
       prune actually happening because an expired token fails verify().

  Secret and lifetime are constructor arguments taken from Settings at
       startup. This module never reads configuration itself.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import BlacklistEntry, Role, TokenPayload

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("propdesk.auth")


class TokenService:
    """Issues, verifies and revokes signed access tokens.

    Usage:
        tokens = TokenService(store, secret_key=settings.secret_key, lifetime_seconds=3600)
        token = tokens.issue(user_id=1, role=Role.LANDLORD)
        payload = tokens.verify(token)   # TokenPayload or None
        tokens.revoke(token, user_id=1)
        tokens.is_revoked(token)         # True
    """

    def __init__(
        self,
        store: UserStore,
        secret_key: str,
        lifetime_seconds: int = 3600,
        algorithm: str = "HS256",
    ) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a signing secret.")
        self._store = store
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.lifetime_seconds = lifetime_seconds

    # ------------------------------------------------------------------
    # Issue / verify
    # ------------------------------------------------------------------

    def issue(self, user_id: int, role: Role, landlord_id: int | None = None) -> str:
        """Encode a signed JWT for the given identity.

        iat is truncated to whole seconds so exp - iat equals the configured
        lifetime exactly after the round trip through integer claims.
        """
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        claims = {
            "sub": str(user_id),
            "user_id": user_id,
            "role": Role(role).value,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.lifetime_seconds),
            "jti": secrets.token_hex(16),
        }
        if landlord_id is not None:
            claims["landlord_id"] = landlord_id
        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenPayload | None:
        """Decode and verify a JWT. Returns the payload or None on any failure.

        Only the canonical encoding of a token is accepted. The last character
        of a base64url segment carries padding bits the decoder ignores, so
        without this check one signed token would have several spellings,
        and a revoked token could be replayed under an unrevoked spelling.
        """
        if not _is_canonical(token):
            return None
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError:
            return None
        return _claims_to_payload(claims)

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke(self, token: str, user_id: int) -> None:
        """Blacklist a token until its own expiry.

        A token that no longer verifies has nothing left to revoke, so this
        is a no-op for it. Store failures are logged and swallowed: logout
        degrades to "token stays valid until natural expiry" rather than
        failing the request.
        """
        payload = self.verify(token)
        if payload is None:
            return
        entry = BlacklistEntry(token=token, user_id=user_id, expires_at=payload.expires_at)
        try:
            self._store.add_blacklisted_token(entry)
        except IntegrityError:
            # Already blacklisted -- logout is idempotent.
            logger.debug("Token for user %s already revoked", user_id)
        except SQLAlchemyError:
            logger.warning(
                "Could not record token revocation for user %s; token remains valid until %s",
                user_id,
                payload.expires_at.isoformat(),
                exc_info=True,
            )

    def is_revoked(self, token: str) -> bool:
        """Return True if the token has an unexpired blacklist entry.

        Lookup failures propagate: the authentication gate turns them into an
        internal error rather than silently treating the token as honourable.
        """
        entry = self._store.get_blacklisted_token(token)
        if entry is None:
            return False
        if entry.expires_at <= datetime.now(timezone.utc):
            self._prune(entry)
            return False
        return True

    def _prune(self, entry: BlacklistEntry) -> None:
        """Best-effort delete of a stale blacklist entry."""
        try:
            self._store.delete_blacklisted_token(entry.id)
        except SQLAlchemyError:
            logger.debug("Failed to prune expired blacklist entry %s", entry.id, exc_info=True)


# ---------------------------------------------------------------------------
# Encoding and claim mapping
# ---------------------------------------------------------------------------


def _is_canonical(token: str) -> bool:
    """True if every segment re-encodes to exactly the string presented."""
    if not isinstance(token, str):
        return False
    segments = token.split(".")
    if len(segments) != 3:
        return False
    try:
        for segment in segments:
            raw = segment.encode("ascii")
            if base64url_encode(base64url_decode(raw)) != raw:
                return False
    except ValueError:
        # binascii.Error and UnicodeEncodeError are both ValueErrors.
        return False
    return True


def _claims_to_payload(claims: dict) -> TokenPayload | None:
    """Map decoded claims to a TokenPayload, or None if any required claim is unusable."""
    try:
        user_id = claims["user_id"]
        landlord_id = claims.get("landlord_id")
        if not isinstance(user_id, int) or (landlord_id is not None and not isinstance(landlord_id, int)):
            return None
        return TokenPayload(
            user_id=user_id,
            role=Role(claims["role"]),
            landlord_id=landlord_id,
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError, TypeError, OverflowError, OSError):
        return None
