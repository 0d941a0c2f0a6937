"""Unit tests for auth/service.py and the authentication gate in auth/dependencies.py.

Covers:
- register(): success, duplicate email, lost UNIQUE race, invalid landlord,
  valid landlord linkage, no token on failed insert
- login(): email and phone lookup, generic error parity, deactivated account,
  timing equalization path
- logout() / get_profile() / landlord-scoped listing and detail
- authenticate_bearer(): every rejection branch in order, plus store faults
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from auth.dependencies import authenticate_bearer, extract_bearer_token
from auth.errors import (
    AccountDeactivatedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from auth.models import Role
from auth.service import AuthService, looks_like_phone
from auth.store import UserStore
from auth.tokens import TokenService
from conftest import STRONG_PASSWORD


def _register(service: AuthService, email: str, role: Role = Role.LANDLORD, **extra):
    return service.register(
        first_name="Test",
        last_name="Person",
        email=email,
        password=STRONG_PASSWORD,
        role=role,
        **extra,
    )


class TestRegister:
    def test_register_returns_profile_and_token(self, service: AuthService, tokens: TokenService) -> None:
        result = _register(service, "land@example.com", phone="+15551112222")
        assert result.user.email == "land@example.com"
        assert result.user.role is Role.LANDLORD
        assert result.user.phone == "+15551112222"
        payload = tokens.verify(result.access_token)
        assert payload.user_id == result.user.id
        assert result.principal.user_id == result.user.id

    def test_password_is_hashed(self, service: AuthService, store: UserStore) -> None:
        result = _register(service, "hash@example.com")
        stored = store.get_by_id(result.user.id)
        assert stored.hashed_password != STRONG_PASSWORD
        assert service.hasher.verify(STRONG_PASSWORD, stored.hashed_password)

    def test_duplicate_email_conflicts(self, service: AuthService) -> None:
        _register(service, "same@example.com")
        with pytest.raises(ConflictError):
            _register(service, "same@example.com", role=Role.TENANT)

    def test_lost_race_becomes_conflict_and_issues_no_token(self, service: AuthService) -> None:
        service.tokens = MagicMock()
        with patch.object(service.store, "create_user", side_effect=IntegrityError("INSERT", {}, Exception("UNIQUE"))):
            with pytest.raises(ConflictError):
                _register(service, "race@example.com")
        service.tokens.issue.assert_not_called()

    def test_unknown_landlord_is_rejected(self, service: AuthService, store: UserStore) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _register(service, "orphan@example.com", role=Role.TENANT, landlord_id=424242)
        assert exc_info.value.code == "invalid_landlord"
        assert store.get_by_email("orphan@example.com") is None

    def test_non_landlord_cannot_be_landlord(self, service: AuthService) -> None:
        tenant = _register(service, "t-as-owner@example.com", role=Role.TENANT)
        with pytest.raises(ValidationError):
            _register(service, "sub@example.com", role=Role.TENANT, landlord_id=tenant.user.id)

    def test_tenant_linked_to_landlord(self, service: AuthService, tokens: TokenService) -> None:
        landlord = _register(service, "boss@example.com")
        tenant = _register(service, "renter@example.com", role=Role.TENANT, landlord_id=landlord.user.id)
        assert tenant.user.landlord_id == landlord.user.id
        assert tokens.verify(tenant.access_token).landlord_id == landlord.user.id


class TestLogin:
    def test_login_by_email(self, service: AuthService) -> None:
        registered = _register(service, "login@example.com")
        result = service.login("login@example.com", STRONG_PASSWORD)
        assert result.user.id == registered.user.id
        assert result.access_token != registered.access_token

    def test_login_by_phone(self, service: AuthService) -> None:
        registered = _register(service, "phone@example.com", phone="+15553334444")
        assert service.login("+15553334444", STRONG_PASSWORD).user.id == registered.user.id

    def test_wrong_password_and_unknown_user_are_indistinguishable(self, service: AuthService) -> None:
        _register(service, "real@example.com")
        with pytest.raises(AuthenticationError) as wrong_pw:
            service.login("real@example.com", "Wrong1!pw")
        with pytest.raises(AuthenticationError) as unknown:
            service.login("ghost@example.com", STRONG_PASSWORD)
        assert type(wrong_pw.value) is type(unknown.value) is AuthenticationError
        assert (wrong_pw.value.code, wrong_pw.value.message) == (unknown.value.code, unknown.value.message)

    def test_unknown_user_still_runs_bcrypt(self, service: AuthService) -> None:
        with patch.object(service.hasher, "verify", wraps=service.hasher.verify) as verify:
            with pytest.raises(AuthenticationError):
                service.login("nobody@example.com", STRONG_PASSWORD)
        verify.assert_called_once()

    def test_deactivated_account_with_right_password(self, service: AuthService, store: UserStore) -> None:
        registered = _register(service, "inactive@example.com")
        store.update_user(registered.user.id, is_active=False)
        with pytest.raises(AccountDeactivatedError):
            service.login("inactive@example.com", STRONG_PASSWORD)

    def test_deactivated_account_with_wrong_password(self, service: AuthService, store: UserStore) -> None:
        registered = _register(service, "inactive2@example.com")
        store.update_user(registered.user.id, is_active=False)
        with pytest.raises(AccountDeactivatedError) as exc_info:
            service.login("inactive2@example.com", "Wrong1!pw")
        assert exc_info.value.code == "account_deactivated"

    @pytest.mark.parametrize(
        ("identifier", "expected"),
        [("+15551234567", True), ("15551234567", True), ("a@b.co", False), ("+0123", False), ("12", True)],
    )
    def test_phone_detection(self, identifier: str, expected: bool) -> None:
        assert looks_like_phone(identifier) is expected


class TestProfileAndLogout:
    def test_get_profile(self, service: AuthService) -> None:
        registered = _register(service, "me@example.com")
        profile = service.get_profile(registered.user.id)
        assert profile.email == "me@example.com"
        assert not hasattr(profile, "hashed_password")

    def test_get_profile_missing_user(self, service: AuthService) -> None:
        with pytest.raises(NotFoundError):
            service.get_profile(987654)

    def test_logout_revokes_and_is_idempotent(self, service: AuthService, tokens: TokenService) -> None:
        registered = _register(service, "bye@example.com")
        service.logout(registered.access_token, registered.user.id)
        service.logout(registered.access_token, registered.user.id)
        assert tokens.is_revoked(registered.access_token) is True


class TestLandlordScope:
    def test_list_only_own_users(self, service: AuthService) -> None:
        l1 = _register(service, "l1@example.com")
        l2 = _register(service, "l2@example.com")
        mine = _register(service, "mine@example.com", role=Role.TENANT, landlord_id=l1.user.id)
        _register(service, "agent@example.com", role=Role.AGENT, landlord_id=l1.user.id)
        _register(service, "theirs@example.com", role=Role.TENANT, landlord_id=l2.user.id)

        tenants = service.list_managed_users(l1.principal, Role.TENANT)
        assert [u.id for u in tenants] == [mine.user.id]
        assert len(service.list_managed_users(l1.principal)) == 2

    def test_get_managed_user_enforces_ownership(self, service: AuthService) -> None:
        l1 = _register(service, "o1@example.com")
        l2 = _register(service, "o2@example.com")
        tenant = _register(service, "ot@example.com", role=Role.TENANT, landlord_id=l1.user.id)

        assert service.get_managed_user(l1.principal, tenant.user.id).id == tenant.user.id
        with pytest.raises(AuthorizationError):
            service.get_managed_user(l2.principal, tenant.user.id)
        with pytest.raises(AuthorizationError):
            service.get_managed_user(tenant.principal, tenant.user.id)
        with pytest.raises(NotFoundError):
            service.get_managed_user(l1.principal, 555555)


class TestAuthenticationGate:
    def test_extract_bearer_token(self) -> None:
        assert extract_bearer_token("Bearer abc.def") == "abc.def"
        assert extract_bearer_token(None) is None
        assert extract_bearer_token("") is None
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token("Bearer ") is None

    def test_valid_token_resolves_principal(self, service: AuthService, store: UserStore) -> None:
        registered = _register(service, "gate@example.com")
        principal, raw = authenticate_bearer(f"Bearer {registered.access_token}", service.tokens, store)
        assert principal.user_id == registered.user.id
        assert principal.role is Role.LANDLORD
        assert raw == registered.access_token

    def test_missing_header(self, tokens: TokenService, store: UserStore) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate_bearer(None, tokens, store)
        assert exc_info.value.code == "no_credentials"

    def test_revoked_token(self, service: AuthService, store: UserStore) -> None:
        registered = _register(service, "revoked@example.com")
        service.logout(registered.access_token, registered.user.id)
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate_bearer(f"Bearer {registered.access_token}", service.tokens, store)
        assert exc_info.value.code == "token_revoked"

    def test_invalid_token(self, tokens: TokenService, store: UserStore) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate_bearer("Bearer not.a.jwt", tokens, store)
        assert exc_info.value.code == "invalid_token"

    def test_deactivated_user(self, service: AuthService, store: UserStore) -> None:
        registered = _register(service, "later-off@example.com")
        store.update_user(registered.user.id, is_active=False)
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate_bearer(f"Bearer {registered.access_token}", service.tokens, store)
        assert exc_info.value.code == "account_unavailable"

    def test_vanished_user(self, tokens: TokenService, store: UserStore) -> None:
        token = tokens.issue(777777, Role.LANDLORD)
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate_bearer(f"Bearer {token}", tokens, store)
        assert exc_info.value.code == "account_unavailable"

    def test_store_fault_is_internal_error(self, tokens: TokenService) -> None:
        broken = MagicMock()
        broken.get_blacklisted_token.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        broken_tokens = TokenService(broken, secret_key="x" * 40)
        with pytest.raises(InternalError):
            authenticate_bearer(f"Bearer {tokens.issue(1, Role.LANDLORD)}", broken_tokens, broken)
