# Tests for auth_manager.py
# Created: 2026-10-16

from unittest.mock import AsyncMock, MagicMock

import pytest

from loopauth.auth_manager import AuthManager
from loopauth.auth_store import CredentialStore
from loopauth.errors import ExchangeError
from loopauth.flow.session import FlowResult
from loopauth.integrations.oauth import OAuthManager
from loopauth.integrations.token_store import Credential, TokenStore, now_ms


def _credential(expires_in_ms=3_600_000, access_token="ya29.token"):
    return Credential(
        access_token=access_token,
        token_type="Bearer",
        refresh_token="1//refresh",
        expiry_date=now_ms() + expires_in_ms,
    )


@pytest.fixture
def oauth():
    manager = OAuthManager()
    manager.refresh_credential = AsyncMock(return_value=_credential(access_token="refreshed"))
    return manager


@pytest.fixture
def make_manager(settings, oauth):
    def _make(stored=None):
        persistence = TokenStore()
        if stored is not None:
            persistence.save(stored)
        return AuthManager(settings=settings, store=CredentialStore(persistence), oauth=oauth)

    return _make


class TestInit:
    def test_rehydrates_stored_credential(self, make_manager):
        manager = make_manager(_credential())
        assert manager.is_authenticated() is True

    def test_discards_expired_credential(self, make_manager):
        manager = make_manager(_credential(expires_in_ms=-1000))
        assert manager.is_authenticated() is False
        assert TokenStore().load() is None


class TestLogin:
    async def test_login_delegates_to_coordinator(self, make_manager):
        manager = make_manager()
        expected = FlowResult.completed(_credential())
        manager.coordinator = MagicMock()
        manager.coordinator.start_authorization_flow = AsyncMock(return_value=expected)

        assert await manager.login() is expected


class TestRefresh:
    async def test_no_credential(self, make_manager, oauth):
        manager = make_manager()
        assert await manager.refresh_token_if_needed() is False
        oauth.refresh_credential.assert_not_awaited()

    async def test_fresh_token_not_refreshed(self, make_manager, oauth):
        manager = make_manager(_credential())
        assert await manager.refresh_token_if_needed() is True
        oauth.refresh_credential.assert_not_awaited()

    async def test_near_expiry_refreshed(self, make_manager, oauth):
        manager = make_manager(_credential(expires_in_ms=60_000))
        assert await manager.refresh_token_if_needed() is True
        oauth.refresh_credential.assert_awaited_once()
        assert manager.store.credential.access_token == "refreshed"
        assert TokenStore().load().access_token == "refreshed"

    async def test_force_refresh(self, make_manager, oauth):
        manager = make_manager(_credential())
        assert await manager.refresh_token_if_needed(force=True) is True
        oauth.refresh_credential.assert_awaited_once()

    async def test_refresh_failure(self, make_manager, oauth):
        oauth.refresh_credential.side_effect = ExchangeError("invalid_grant")
        manager = make_manager(_credential(expires_in_ms=60_000))

        assert await manager.refresh_token_if_needed() is False
        assert manager.store.error == "invalid_grant"
        # The old credential is kept; it is still valid for another minute.
        assert manager.store.credential.access_token == "ya29.token"


class TestGetValidToken:
    async def test_returns_access_token(self, make_manager):
        manager = make_manager(_credential())
        assert await manager.get_valid_token() == "ya29.token"

    async def test_refreshes_first(self, make_manager):
        manager = make_manager(_credential(expires_in_ms=60_000))
        assert await manager.get_valid_token() == "refreshed"

    async def test_signed_out(self, make_manager):
        assert await make_manager().get_valid_token() is None


class TestStatusAndLogout:
    def test_status_signed_in(self, make_manager):
        stored = _credential()
        status = make_manager(stored).get_auth_status()
        assert status == {
            "is_authenticated": True,
            "has_stored_token": True,
            "token_expiry": stored.expiry_date,
            "is_token_expired": False,
        }

    def test_status_expiring_within_a_minute(self, make_manager):
        status = make_manager(_credential(expires_in_ms=30_000)).get_auth_status()
        assert status["is_token_expired"] is True

    def test_status_signed_out(self, make_manager):
        status = make_manager().get_auth_status()
        assert status["is_authenticated"] is False
        assert status["has_stored_token"] is False
        assert status["token_expiry"] is None
        assert status["is_token_expired"] is False

    def test_logout(self, make_manager):
        manager = make_manager(_credential())
        manager.logout()
        assert manager.is_authenticated() is False
        assert TokenStore().load() is None
