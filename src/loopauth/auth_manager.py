# Auth Manager — sign-in, token refresh, and auth status for the desktop app.
# Created: 2026-10-14
#
# Wraps the session coordinator (interactive sign-in) and the credential store
# (what is signed in right now) behind one object the rest of the app talks to.

from __future__ import annotations

import logging
from typing import Any

from loopauth.auth_store import CredentialStore
from loopauth.config import Settings, get_settings
from loopauth.errors import ExchangeError
from loopauth.flow.coordinator import SessionCoordinator
from loopauth.flow.session import FlowResult
from loopauth.integrations.oauth import OAuthManager

logger = logging.getLogger(__name__)

EXPIRED_MARGIN_SECONDS = 60


class AuthManager:
    """Central manager for the signed-in Google account.

    Loads the persisted credential on creation (discarding it if stale).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: CredentialStore | None = None,
        oauth: OAuthManager | None = None,
        coordinator: SessionCoordinator | None = None,
        provider: str = "google",
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or CredentialStore()
        self.oauth = oauth or OAuthManager()
        self.provider = provider
        self.coordinator = coordinator or SessionCoordinator(
            settings=self.settings,
            store=self.store,
            oauth=self.oauth,
            provider=provider,
        )
        if self.store.rehydrate():
            logger.info("Stored credential loaded")

    async def login(self) -> FlowResult:
        """Run the interactive sign-in flow."""
        return await self.coordinator.start_authorization_flow()

    async def refresh_token_if_needed(self, force: bool = False) -> bool:
        """Refresh the access token if it expires within ``refresh_margin``.

        Returns True if a usable token is held afterwards.
        """
        credential = self.store.credential
        if credential is None:
            logger.info("No current token available")
            return False

        if not force and not credential.expires_within(self.settings.refresh_margin):
            return True

        logger.info("Refreshing access token")
        try:
            refreshed = await self.oauth.refresh_credential(
                provider=self.provider,
                credential=credential,
                client_id=self.settings.google_oauth_client_id or "",
                client_secret=self.settings.google_oauth_client_secret or "",
            )
        except ExchangeError as e:
            logger.error("Token refresh failed: %s", e.message)
            self.store.set_error(e.message)
            return False

        return self.store.update_token(refreshed)

    async def get_valid_token(self) -> str | None:
        """Get a valid access token, refreshing first if needed."""
        if not await self.refresh_token_if_needed():
            return None
        if not self.store.validate_token():
            return None
        return self.store.credential.access_token

    def logout(self) -> None:
        self.store.logout()
        logger.info("Authentication data cleared")

    def is_authenticated(self) -> bool:
        return self.store.authenticated

    def get_auth_status(self) -> dict[str, Any]:
        """Summary of the held credential for status displays."""
        credential = self.store.credential
        return {
            "is_authenticated": self.store.authenticated,
            "has_stored_token": credential is not None,
            "token_expiry": credential.expiry_date if credential else None,
            "is_token_expired": (
                credential.expires_within(EXPIRED_MARGIN_SECONDS) if credential else False
            ),
        }


_auth_manager: AuthManager | None = None


def get_auth_manager() -> AuthManager:
    """Return the shared AuthManager instance."""
    global _auth_manager
    if _auth_manager is None:
        _auth_manager = AuthManager()
    return _auth_manager
