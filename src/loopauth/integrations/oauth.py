# OAuth Manager — authorization URL, code exchange, and token refresh.
# Created: 2026-10-12
# Updated: 2026-10-15 — provider error bodies surface as ExchangeError messages

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

import httpx

from loopauth.errors import ExchangeError
from loopauth.integrations.token_store import Credential, now_ms

logger = logging.getLogger(__name__)


# OAuth 2.0 provider configuration
PROVIDERS: dict[str, dict[str, str]] = {
    "google": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "revoke_url": "https://oauth2.googleapis.com/revoke",
    },
}

DEFAULT_REFRESH_LIFETIME = 3600


def _provider_config(provider: str) -> dict[str, str]:
    config = PROVIDERS.get(provider)
    if not config:
        raise ValueError(f"Unknown OAuth provider: {provider}")
    return config


def _read_token_response(resp: httpx.Response, action: str) -> dict[str, Any]:
    """Return the JSON body of a token endpoint response or raise ExchangeError.

    Non-success bodies are parsed for the provider's ``error_description`` /
    ``error`` and fall back to a status-code message when they are not JSON.
    """
    if not resp.is_success:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("error_description") or body.get("error")
            if message:
                raise ExchangeError(str(message))
        raise ExchangeError(f"{action} failed with status {resp.status_code}")

    try:
        data = resp.json()
    except ValueError as e:
        raise ExchangeError(f"{action} returned an unreadable response") from e
    if not isinstance(data, dict):
        raise ExchangeError(f"{action} returned an unexpected response")
    return data


def _expiry_from(data: dict[str, Any], default_lifetime: int | None = None) -> int | None:
    expires_in = data.get("expires_in", default_lifetime)
    if expires_in is None:
        return None
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        return None
    return now_ms() + seconds * 1000


class OAuthManager:
    """OAuth 2.0 authorization code flow + token refresh.

    Supports:
    - Authorization URL generation
    - Code exchange for a Credential
    - Credential refresh

    Extensible to other providers by adding to PROVIDERS dict.
    """

    def __init__(self, timeout: float = 15):
        self.timeout = timeout

    def get_auth_url(
        self,
        provider: str,
        client_id: str,
        redirect_uri: str,
        scopes: list[str],
        state: str = "",
    ) -> str:
        """Generate an OAuth authorization URL.

        Args:
            provider: Provider name (e.g. "google").
            client_id: OAuth client ID.
            redirect_uri: Loopback callback URL the provider redirects to.
            scopes: List of OAuth scopes to request.
            state: Optional state parameter for CSRF protection.

        Returns:
            Authorization URL to open in the consent window.
        """
        config = _provider_config(provider)

        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state

        return f"{config['auth_url']}?{urllib.parse.urlencode(params)}"

    async def exchange_code(
        self,
        provider: str,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> Credential:
        """Exchange an authorization code for a Credential.

        Args:
            provider: Provider name (e.g. "google").
            code: Authorization code from the callback.
            client_id: OAuth client ID.
            client_secret: OAuth client secret.
            redirect_uri: Exactly the redirect URI used in the authorization URL.

        Raises:
            ExchangeError: The token endpoint rejected the code or was unreachable.
        """
        config = _provider_config(provider)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    config["token_url"],
                    data={
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": redirect_uri,
                    },
                )
        except httpx.HTTPError as e:
            raise ExchangeError(f"Token exchange request failed: {e}") from e

        data = _read_token_response(resp, "Token exchange")
        credential = Credential(
            access_token=data.get("access_token") or "",
            token_type=data.get("token_type") or "",
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope") or "",
            expiry_date=_expiry_from(data),
        )
        logger.info(
            "Token exchange succeeded via %s (refresh token: %s)",
            provider,
            "yes" if credential.refresh_token else "no",
        )
        return credential

    async def refresh_credential(
        self,
        provider: str,
        credential: Credential,
        client_id: str,
        client_secret: str,
    ) -> Credential:
        """Refresh an access token using the credential's refresh token.

        Returns a new Credential; the refresh token and scope carry over when
        the provider does not send new ones.
        """
        if not credential.refresh_token:
            raise ExchangeError("No refresh token available")

        config = _provider_config(provider)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    config["token_url"],
                    data={
                        "refresh_token": credential.refresh_token,
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            raise ExchangeError(f"Token refresh request failed: {e}") from e

        data = _read_token_response(resp, "Token refresh")
        refreshed = Credential(
            access_token=data.get("access_token") or "",
            token_type=data.get("token_type") or "Bearer",
            refresh_token=data.get("refresh_token") or credential.refresh_token,
            scope=data.get("scope") or credential.scope,
            expiry_date=_expiry_from(data, DEFAULT_REFRESH_LIFETIME),
        )
        logger.info("Refreshed OAuth token via %s", provider)
        return refreshed
