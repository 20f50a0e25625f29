# OAuth flow errors — one class per terminal failure of an authorization session.
# Created: 2026-10-12

from __future__ import annotations


class OAuthFlowError(Exception):
    """Base class for authorization flow failures.

    Each subclass carries a stable ``code`` so callers (CLI, UI) can branch on
    the outcome without matching message text.
    """

    code = "oauth_flow_error"
    default_message = "OAuth flow failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class FlowAlreadyInProgress(OAuthFlowError):
    code = "flow_already_in_progress"
    default_message = (
        "OAuth flow already in progress. Please wait for the current flow to complete."
    )


class NoPortAvailable(OAuthFlowError):
    code = "no_port_available"
    default_message = "Failed to find available port for OAuth callback"


class CallbackError(OAuthFlowError):
    """The provider redirected back with an error, or without a code."""

    code = "callback_error"
    default_message = "OAuth authorization failed"


class ExchangeError(OAuthFlowError):
    """The token endpoint rejected the authorization code or refresh token."""

    code = "exchange_error"
    default_message = "Token exchange failed"


class UserCancelled(OAuthFlowError):
    code = "user_cancelled"
    default_message = "OAuth window was closed by user"


class FlowTimedOut(OAuthFlowError):
    code = "timed_out"
    default_message = "OAuth flow timed out"


class ConsentWindowError(OAuthFlowError):
    code = "window_error"
    default_message = "Failed to open the sign-in window"


class OAuthNotConfigured(OAuthFlowError):
    code = "not_configured"
    default_message = (
        "Google OAuth credentials not configured. "
        "Set google_oauth_client_id and google_oauth_client_secret first."
    )
