"""Loopback authorization flow: port negotiation, callback server, consent window, coordinator."""

from loopauth.flow.callback_server import CallbackListener
from loopauth.flow.coordinator import SessionCoordinator
from loopauth.flow.ports import lease_port
from loopauth.flow.session import AuthorizationSession, FlowResult, ResultCell, SessionState
from loopauth.flow.window import (
    ConsentWindow,
    PlaywrightConsentWindow,
    SystemBrowserWindow,
    create_consent_window,
)

__all__ = [
    "AuthorizationSession",
    "CallbackListener",
    "ConsentWindow",
    "FlowResult",
    "PlaywrightConsentWindow",
    "ResultCell",
    "SessionCoordinator",
    "SessionState",
    "SystemBrowserWindow",
    "create_consent_window",
    "lease_port",
]
