"""loopauth - Google sign-in for desktop apps over a loopback redirect."""

from loopauth.auth_manager import AuthManager, get_auth_manager
from loopauth.auth_store import CredentialStore
from loopauth.config import Settings, get_settings
from loopauth.errors import OAuthFlowError
from loopauth.flow import FlowResult, SessionCoordinator, SessionState
from loopauth.integrations import Credential, OAuthManager, TokenStore

__version__ = "0.1.0"

__all__ = [
    "AuthManager",
    "Credential",
    "CredentialStore",
    "FlowResult",
    "OAuthFlowError",
    "OAuthManager",
    "SessionCoordinator",
    "SessionState",
    "Settings",
    "TokenStore",
    "get_auth_manager",
    "get_settings",
]
