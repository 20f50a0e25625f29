"""Provider integrations: OAuth endpoints and credential persistence."""

from loopauth.integrations.oauth import PROVIDERS, OAuthManager
from loopauth.integrations.token_store import Credential, TokenStore, is_valid

__all__ = ["PROVIDERS", "Credential", "OAuthManager", "TokenStore", "is_valid"]
