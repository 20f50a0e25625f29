"""Credential store — the single holder of the signed-in user's credential.

Only credentials that pass ``is_valid`` are accepted or persisted. Rejections
never raise: they set ``error`` and leave the previous state untouched, and the
caller decides how to surface them.

Changes:
  - 2026-10-19: rehydrate() also deletes a persisted file that cannot be read as a credential.
  - 2026-10-15: rehydrate() deletes a stale persisted credential instead of keeping it on disk.
  - 2026-10-13: Initial store (login / update_token / logout / rehydrate).
"""

from __future__ import annotations

import logging
from typing import Any

from loopauth.integrations.token_store import Credential, TokenStore, is_valid, now_ms

logger = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = "Invalid or expired token provided"
INVALID_UPDATE_MESSAGE = "Invalid token provided for update"


class CredentialStore:
    """In-memory credential state backed by a TokenStore file."""

    def __init__(self, persistence: TokenStore | None = None) -> None:
        self._persistence = persistence or TokenStore()
        self.credential: Credential | None = None
        self.authenticated = False
        self.last_login: int | None = None
        self.error: str | None = None
        self.loading = False

    def login(self, credential: Credential) -> bool:
        """Accept a freshly issued credential. Returns False (and sets error) if invalid."""
        if not is_valid(credential):
            logger.warning("Rejected login: credential is missing fields or expired")
            self.error = INVALID_LOGIN_MESSAGE
            return False

        self.credential = credential
        self.authenticated = True
        self.last_login = now_ms()
        self.error = None
        self._persist()
        return True

    def update_token(self, credential: Credential) -> bool:
        """Replace the held credential (e.g. after a refresh). Same acceptance rule as login."""
        if not is_valid(credential):
            logger.warning("Rejected token update: credential is missing fields or expired")
            self.error = INVALID_UPDATE_MESSAGE
            return False

        self.credential = credential
        self.authenticated = True
        self.error = None
        self._persist()
        return True

    def logout(self) -> None:
        """Clear all credential state and the persisted file."""
        self.credential = None
        self.authenticated = False
        self.last_login = None
        self.error = None
        self._persistence.delete()

    def rehydrate(self, now: int | None = None) -> bool:
        """Load the persisted credential, discarding it if no longer valid.

        Returns True if the store is authenticated afterwards.
        """
        stored = self._persistence.load()
        if stored is None:
            self._clear_credential()
            if self._persistence.path.exists():
                logger.info("Discarding unreadable stored credential")
                try:
                    self._persistence.delete()
                except OSError as e:
                    logger.warning("Could not delete unreadable credential file: %s", e)
            return False

        if not is_valid(stored, now=now):
            logger.info("Discarding stored credential: no longer valid")
            self._clear_credential()
            self._persistence.delete()
            return False

        self.credential = stored
        self.authenticated = True
        return True

    def validate_token(self) -> bool:
        return is_valid(self.credential)

    def set_error(self, error: str | None) -> None:
        self.error = error

    def clear_error(self) -> None:
        self.error = None

    def set_loading(self, loading: bool) -> None:
        self.loading = loading

    def status(self) -> dict[str, Any]:
        """Snapshot of the store state (the credential itself is not included)."""
        return {
            "authenticated": self.authenticated,
            "has_credential": self.credential is not None,
            "last_login": self.last_login,
            "error": self.error,
            "loading": self.loading,
        }

    def _clear_credential(self) -> None:
        self.credential = None
        self.authenticated = False
        self.last_login = None

    def _persist(self) -> None:
        try:
            self._persistence.save(self.credential)
        except OSError as e:
            logger.error("Failed to persist credential: %s", e)
