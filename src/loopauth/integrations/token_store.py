# Token Store — OAuth credential record, validity check, and file persistence
# at ~/.loopauth/oauth/{service}.json.
# Created: 2026-10-12
# Updated: 2026-10-15 — expiry stored as epoch milliseconds (expiry_date)
# Updated: 2026-10-19 — malformed credential files load as None instead of raising

from __future__ import annotations

import json
import logging
import os
import stat
import time
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from loopauth.config import get_config_dir

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Credential:
    """OAuth 2.0 credential issued by the token endpoint.

    Frozen: a refresh or update always produces a new record.
    """

    access_token: str
    token_type: str
    refresh_token: str | None = None
    scope: str = ""
    expiry_date: int | None = None  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Credential:
        """Build a credential from a persisted or provider payload, ignoring unknown keys.

        Raises:
            ValueError: A field has the wrong type (e.g. a non-numeric ``expiry_date``).
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values.setdefault("access_token", "")
        values.setdefault("token_type", "")
        values.setdefault("scope", "")

        for name in ("access_token", "token_type", "scope"):
            if not isinstance(values[name], str):
                raise ValueError(f"{name} must be a string")
        refresh_token = values.get("refresh_token")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("refresh_token must be a string")

        expiry = values.get("expiry_date")
        if expiry is not None:
            if isinstance(expiry, bool):
                raise ValueError(f"expiry_date must be epoch milliseconds, got {expiry!r}")
            try:
                values["expiry_date"] = int(expiry)
            except (TypeError, ValueError, OverflowError) as e:
                raise ValueError(f"expiry_date must be epoch milliseconds, got {expiry!r}") from e
        return cls(**values)

    def expires_within(self, seconds: float, now: int | None = None) -> bool:
        """True if the credential expires within ``seconds`` (False when it has no expiry)."""
        if self.expiry_date is None:
            return False
        current = now_ms() if now is None else now
        return current >= self.expiry_date - int(seconds * 1000)


def is_valid(credential: Credential | None, now: int | None = None) -> bool:
    """Return True if the credential can be used right now.

    Requires a non-empty access token and token type, and an expiry that is
    either absent or in the future.
    """
    if credential is None:
        return False
    if not credential.access_token or not credential.token_type:
        return False
    if credential.expiry_date is None:
        return True
    current = now_ms() if now is None else now
    return credential.expiry_date > current


def _get_oauth_dir() -> Path:
    """Get/create the OAuth token directory."""
    d = get_config_dir() / "oauth"
    d.mkdir(exist_ok=True)
    return d


class TokenStore:
    """File-based credential persistence at ~/.loopauth/oauth/{service}.json.

    Files are chmod 0600 (owner-only read/write). The store writes whatever it
    is given; callers decide whether a credential is worth persisting.
    """

    def __init__(self, service: str = "google"):
        self.service = service

    @property
    def path(self) -> Path:
        return _get_oauth_dir() / f"{self.service}.json"

    def save(self, credential: Credential) -> None:
        """Persist the credential for this service."""
        path = self.path
        path.write_text(json.dumps(credential.to_dict(), indent=2), encoding="utf-8")
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
        logger.info("Saved OAuth credential for %s", self.service)

    def load(self) -> Credential | None:
        """Load the persisted credential. Returns None if missing or unreadable."""
        path = self.path
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Failed to load credential for %s: %s", self.service, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed credential file for %s", self.service)
            return None
        try:
            return Credential.from_dict(data)
        except ValueError as e:
            logger.warning("Ignoring malformed credential file for %s: %s", self.service, e)
            return None

    def delete(self) -> bool:
        """Delete the persisted credential. Returns True if a file was removed."""
        path = self.path
        if path.exists():
            path.unlink()
            logger.info("Deleted OAuth credential for %s", self.service)
            return True
        return False
