"""Configuration for loopauth.

Settings come from ``~/.loopauth/config.json`` with ``LOOPAUTH_*`` environment
variables filling in anything the file does not set.

Changes:
  - 2026-10-14: Added port_retry_backoff for bounded backoff between port probes.
  - 2026-10-12: Initial settings (OAuth client, callback port range, flow timeouts).
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


def get_config_dir() -> Path:
    """Get/create the loopauth home directory (~/.loopauth)."""
    d = Path.home() / ".loopauth"
    d.mkdir(exist_ok=True)
    return d


def get_config_path() -> Path:
    """Path to the JSON settings file."""
    return get_config_dir() / "config.json"


class Settings(BaseSettings):
    """loopauth settings.

    Attributes:
        google_oauth_client_id: OAuth client ID of the desktop application.
        google_oauth_client_secret: OAuth client secret.
        oauth_scopes: Scopes requested in the authorization URL.
        callback_base_port: First loopback port tried for the callback server.
        port_max_attempts: Number of consecutive ports probed before giving up.
        port_retry_delay: Seconds to wait after a busy port before the next probe.
        port_retry_backoff: Multiplier applied to the delay after each busy port.
        flow_timeout: Seconds before an unanswered flow resolves as timed out.
        window_close_grace: Seconds between the consent window closing and cancellation.
        consent_window: "browser" (system browser) or "playwright" (in-app window).
        refresh_margin: Refresh the access token when it expires within this many seconds.
    """

    model_config = SettingsConfigDict(env_prefix="LOOPAUTH_", extra="ignore")

    google_oauth_client_id: str | None = None
    google_oauth_client_secret: str | None = None
    oauth_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    callback_base_port: int = 3100
    port_max_attempts: int = 50
    port_retry_delay: float = 0.1
    port_retry_backoff: float = 1.0

    flow_timeout: float = 300.0
    window_close_grace: float = 1.0
    consent_window: Literal["browser", "playwright"] = "browser"

    refresh_margin: int = 300

    @classmethod
    def load(cls) -> Settings:
        """Load settings from the config file, falling back to env/defaults."""
        path = get_config_path()
        data: dict = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable config file %s: %s", path, e)
                data = {}
        return cls(**data)

    def save(self) -> None:
        """Write the current settings to the config file."""
        path = get_config_path()
        path.write_text(json.dumps(self.model_dump(), indent=2), encoding="utf-8")
        logger.info("Saved settings to %s", path)


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance. Call ``get_settings.cache_clear()`` after saving."""
    return Settings.load()
