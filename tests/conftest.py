# Shared fixtures: keep every test away from the real ~/.loopauth directory.
# Created: 2026-10-16

import pytest

from loopauth.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    oauth_dir = home / "oauth"
    oauth_dir.mkdir()
    monkeypatch.setattr("loopauth.config.get_config_dir", lambda: home)
    monkeypatch.setattr("loopauth.integrations.token_store._get_oauth_dir", lambda: oauth_dir)
    for var in ("LOOPAUTH_GOOGLE_OAUTH_CLIENT_ID", "LOOPAUTH_GOOGLE_OAUTH_CLIENT_SECRET"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(
        google_oauth_client_id="test-client-id",
        google_oauth_client_secret="test-secret",
        callback_base_port=3100,
        port_retry_delay=0,
        flow_timeout=5.0,
        window_close_grace=0.05,
    )
