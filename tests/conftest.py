"""Shared test fixtures for cardbridge."""

import certifi
import pytest
import structlog

from cardbridge.clients.carddav import CardDAVClient
from cardbridge.core.config import CardDAVSettings, TrustSettings

BASE_URL = "https://contacts.icloud.com"


@pytest.fixture(autouse=True)
def _set_config_path(monkeypatch, tmp_path):
    """Point CardBridgeSettings to an empty test config.yaml and clean env.

    This autouse fixture ensures every test has a valid YAML config file
    and removes any real CARDBRIDGE_* env vars from the host environment
    to prevent leakage.

    Tests that need custom config values should write YAML to their own
    tmp_path file and set CARDBRIDGE_CONFIG accordingly.
    """
    for var in [
        "CARDBRIDGE_USERNAME",
        "CARDBRIDGE_PASSWORD",
        "CARDBRIDGE_CARDDAV",
        "CARDBRIDGE_TRUST",
        "CARDBRIDGE_LOGGING",
    ]:
        monkeypatch.delenv(var, raising=False)
    config = tmp_path / "config.yaml"
    config.write_text("")  # empty = all defaults
    monkeypatch.setenv("CARDBRIDGE_CONFIG", str(config))


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any configure_logging() call so later tests never log into a closed stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def trust() -> TrustSettings:
    """Pin the CA bundle so constructing a client never searches or downloads."""
    return TrustSettings(ca_bundle=certifi.where())


@pytest.fixture
def client(trust: TrustSettings) -> CardDAVClient:
    return CardDAVClient(
        username="user@icloud.com",
        password="app-password-123",
        settings=CardDAVSettings(base_url=BASE_URL),
        trust=trust,
    )
