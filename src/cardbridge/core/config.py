"""cardbridge configuration loaded from config.yaml + credential env vars."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource

StrategyName = Literal["principal", "well-known", "principal-listing", "legacy-path"]

DEFAULT_BASE_URL = "https://contacts.icloud.com"
DEFAULT_CA_DOWNLOAD_URL = "https://curl.se/ca/cacert.pem"
DEFAULT_CA_CACHE_PATH = "~/.cache/cardbridge/cacert.pem"


def _default_ca_candidates() -> list[str]:
    """Return the OS-conventional CA bundle locations, probed in order."""
    return [
        "/etc/ssl/certs/ca-certificates.crt",  # Debian/Ubuntu
        "/etc/pki/tls/certs/ca-bundle.crt",  # CentOS/RHEL
        "/etc/ssl/ca-bundle.pem",  # OpenSUSE
        "/usr/local/etc/openssl/cert.pem",  # macOS Homebrew
    ]


# ---------------------------------------------------------------------------
# Nested sub-models for YAML config
# ---------------------------------------------------------------------------


class CardDAVSettings(BaseModel):
    """Service endpoint, HTTP behaviour and discovery configuration."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    max_redirects: int = 10
    user_agent: str = "cardbridge"
    resource_template: str = "card/{uid}.vcf"
    discovery: list[StrategyName] = Field(
        default_factory=lambda: ["principal", "well-known"]
    )
    legacy_path: str = "/card/dav/"

    @field_validator("base_url")
    @classmethod
    def base_url_must_be_https(cls, v: str) -> str:
        """Require HTTPS and drop any trailing slash."""
        stripped = v.strip().rstrip("/")
        if not stripped.startswith("https://"):
            raise ValueError("base_url must be an https:// URL")
        return stripped

    @field_validator("timeout")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        """Reject zero or negative timeouts; every request needs a ceiling."""
        if v <= 0:
            raise ValueError("timeout must be greater than zero")
        return v

    @field_validator("max_redirects")
    @classmethod
    def max_redirects_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_redirects must not be negative")
        return v

    @field_validator("resource_template")
    @classmethod
    def template_needs_uid(cls, v: str) -> str:
        """The template is formatted with the contact UID and is collection-relative."""
        if "{uid}" not in v:
            raise ValueError("resource_template must contain '{uid}'")
        return v.lstrip("/")

    @field_validator("discovery")
    @classmethod
    def discovery_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one discovery strategy is required.")
        return v


class TrustSettings(BaseModel):
    """CA bundle resolution.

    ``ca_bundle`` pins an explicit bundle and skips probing. Otherwise the
    candidates are probed in order, then ``cache_path``, and finally the
    bundle is downloaded from ``download_url`` into ``cache_path``.
    """

    ca_bundle: str | None = None
    candidates: list[str] = Field(default_factory=_default_ca_candidates)
    download_url: str = DEFAULT_CA_DOWNLOAD_URL
    cache_path: str = DEFAULT_CA_CACHE_PATH
    download_timeout: float = 30.0

    @property
    def resolved_cache_path(self) -> Path:
        return Path(self.cache_path).expanduser()


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = "info"


# ---------------------------------------------------------------------------
# Main settings class
# ---------------------------------------------------------------------------


def _resolve_config_path() -> str | None:
    """Resolve config.yaml path: CARDBRIDGE_CONFIG env var or cwd default.

    A missing default config.yaml means "all defaults". A path named
    explicitly through CARDBRIDGE_CONFIG must exist; otherwise this raises
    SystemExit with a helpful message.
    """
    explicit = os.environ.get("CARDBRIDGE_CONFIG")
    path = Path(explicit or "config.yaml")
    if path.exists():
        return str(path)
    if explicit:
        print(
            f"Error: Config file not found: {path.resolve()}\n"
            f"Copy config.yaml.example to config.yaml and edit it:\n"
            f"  cp config.yaml.example config.yaml",
            file=sys.stderr,
        )
        raise SystemExit(1)
    return None


class CardBridgeSettings(BaseSettings):
    """Application settings loaded from config.yaml + credential env vars.

    Non-secret configuration lives in config.yaml (carddav, trust, logging).
    Credentials come from CARDBRIDGE_-prefixed environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="CARDBRIDGE_",
        case_sensitive=False,
    )

    # Credentials -- from env vars (flat, not nested)
    username: str = ""
    password: str = ""

    # Nested sections -- from config.yaml
    carddav: CardDAVSettings = CardDAVSettings()
    trust: TrustSettings = TrustSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Configure source priority: init > env vars > YAML config file."""
        config_path = _resolve_config_path()
        if config_path is None:
            return (init_settings, env_settings)
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_path),
        )

    @property
    def has_credentials(self) -> bool:
        """Return True when both username and password are set."""
        return bool(self.username and self.password)
