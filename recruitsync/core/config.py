"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the scheduled sweep and
the CLI tools share a consistent configuration surface.
"""

from functools import lru_cache
from ipaddress import IPv4Network, IPv6Network, ip_network
from pathlib import Path
from typing import Literal, Optional, Union

import os

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class JobAdderSettings(BaseSettings):
    """Configuration for the primary ATS OAuth integration."""

    client_id: Optional[str] = Field(
        None,
        validation_alias="JOBADDER_CLIENT_ID",
        description="Server-issued client identifier. Falls back when absent.",
    )
    client_secret: str = Field(..., validation_alias="JOBADDER_CLIENT_SECRET")
    fallback_client_id: str = Field(
        "jobadder-public-client",
        validation_alias="JOBADDER_FALLBACK_CLIENT_ID",
        description="Identifier used when the server-side lookup is unavailable.",
    )
    redirect_uri: AnyHttpUrl = Field(
        "https://staffing.example.com/auth/callback",
        validation_alias="JOBADDER_REDIRECT_URI",
        description="The single redirect URI registered with the vendor.",
    )
    scopes: str = Field("read write offline_access", validation_alias="JOBADDER_SCOPES")
    authorize_url: str = Field(
        "https://id.jobadder.com/connect/authorize",
        validation_alias="JOBADDER_AUTHORIZE_URL",
    )
    token_url: str = Field(
        "https://id.jobadder.com/connect/token",
        validation_alias="JOBADDER_TOKEN_URL",
    )
    api_base_url: str = Field(
        "https://api.jobadder.com/v2",
        validation_alias="JOBADDER_API_URL",
        description="Used when the token response does not name an API host.",
    )

    @field_validator("scopes")
    @classmethod
    def _normalize_scopes(cls, value: str) -> str:
        """Support providing scopes as a comma- or space-separated string."""
        parts = value.replace(",", " ").split()
        return " ".join(parts)


class JazzHRSettings(BaseSettings):
    """Settings for the API-key based job board integration."""

    api_key: Optional[str] = Field(None, validation_alias="JAZZHR_API_KEY")
    base_url: str = Field(
        "https://api.resumatorapi.com/v1", validation_alias="JAZZHR_API_URL"
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    encryption_secret: str = Field(
        ...,
        validation_alias="VAULT_ENCRYPTION_SECRET",
        description="Secret used to derive the symmetric key for stored credentials.",
    )
    previous_encryption_secrets: str = Field(
        "",
        validation_alias="VAULT_PREVIOUS_SECRETS",
        description="Comma-separated retired secrets still accepted for decryption.",
    )
    session_secret: str = Field(
        ...,
        validation_alias="SESSION_SIGNING_SECRET",
        description="Shared secret used to verify identity-backend session tokens.",
    )
    oauth_state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    trusted_proxies: str = Field(
        "",
        validation_alias="TRUSTED_PROXIES",
        description="Comma-separated proxy addresses or CIDR ranges whose X-Forwarded-For is honoured.",
    )

    @field_validator("trusted_proxies")
    @classmethod
    def _check_trusted_proxies(cls, value: str) -> str:
        for entry in value.split(","):
            if entry.strip():
                ip_network(entry.strip(), strict=False)
        return value

    @property
    def retired_secrets(self) -> tuple[str, ...]:
        return tuple(
            secret.strip()
            for secret in self.previous_encryption_secrets.split(",")
            if secret.strip()
        )

    @property
    def trusted_proxy_networks(self) -> tuple[Union[IPv4Network, IPv6Network], ...]:
        return tuple(
            ip_network(entry.strip(), strict=False)
            for entry in self.trusted_proxies.split(",")
            if entry.strip()
        )


class SyncSettings(BaseSettings):
    """Batch synchronization tuning."""

    max_concurrency: int = Field(4, validation_alias="SYNC_MAX_CONCURRENCY", ge=1)
    default_retry_after_seconds: float = Field(
        60.0, validation_alias="SYNC_DEFAULT_RETRY_AFTER"
    )
    max_rate_limit_waits: int = Field(
        3,
        validation_alias="SYNC_MAX_RATE_LIMIT_WAITS",
        description="How many times one record may wait out a 429 before failing.",
    )
    refresh_window_seconds: int = Field(900, validation_alias="SYNC_REFRESH_WINDOW")
    claim_timeout_seconds: int = Field(
        900,
        validation_alias="SYNC_CLAIM_TIMEOUT",
        description="Age after which an unfinished push claim may be taken over.",
    )


class ProxySettings(BaseSettings):
    """Generic CRM proxy configuration."""

    timeout_seconds: float = Field(15.0, validation_alias="PROXY_TIMEOUT")
    default_retry_after_seconds: int = Field(
        60, validation_alias="PROXY_DEFAULT_RETRY_AFTER"
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    database_path: str = Field(
        "data/recruitsync.db", validation_alias="RECRUITSYNC_DB_PATH"
    )
    data_source_mode: Literal["auto", "live", "demo"] = Field(
        "auto",
        validation_alias="DATA_SOURCE_MODE",
        description="Read-path data source; auto falls back to demo data when offline.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    jobadder: JobAdderSettings = Field(default_factory=JobAdderSettings)
    jazzhr: JazzHRSettings = Field(default_factory=JazzHRSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "JazzHRSettings",
    "JobAdderSettings",
    "ProxySettings",
    "SecuritySettings",
    "SyncSettings",
    "get_settings",
]
