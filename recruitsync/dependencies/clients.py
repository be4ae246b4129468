"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from typing import Callable

from recruitsync.clients import (
    ConfiguredClientIdProvider,
    JazzHRClient,
    JobAdderGateway,
    JobAdderOAuthClient,
    RemoteSystem,
    SecurityEventStore,
    SQLiteDatabase,
    SyncRecordStore,
    TokenStore,
    VaultStore,
    VendorProbeClient,
)
from recruitsync.core.config import get_settings
from recruitsync.core.errors import UnsupportedServiceError
from recruitsync.services import (
    CredentialVault,
    CrmProxy,
    FixedWindowRateLimiter,
    JobCatalog,
    LiveJobSource,
    OAuthSessionManager,
    RetryAfterGate,
    SecurityAuditLog,
    SessionTokenVerifier,
    SignedPayloadCodec,
    SyncEngine,
    TokenCipherService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_database() -> SQLiteDatabase:
    """Provide the shared SQLite database handle."""
    return SQLiteDatabase(_settings().database_path)


@lru_cache()
def get_token_store() -> TokenStore:
    return TokenStore(get_database())


@lru_cache()
def get_vault_store() -> VaultStore:
    return VaultStore(get_database())


@lru_cache()
def get_security_event_store() -> SecurityEventStore:
    return SecurityEventStore(get_database())


@lru_cache()
def get_sync_record_store() -> SyncRecordStore:
    return SyncRecordStore(get_database())


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token and API key storage."""
    security = _settings().security
    return TokenCipherService(
        secret=security.encryption_secret,
        retired_secrets=security.retired_secrets,
    )


@lru_cache()
def get_session_verifier() -> SessionTokenVerifier:
    """Verify bearer tokens issued by the identity backend."""
    return SessionTokenVerifier(SignedPayloadCodec(_settings().security.session_secret))


@lru_cache()
def get_oauth_state_codec() -> SignedPayloadCodec:
    """Provide an OAuth state encoder derived from the JobAdder client secret."""
    return SignedPayloadCodec(secret_key=_settings().jobadder.client_secret)


@lru_cache()
def get_audit_log() -> SecurityAuditLog:
    return SecurityAuditLog(get_security_event_store())


@lru_cache()
def get_jobadder_oauth_client() -> JobAdderOAuthClient:
    """Create a singleton JobAdder OAuth client."""
    return JobAdderOAuthClient(_settings().jobadder)


@lru_cache()
def get_oauth_session_manager() -> OAuthSessionManager:
    """Provide the stateless manager for JobAdder OAuth tokens."""
    settings = _settings()
    return OAuthSessionManager(
        token_store=get_token_store(),
        oauth_client=get_jobadder_oauth_client(),
        client_ids=ConfiguredClientIdProvider(settings.jobadder),
        settings=settings.jobadder,
        token_cipher=get_token_cipher_service(),
        audit_log=get_audit_log(),
        state_codec=get_oauth_state_codec(),
        state_ttl_seconds=settings.security.oauth_state_ttl_seconds,
    )


@lru_cache()
def get_credential_vault() -> CredentialVault:
    return CredentialVault(
        store=get_vault_store(),
        token_cipher=get_token_cipher_service(),
        audit_log=get_audit_log(),
        probe_client=VendorProbeClient(timeout=_settings().proxy.timeout_seconds),
    )


@lru_cache()
def get_crm_proxy() -> CrmProxy:
    return CrmProxy(
        vault=get_credential_vault(),
        audit_log=get_audit_log(),
        settings=_settings().proxy,
    )


@lru_cache()
def get_retry_gate() -> RetryAfterGate:
    """One gate per process so every batch honours the same vendor back-off."""
    return RetryAfterGate()


@lru_cache()
def get_jobadder_gateway() -> JobAdderGateway:
    return JobAdderGateway(
        get_oauth_session_manager(),
        default_retry_after=_settings().sync.default_retry_after_seconds,
    )


@lru_cache()
def get_jazzhr_client() -> JazzHRClient:
    settings = _settings()
    return JazzHRClient(
        settings.jazzhr,
        default_retry_after=settings.sync.default_retry_after_seconds,
    )


def get_remote_systems() -> dict[str, RemoteSystem]:
    """Supported systems of record, keyed by name."""
    return {
        JobAdderGateway.name: get_jobadder_gateway(),
        JazzHRClient.name: get_jazzhr_client(),
    }


def build_sync_engine(system: str) -> SyncEngine:
    """Build a sync engine bound to the named system of record."""
    remote = get_remote_systems().get(system.lower())
    if remote is None:
        raise UnsupportedServiceError(f"Unsupported system of record: {system}")
    return SyncEngine(
        store=get_sync_record_store(),
        remote=remote,
        settings=_settings().sync,
        gate=get_retry_gate(),
    )


def get_sync_engine_factory() -> Callable[[str], SyncEngine]:
    return build_sync_engine


@lru_cache()
def get_job_catalog() -> JobCatalog:
    """Read-path job listings; the data source is chosen here, once."""
    return JobCatalog(
        mode=_settings().data_source_mode,
        live=LiveJobSource(get_jobadder_gateway()),
    )


@lru_cache()
def get_rate_limiter() -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter()


__all__ = [
    "build_sync_engine",
    "get_audit_log",
    "get_credential_vault",
    "get_crm_proxy",
    "get_database",
    "get_jazzhr_client",
    "get_job_catalog",
    "get_jobadder_gateway",
    "get_jobadder_oauth_client",
    "get_oauth_session_manager",
    "get_oauth_state_codec",
    "get_rate_limiter",
    "get_remote_systems",
    "get_retry_gate",
    "get_security_event_store",
    "get_session_verifier",
    "get_sync_engine_factory",
    "get_sync_record_store",
    "get_token_cipher_service",
    "get_token_store",
    "get_vault_store",
]
