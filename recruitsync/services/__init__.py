"""Service layer exports."""

from .audit import SecurityAuditLog
from .credential_vault import CredentialVault, KeyTestResult, VaultKeySummary
from .crm_proxy import (
    CrmProxy,
    KeyNotFound,
    ProxyResult,
    ProxySuccess,
    RateLimited,
    UpstreamError,
)
from .data_source import DataSource, DemoJobSource, JobCatalog, JobListing, LiveJobSource
from .oauth_session import (
    AccessGrant,
    ConnectionConfirmation,
    ConnectionStatus,
    OAuthSessionManager,
)
from .rate_limits import FixedWindowRateLimiter, RetryAfterGate
from .sessions import SessionContext, SessionTokenVerifier, SignedPayloadCodec
from .sync_engine import SyncCounts, SyncDirection, SyncEngine
from .token_cipher import TokenCipherService

__all__ = [
    "AccessGrant",
    "ConnectionConfirmation",
    "ConnectionStatus",
    "CredentialVault",
    "CrmProxy",
    "DataSource",
    "DemoJobSource",
    "FixedWindowRateLimiter",
    "JobCatalog",
    "JobListing",
    "KeyNotFound",
    "KeyTestResult",
    "LiveJobSource",
    "OAuthSessionManager",
    "ProxyResult",
    "ProxySuccess",
    "RateLimited",
    "RetryAfterGate",
    "SecurityAuditLog",
    "SessionContext",
    "SessionTokenVerifier",
    "SignedPayloadCodec",
    "SyncCounts",
    "SyncDirection",
    "SyncEngine",
    "TokenCipherService",
    "UpstreamError",
    "VaultKeySummary",
]
