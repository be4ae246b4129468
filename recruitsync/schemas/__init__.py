"""Public schema exports."""

from .auth import (
    AuthorizationUrlResponse,
    ConnectionResponse,
    ConnectionStatusResponse,
    OAuthCallbackPayload,
)
from .proxy import ProxyRequest, ProxyResponse
from .sync import JobItem, JobListingResponse, SyncSummary
from .vault import (
    ListKeysResponse,
    RetrieveKeyResponse,
    ServiceKeyRequest,
    StoreKeyRequest,
    StoreKeyResponse,
    KeyTestResponse,
    VaultKeyItem,
)

__all__ = [
    "AuthorizationUrlResponse",
    "ConnectionResponse",
    "ConnectionStatusResponse",
    "JobItem",
    "JobListingResponse",
    "ListKeysResponse",
    "OAuthCallbackPayload",
    "ProxyRequest",
    "ProxyResponse",
    "RetrieveKeyResponse",
    "ServiceKeyRequest",
    "StoreKeyRequest",
    "StoreKeyResponse",
    "SyncSummary",
    "KeyTestResponse",
    "VaultKeyItem",
]
