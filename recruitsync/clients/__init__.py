"""Expose constructed client wrappers."""

from .crm_vendors import CrmVendor, ProbeResult, VendorProbeClient
from .jazzhr import JazzHRClient
from .jobadder_api import JobAdderGateway
from .jobadder_auth import (
    ClientIdProvider,
    ConfiguredClientIdProvider,
    JobAdderOAuthClient,
    TokenGrant,
)
from .remote_systems import RemoteRecord, RemoteSystem
from .sqlite_store import (
    SecurityEventStore,
    SQLiteDatabase,
    SyncRecordStore,
    TokenStore,
    VaultStore,
)

__all__ = [
    "ClientIdProvider",
    "ConfiguredClientIdProvider",
    "CrmVendor",
    "JazzHRClient",
    "JobAdderGateway",
    "JobAdderOAuthClient",
    "ProbeResult",
    "RemoteRecord",
    "RemoteSystem",
    "SQLiteDatabase",
    "SecurityEventStore",
    "SyncRecordStore",
    "TokenGrant",
    "TokenStore",
    "VaultStore",
    "VendorProbeClient",
]
