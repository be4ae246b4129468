"""
Domain models for token, vault, audit and sync persistence.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityType(str, Enum):
    """Record families reconciled with external systems."""

    JOBS = "jobs"
    CANDIDATES = "candidates"


class SyncState(str, Enum):
    UNSYNCED = "unsynced"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"
    PUSHING = "pushing"
    BIND_FAILED = "bind_failed"


class StoredToken(BaseModel):
    """One OAuth token row per (user, integration); tokens held encrypted."""

    user_id: str = Field(..., description="Owner key from the identity backend.")
    integration: str = Field("jobadder", description="Integration the token belongs to.")
    access_token_encrypted: str
    refresh_token_encrypted: str
    expires_at: datetime
    api_url: str
    instance: Optional[str] = None
    account: Optional[str] = None
    scope: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class VaultEntry(BaseModel):
    """An encrypted credential scoped to a user and a named service."""

    user_id: str
    service_name: str
    encrypted_key: str
    label: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class SecurityEvent(BaseModel):
    """Append-only audit row for identity-sensitive operations."""

    id: Optional[int] = None
    user_id: Optional[str] = None
    event_type: str
    event_details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class SyncableRecord(BaseModel):
    """A local job or candidate that may be bound to a remote record."""

    id: str
    entity_type: EntityType
    title: str = Field(..., description="Job title, or the candidate's display name.")
    status: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    external_system: Optional[str] = None
    external_id: Optional[str] = None
    sync_state: SyncState = SyncState.UNSYNCED
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_bound(self) -> bool:
        return self.external_id is not None


__all__ = [
    "EntityType",
    "SecurityEvent",
    "StoredToken",
    "SyncState",
    "SyncableRecord",
    "VaultEntry",
]
