"""Schemas related to the JobAdder OAuth flow."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent by the front-end to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by JobAdder.")
    state: Optional[str] = Field(
        None, description="State token issued when the authorization URL was built."
    )


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str


class ConnectionResponse(BaseModel):
    """Redacted connection details; never carries token material."""

    status: str = "connected"
    expires_at: datetime
    instance: Optional[str] = None
    account: Optional[str] = None


class ConnectionStatusResponse(BaseModel):
    connected: bool
    expires_at: Optional[datetime] = None
    instance: Optional[str] = None
    account: Optional[str] = None


__all__ = [
    "AuthorizationUrlResponse",
    "ConnectionResponse",
    "ConnectionStatusResponse",
    "OAuthCallbackPayload",
]
