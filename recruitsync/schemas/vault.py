"""Schemas for the credential vault endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StoreKeyRequest(BaseModel):
    service_name: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)
    key_label: Optional[str] = None


class ServiceKeyRequest(BaseModel):
    service_name: str = Field(..., min_length=1)


class StoreKeyResponse(BaseModel):
    success: bool = True
    service_name: str
    message: str = "API key stored securely"


class RetrieveKeyResponse(BaseModel):
    success: bool = True
    service_name: str
    api_key: str


class VaultKeyItem(BaseModel):
    service_name: str
    key_label: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ListKeysResponse(BaseModel):
    success: bool = True
    api_keys: list[VaultKeyItem]


class KeyTestResponse(BaseModel):
    success: bool
    service_name: str
    message: str
    status: Optional[int] = None


__all__ = [
    "ListKeysResponse",
    "RetrieveKeyResponse",
    "ServiceKeyRequest",
    "StoreKeyRequest",
    "StoreKeyResponse",
    "KeyTestResponse",
    "VaultKeyItem",
]
