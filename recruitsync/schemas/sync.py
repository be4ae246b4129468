"""Schemas for sync and read-path listing endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class SyncSummary(BaseModel):
    local_to_remote: int
    remote_to_local: int
    failed: int


class JobItem(BaseModel):
    external_id: str
    title: str
    status: Optional[str] = None
    description: Optional[str] = None


class JobListingResponse(BaseModel):
    source: str
    notice: Optional[str] = None
    items: list[JobItem]


__all__ = ["JobItem", "JobListingResponse", "SyncSummary"]
