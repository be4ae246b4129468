"""Request and response contract of the generic CRM proxy."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class ProxyRequest(BaseModel):
    service_name: str = Field(..., description="One of the supported CRM vendors.")
    endpoint: str = Field(..., description="Absolute vendor URL.")
    method: Literal["GET", "POST", "PUT", "DELETE"] = "GET"
    body: Optional[Any] = None
    headers: Optional[Dict[str, str]] = None


class ProxyResponse(BaseModel):
    success: bool
    status: Optional[int] = None
    data: Optional[Any] = None
    error: Optional[str] = None
    details: Optional[Any] = None
    retry_after: Optional[float] = None


__all__ = ["ProxyRequest", "ProxyResponse"]
