"""Shared contract for external systems of record (ATS vendors)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Protocol

import httpx

from recruitsync.core.errors import RateLimitedError, UpstreamServiceError
from recruitsync.models.records import EntityType, SyncableRecord
from recruitsync.utils.http import parse_retry_after, safe_json

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from recruitsync.services.sessions import SessionContext


@dataclass(frozen=True)
class RemoteRecord:
    """A vendor record reduced to the fields stored locally."""

    external_id: str
    entity_type: EntityType
    title: str
    status: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class RemoteSystem(Protocol):
    name: str

    async def list_records(
        self, context: SessionContext, entity_type: EntityType
    ) -> list[RemoteRecord]: ...

    async def create_record(self, context: SessionContext, record: SyncableRecord) -> str: ...


def raise_for_vendor_status(
    vendor: str, response: httpx.Response, *, default_retry_after: float
) -> None:
    """Translate a vendor status into the typed rate-limit or upstream error."""
    if response.status_code == 429:
        raise RateLimitedError(
            vendor,
            parse_retry_after(response.headers.get("retry-after"), default=default_retry_after),
        )
    if not response.is_success:
        raise UpstreamServiceError(vendor, response.status_code, safe_json(response))


def created_id(vendor: str, response: httpx.Response, id_field: str) -> str:
    """Id of a newly created record; a body without one is an upstream error."""
    body = safe_json(response)
    external_id = body.get(id_field) if isinstance(body, dict) else None
    if external_id is None or external_id == "":
        raise UpstreamServiceError(vendor, response.status_code, body)
    return str(external_id)


def listed_items(vendor: str, response: httpx.Response) -> list[dict[str, Any]]:
    body = safe_json(response)
    if not isinstance(body, (dict, list)):
        raise UpstreamServiceError(vendor, response.status_code, body)
    return as_list(body)


def display_name(first_name: Any, last_name: Any) -> str:
    return " ".join(part for part in (first_name, last_name) if part) or "Unnamed candidate"


def as_list(payload: Any, *, key: str = "items") -> list[dict[str, Any]]:
    """Vendors answer with a bare list, a single object, or a wrapped page."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        if key in payload and isinstance(payload[key], list):
            return [item for item in payload[key] if isinstance(item, dict)]
        if payload:
            return [payload]
    return []


__all__ = [
    "RemoteRecord",
    "RemoteSystem",
    "as_list",
    "created_id",
    "display_name",
    "listed_items",
    "raise_for_vendor_status",
]
