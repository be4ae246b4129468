"""JazzHR REST client. Authenticates with an ``apikey`` query parameter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

import httpx

from recruitsync.clients.remote_systems import (
    RemoteRecord,
    created_id,
    display_name,
    listed_items,
    raise_for_vendor_status,
)
from recruitsync.core.config import JazzHRSettings
from recruitsync.core.errors import NotConnectedError
from recruitsync.models.records import EntityType, SyncableRecord
from recruitsync.utils.http import RetryConfig, request_with_retry

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from recruitsync.services.sessions import SessionContext

logger = logging.getLogger(__name__)

_PATHS = {EntityType.JOBS: "/jobs", EntityType.CANDIDATES: "/applicants"}


class JazzHRClient:
    name = "jazzhr"

    def __init__(
        self,
        settings: JazzHRSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
        default_retry_after: float = 60.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout
        self._default_retry_after = default_retry_after
        self._retry_config = retry_config

    async def list_records(
        self, context: SessionContext, entity_type: EntityType
    ) -> list[RemoteRecord]:
        async with self._client() as client:
            response = await request_with_retry(
                client.get,
                self._url(entity_type),
                params={"apikey": self._api_key()},
                headers={"Accept": "application/json"},
                retry_config=self._retry_config,
            )
        raise_for_vendor_status(self.name, response, default_retry_after=self._default_retry_after)
        return [
            self._to_remote(entity_type, item)
            for item in listed_items(self.name, response)
            if item.get("id") is not None
        ]

    async def create_record(self, context: SessionContext, record: SyncableRecord) -> str:
        async with self._client() as client:
            response = await client.post(
                self._url(record.entity_type),
                params={"apikey": self._api_key()},
                json=self._to_payload(record),
                headers={"Accept": "application/json"},
            )
        raise_for_vendor_status(self.name, response, default_retry_after=self._default_retry_after)
        external_id = created_id(self.name, response, "id")
        logger.info(
            "Created JazzHR record",
            extra={"entity_type": record.entity_type.value, "record_id": record.id},
        )
        return external_id

    def _api_key(self) -> str:
        if not self._settings.api_key:
            raise NotConnectedError("JAZZHR_API_KEY is not configured.")
        return self._settings.api_key

    def _url(self, entity_type: EntityType) -> str:
        return f"{self._settings.base_url.rstrip('/')}{_PATHS[entity_type]}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @staticmethod
    def _to_payload(record: SyncableRecord) -> Dict[str, Any]:
        if record.entity_type is EntityType.JOBS:
            return {
                "title": record.title,
                "description": record.description or "",
                "job_status": record.status or "Open",
            }
        return {
            "first_name": record.first_name or record.title,
            "last_name": record.last_name or "",
            "email": record.email,
            "phone": record.phone,
        }

    @staticmethod
    def _to_remote(entity_type: EntityType, item: Dict[str, Any]) -> RemoteRecord:
        if entity_type is EntityType.JOBS:
            return RemoteRecord(
                external_id=str(item["id"]),
                entity_type=entity_type,
                title=item.get("title") or "Untitled job",
                status=item.get("status"),
                description=item.get("description"),
            )
        return RemoteRecord(
            external_id=str(item["id"]),
            entity_type=entity_type,
            title=display_name(item.get("first_name"), item.get("last_name")),
            email=item.get("email"),
            first_name=item.get("first_name"),
            last_name=item.get("last_name"),
            phone=item.get("phone"),
        )


__all__ = ["JazzHRClient"]
