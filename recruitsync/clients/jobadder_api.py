"""JobAdder REST client authenticated with the caller's stored OAuth token."""

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
from recruitsync.models.records import EntityType, SyncableRecord
from recruitsync.utils.http import RetryConfig, request_with_retry

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from recruitsync.services.sessions import SessionContext
    from recruitsync.services.oauth_session import OAuthSessionManager

logger = logging.getLogger(__name__)

_PATHS = {EntityType.JOBS: "/jobs", EntityType.CANDIDATES: "/candidates"}
_ID_FIELDS = {EntityType.JOBS: "jobId", EntityType.CANDIDATES: "candidateId"}


class JobAdderGateway:
    """Jobs and candidates on JobAdder; tokens are fetched fresh per request."""

    name = "jobadder"

    def __init__(
        self,
        oauth_manager: "OAuthSessionManager",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15.0,
        default_retry_after: float = 60.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._oauth = oauth_manager
        self._transport = transport
        self._timeout = timeout
        self._default_retry_after = default_retry_after
        self._retry_config = retry_config

    async def list_records(
        self, context: SessionContext, entity_type: EntityType, *, search: str | None = None
    ) -> list[RemoteRecord]:
        grant = await self._oauth.get_valid_access_token(context)
        params: Dict[str, str] = {"limit": "100"}
        if search:
            params["search"] = search

        async with self._client() as client:
            response = await request_with_retry(
                client.get,
                f"{grant.api_url.rstrip('/')}{_PATHS[entity_type]}",
                params=params,
                headers=self._headers(grant.access_token),
                retry_config=self._retry_config,
            )
        raise_for_vendor_status(self.name, response, default_retry_after=self._default_retry_after)
        return [
            self._to_remote(entity_type, item)
            for item in listed_items(self.name, response)
            if item.get(_ID_FIELDS[entity_type]) is not None
        ]

    async def create_record(self, context: SessionContext, record: SyncableRecord) -> str:
        grant = await self._oauth.get_valid_access_token(context)
        async with self._client() as client:
            response = await client.post(
                f"{grant.api_url.rstrip('/')}{_PATHS[record.entity_type]}",
                json=self._to_payload(record),
                headers=self._headers(grant.access_token),
            )
        raise_for_vendor_status(self.name, response, default_retry_after=self._default_retry_after)
        external_id = created_id(self.name, response, _ID_FIELDS[record.entity_type])
        logger.info(
            "Created JobAdder record",
            extra={"entity_type": record.entity_type.value, "record_id": record.id},
        )
        return external_id

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @staticmethod
    def _headers(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}

    @staticmethod
    def _to_payload(record: SyncableRecord) -> Dict[str, Any]:
        if record.entity_type is EntityType.JOBS:
            payload: Dict[str, Any] = {"jobTitle": record.title}
            if record.description:
                payload["jobDescription"] = record.description
            if record.status:
                payload["status"] = record.status
            return payload
        return {
            "firstName": record.first_name or record.title,
            "lastName": record.last_name or "",
            "email": record.email,
            "phone": record.phone,
        }

    @staticmethod
    def _to_remote(entity_type: EntityType, item: Dict[str, Any]) -> RemoteRecord:
        status = item.get("status")
        if isinstance(status, dict):
            status = status.get("name")
        if entity_type is EntityType.JOBS:
            return RemoteRecord(
                external_id=str(item["jobId"]),
                entity_type=entity_type,
                title=item.get("jobTitle") or item.get("title") or "Untitled job",
                status=status,
                description=item.get("summary") or item.get("jobDescription"),
            )
        return RemoteRecord(
            external_id=str(item["candidateId"]),
            entity_type=entity_type,
            title=display_name(item.get("firstName"), item.get("lastName")),
            status=status,
            email=item.get("email"),
            first_name=item.get("firstName"),
            last_name=item.get("lastName"),
            phone=item.get("phone") or item.get("mobile"),
        )


__all__ = ["JobAdderGateway"]
