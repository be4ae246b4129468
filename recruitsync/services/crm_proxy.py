"""
Single choke point for outbound secondary-CRM HTTP calls.

Keys are loaded from the vault, auth headers come from the vendor profile,
and each call, rejected ones included, is audited once before dispatch
with its userinfo and query string stripped. Outcomes are returned as typed values rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import urlsplit

import httpx

from recruitsync.clients.crm_vendors import CrmVendor
from recruitsync.core.config import ProxySettings
from recruitsync.core.errors import KeyNotFoundError, PersistenceError
from recruitsync.services.audit import SecurityAuditLog, strip_query
from recruitsync.services.credential_vault import CredentialVault
from recruitsync.services.sessions import SessionContext, require_session
from recruitsync.utils.http import parse_retry_after, safe_json

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})


@dataclass(frozen=True)
class ProxySuccess:
    data: Any
    status: int


@dataclass(frozen=True)
class RateLimited:
    retry_after: float
    status: int = 429


@dataclass(frozen=True)
class UpstreamError:
    status: Optional[int]
    body: Any = None


@dataclass(frozen=True)
class KeyNotFound:
    service_name: str
    status: int = 404


ProxyResult = Union[ProxySuccess, RateLimited, UpstreamError, KeyNotFound]


class CrmProxy:
    def __init__(
        self,
        *,
        vault: CredentialVault,
        audit_log: SecurityAuditLog,
        settings: ProxySettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._vault = vault
        self._audit = audit_log
        self._settings = settings
        self._transport = transport

    async def forward(
        self,
        context: Optional[SessionContext],
        service_name: str,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ProxyResult:
        caller = require_session(context)
        method = (method or "").upper()
        details: Dict[str, Any] = {
            "service_name": service_name,
            "endpoint": strip_query(endpoint),
            "method": method,
        }
        try:
            vendor = CrmVendor.parse(service_name)
            details["service_name"] = vendor.value
            if method not in ALLOWED_METHODS:
                raise ValueError(f"Unsupported HTTP method: {method}")
            if urlsplit(endpoint).scheme not in ("http", "https"):
                raise ValueError("Endpoint must be an absolute http(s) URL")
        except ValueError as exc:
            details["rejected"] = str(exc)
            raise
        finally:
            self._audit.record(caller, "api_request", details)

        try:
            api_key = self._vault.load_key_for_dispatch(caller, vendor.value)
        except KeyNotFoundError:
            return KeyNotFound(service_name=vendor.value)
        except PersistenceError:
            # Unreadable under every configured secret; the key has to be stored again.
            return KeyNotFound(service_name=vendor.value)

        request_headers: Dict[str, str] = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        request_headers.update(vendor.auth_headers(api_key))

        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    endpoint,
                    headers=request_headers,
                    json=body,
                )
        except httpx.HTTPError as exc:
            logger.warning(
                "CRM vendor unreachable",
                extra={"service_name": vendor.value, "reason": type(exc).__name__},
            )
            return UpstreamError(status=None, body={"error": f"{vendor.value} unreachable"})

        if response.status_code == 429:
            retry_after = parse_retry_after(
                response.headers.get("retry-after"),
                default=float(self._settings.default_retry_after_seconds),
            )
            return RateLimited(retry_after=retry_after)

        payload = safe_json(response)
        if not response.is_success:
            logger.warning(
                "CRM vendor returned an error",
                extra={"service_name": vendor.value, "status": response.status_code},
            )
            return UpstreamError(status=response.status_code, body=payload)

        return ProxySuccess(data=payload, status=response.status_code)


__all__ = [
    "ALLOWED_METHODS",
    "CrmProxy",
    "KeyNotFound",
    "ProxyResult",
    "ProxySuccess",
    "RateLimited",
    "UpstreamError",
]
