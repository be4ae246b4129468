"""Supported secondary-CRM vendors and how to authenticate against each."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import httpx

from recruitsync.core.errors import UnsupportedServiceError


class AuthScheme(str, Enum):
    BEARER = "bearer"
    API_KEY_HEADER = "api_key_header"
    ZOHO_OAUTH = "zoho_oauth"
    RAW_TOKEN = "raw_token"

    def build_headers(self, api_key: str) -> Dict[str, str]:
        if self is AuthScheme.API_KEY_HEADER:
            return {"X-Api-Key": api_key}
        if self is AuthScheme.ZOHO_OAUTH:
            return {"Authorization": f"Zoho-oauthtoken {api_key}"}
        if self is AuthScheme.RAW_TOKEN:
            return {"Authorization": api_key}
        return {"Authorization": f"Bearer {api_key}"}


@dataclass(frozen=True)
class HttpProbe:
    """A cheap authenticated GET whose status tells whether the key works."""

    url: str


@dataclass(frozen=True)
class ShapeProbe:
    """Offline format check for vendors without a public probe endpoint."""

    check: Callable[[str], bool]
    failure_message: str


@dataclass(frozen=True)
class VendorProfile:
    auth: AuthScheme
    probe: Optional[HttpProbe | ShapeProbe] = None


def _looks_like_salesforce_token(api_key: str) -> bool:
    return "!" in api_key and len(api_key) >= 20


class CrmVendor(str, Enum):
    HUBSPOT = "hubspot"
    SALESFORCE = "salesforce"
    APOLLO = "apollo"
    PIPEDRIVE = "pipedrive"
    ZOHO = "zoho"
    MONDAY = "monday"
    AIRTABLE = "airtable"

    @classmethod
    def parse(cls, service_name: str) -> "CrmVendor":
        """Map a free-form service name onto the closed vendor set."""
        normalized = (service_name or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnsupportedServiceError(f"Unsupported service: {service_name}") from exc

    @classmethod
    def lookup(cls, service_name: str) -> Optional["CrmVendor"]:
        try:
            return cls.parse(service_name)
        except UnsupportedServiceError:
            return None

    @property
    def profile(self) -> VendorProfile:
        return VENDOR_PROFILES[self]

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return self.profile.auth.build_headers(api_key)


VENDOR_PROFILES: Dict[CrmVendor, VendorProfile] = {
    CrmVendor.HUBSPOT: VendorProfile(
        auth=AuthScheme.BEARER,
        probe=HttpProbe(url="https://api.hubapi.com/crm/v3/objects/contacts?limit=1"),
    ),
    CrmVendor.SALESFORCE: VendorProfile(
        auth=AuthScheme.BEARER,
        probe=ShapeProbe(
            check=_looks_like_salesforce_token,
            failure_message="Invalid Salesforce API key format",
        ),
    ),
    CrmVendor.APOLLO: VendorProfile(
        auth=AuthScheme.API_KEY_HEADER,
        probe=HttpProbe(url="https://api.apollo.io/v1/people/search"),
    ),
    CrmVendor.PIPEDRIVE: VendorProfile(auth=AuthScheme.BEARER),
    CrmVendor.ZOHO: VendorProfile(auth=AuthScheme.ZOHO_OAUTH),
    CrmVendor.MONDAY: VendorProfile(auth=AuthScheme.RAW_TOKEN),
    CrmVendor.AIRTABLE: VendorProfile(auth=AuthScheme.BEARER),
}


@dataclass(frozen=True)
class ProbeResult:
    valid: bool
    message: str
    status: Optional[int] = None


class VendorProbeClient:
    """Run the per-vendor credential probe without ever returning the key."""

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    async def probe(self, service_name: str, api_key: str) -> ProbeResult:
        vendor = CrmVendor.lookup(service_name)
        probe = vendor.profile.probe if vendor else None

        if isinstance(probe, ShapeProbe):
            if probe.check(api_key):
                return ProbeResult(valid=True, message="API key format validation passed")
            return ProbeResult(valid=False, message=probe.failure_message)

        if isinstance(probe, HttpProbe):
            headers = {"Content-Type": "application/json", **vendor.auth_headers(api_key)}
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.get(probe.url, headers=headers)
            except httpx.HTTPError:
                return ProbeResult(valid=False, message="Vendor unreachable during API key test")

            # A rate-limited answer still proves the key was accepted.
            valid = response.is_success or response.status_code == 429
            return ProbeResult(
                valid=valid,
                status=response.status_code,
                message="API key is valid" if valid else "API key test failed",
            )

        return ProbeResult(
            valid=True,
            message="API key format validation passed (service-specific test not implemented)",
        )


__all__ = [
    "AuthScheme",
    "CrmVendor",
    "HttpProbe",
    "ProbeResult",
    "ShapeProbe",
    "VENDOR_PROFILES",
    "VendorProbeClient",
    "VendorProfile",
]
