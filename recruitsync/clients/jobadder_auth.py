"""
JobAdder OAuth utilities.

These helpers build the consent URL and talk to the vendor token endpoint.
They never persist anything; storage is the session manager's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import httpx

from recruitsync.core.config import JobAdderSettings
from recruitsync.core.errors import ExchangeFailedError, UpstreamServiceError
from recruitsync.utils.http import safe_json

VENDOR = "jobadder"


@dataclass(frozen=True)
class TokenGrant:
    """Token endpoint answer reduced to the fields this service consumes."""

    access_token: str
    refresh_token: str
    expires_in: int
    api_url: str
    instance: Optional[str] = None
    account: Optional[str] = None
    scope: Optional[str] = None


class ClientIdProvider(Protocol):
    async def get_client_id(self) -> str: ...


class ConfiguredClientIdProvider:
    """Serve the client identifier held in server-side configuration."""

    def __init__(self, settings: JobAdderSettings) -> None:
        self._settings = settings

    async def get_client_id(self) -> str:
        if not self._settings.client_id:
            raise LookupError("JOBADDER_CLIENT_ID is not configured.")
        return self._settings.client_id


class JobAdderOAuthClient:
    """Build JobAdder authorization URLs and exchange authorization codes."""

    def __init__(
        self,
        settings: JobAdderSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout

    @property
    def redirect_uri(self) -> str:
        return str(self._settings.redirect_uri)

    @property
    def scopes(self) -> str:
        return self._settings.scopes

    def build_authorization_url(self, *, client_id: str, state: Optional[str] = None) -> str:
        """Construct the vendor consent URL."""
        params = {
            "response_type": "code",
            "client_id": client_id,
            "scope": self._settings.scopes,
            "redirect_uri": self.redirect_uri,
        }
        if state:
            params["state"] = state
        return f"{self._settings.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for a complete token grant."""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self._client_id,
            "client_secret": self._settings.client_secret,
            "redirect_uri": self.redirect_uri,
        }
        token_payload = await self._post_token(payload)
        return self._to_grant(token_payload, previous_refresh_token=None)

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._client_id,
            "client_secret": self._settings.client_secret,
        }
        token_payload = await self._post_token(payload)
        return self._to_grant(token_payload, previous_refresh_token=refresh_token)

    @property
    def _client_id(self) -> str:
        return self._settings.client_id or self._settings.fallback_client_id

    async def _post_token(self, payload: dict[str, str]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._settings.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise UpstreamServiceError(
                VENDOR, httpx.codes.SERVICE_UNAVAILABLE, "Token endpoint unreachable."
            ) from exc

        # 5xx and 429 are transient; any other non-200 answer rejects the grant.
        if response.status_code >= 500 or response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise UpstreamServiceError(VENDOR, response.status_code, safe_json(response))
        if response.status_code != httpx.codes.OK:
            raise ExchangeFailedError(
                f"Token endpoint rejected the request ({response.status_code})."
            )
        try:
            token_payload = response.json()
        except ValueError as exc:
            raise UpstreamServiceError(VENDOR, response.status_code, response.text) from exc
        if not isinstance(token_payload, dict):
            raise UpstreamServiceError(VENDOR, response.status_code, token_payload)
        return token_payload

    def _to_grant(
        self, token_payload: dict[str, Any], *, previous_refresh_token: Optional[str]
    ) -> TokenGrant:
        access_token = token_payload.get("access_token")
        refresh_token = token_payload.get("refresh_token") or previous_refresh_token
        expires_in = token_payload.get("expires_in")

        if not access_token or not refresh_token or not expires_in:
            raise ExchangeFailedError("Incomplete token payload returned from JobAdder.")

        account = token_payload.get("account")
        return TokenGrant(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(expires_in),
            api_url=token_payload.get("api") or self._settings.api_base_url,
            instance=token_payload.get("instance"),
            account=str(account) if account is not None else None,
            scope=token_payload.get("scope") or self._settings.scopes,
        )


__all__ = [
    "ClientIdProvider",
    "ConfiguredClientIdProvider",
    "JobAdderOAuthClient",
    "TokenGrant",
]
