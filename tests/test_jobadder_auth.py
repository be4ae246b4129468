from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs

import httpx
import pytest

from recruitsync.clients.jobadder_auth import (
    ConfiguredClientIdProvider,
    JobAdderOAuthClient,
)
from recruitsync.core.config import JobAdderSettings
from recruitsync.core.errors import ExchangeFailedError, UpstreamServiceError


def _settings(**overrides: str) -> JobAdderSettings:
    values = {
        "JOBADDER_CLIENT_ID": "client-123",
        "JOBADDER_CLIENT_SECRET": "secret-456",
        "JOBADDER_SCOPES": "read,write offline_access",
    }
    values.update(overrides)
    return JobAdderSettings(**values)


def _token_transport(status: int, payload: dict, seen: list[dict] | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "https://id.jobadder.com/connect/token"
        if seen is not None:
            seen.append({key: values[0] for key, values in parse_qs(request.content.decode()).items()})
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


def test_scopes_are_normalized() -> None:
    assert _settings().scopes == "read write offline_access"


@pytest.mark.asyncio
async def test_exchange_posts_form_and_returns_grant() -> None:
    seen: list[dict] = []
    client = JobAdderOAuthClient(
        _settings(),
        transport=_token_transport(
            200,
            {
                "access_token": "a",
                "refresh_token": "r",
                "expires_in": 3600,
                "api": "https://eu.jobadder.com/v2",
                "instance": "acme",
                "account": 7,
            },
            seen,
        ),
    )

    grant = await client.exchange_authorization_code("code-1")

    assert grant.api_url == "https://eu.jobadder.com/v2"
    assert grant.account == "7"
    assert seen[0]["grant_type"] == "authorization_code"
    assert seen[0]["client_secret"] == "secret-456"
    assert seen[0]["redirect_uri"] == "https://staffing.example.com/auth/callback"


@pytest.mark.asyncio
async def test_incomplete_payload_is_rejected() -> None:
    client = JobAdderOAuthClient(
        _settings(), transport=_token_transport(200, {"access_token": "a"})
    )

    with pytest.raises(ExchangeFailedError):
        await client.exchange_authorization_code("code-1")


@pytest.mark.asyncio
async def test_vendor_error_status_is_rejected() -> None:
    client = JobAdderOAuthClient(
        _settings(), transport=_token_transport(400, {"error": "invalid_grant"})
    )

    with pytest.raises(ExchangeFailedError):
        await client.exchange_authorization_code("code-1")


@pytest.mark.asyncio
async def test_refresh_keeps_previous_refresh_token() -> None:
    seen: list[dict] = []
    client = JobAdderOAuthClient(
        _settings(),
        transport=_token_transport(200, {"access_token": "a2", "expires_in": 600}, seen),
    )

    grant = await client.refresh_token("r1")

    assert grant.refresh_token == "r1"
    assert grant.api_url == "https://api.jobadder.com/v2"
    assert seen[0]["grant_type"] == "refresh_token"


@pytest.mark.asyncio
async def test_unreachable_token_endpoint() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    client = JobAdderOAuthClient(_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(UpstreamServiceError) as exc_info:
        await client.refresh_token("r1")

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_outage_status_is_not_a_rejection(status: int) -> None:
    client = JobAdderOAuthClient(
        _settings(), transport=_token_transport(status, {"error": "temporarily_unavailable"})
    )

    with pytest.raises(UpstreamServiceError) as exc_info:
        await client.refresh_token("r1")

    assert not isinstance(exc_info.value, ExchangeFailedError)
    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_non_json_token_answer_is_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    client = JobAdderOAuthClient(_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(UpstreamServiceError):
        await client.refresh_token("r1")


@pytest.mark.asyncio
async def test_configured_client_id_provider() -> None:
    assert await ConfiguredClientIdProvider(_settings()).get_client_id() == "client-123"

    provider = ConfiguredClientIdProvider(_settings(JOBADDER_CLIENT_ID=""))
    with pytest.raises(LookupError):
        await provider.get_client_id()
