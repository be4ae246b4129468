from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from recruitsync.clients.remote_systems import RemoteRecord
from recruitsync.core.errors import NotConnectedError, UpstreamServiceError
from recruitsync.models.records import EntityType
from recruitsync.services.data_source import (
    DEMO_NOTICE,
    DataSource,
    JobCatalog,
    LiveJobSource,
)
from recruitsync.services.sessions import SessionContext

CALLER = SessionContext(user_id="user-1")

pytestmark = pytest.mark.anyio("asyncio")


class StubGateway:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple] = []

    async def list_records(self, context, entity_type, *, search=None):
        self.calls.append((entity_type, search))
        if self.error is not None:
            raise self.error
        return [RemoteRecord(external_id="11", entity_type=entity_type, title="Live role")]


async def test_live_listing_is_labelled_live() -> None:
    gateway = StubGateway()
    catalog = JobCatalog(mode="auto", live=LiveJobSource(gateway))

    listing = await catalog.list_jobs(CALLER, "role")

    assert listing.source is DataSource.LIVE
    assert listing.notice is None
    assert [item.title for item in listing.items] == ["Live role"]
    assert gateway.calls == [(EntityType.JOBS, "role")]


@pytest.mark.parametrize(
    "error",
    [httpx.ConnectError("offline"), UpstreamServiceError("jobadder", 503)],
)
async def test_auto_mode_falls_back_to_labelled_demo_data(error) -> None:
    catalog = JobCatalog(mode="auto", live=LiveJobSource(StubGateway(error)))

    listing = await catalog.list_jobs(CALLER)

    assert listing.source is DataSource.DEMO
    assert listing.notice == DEMO_NOTICE
    assert [item.external_id for item in listing.items] == ["demo-1", "demo-2", "demo-3"]


async def test_client_errors_are_not_masked_by_demo_data() -> None:
    catalog = JobCatalog(
        mode="auto", live=LiveJobSource(StubGateway(UpstreamServiceError("jobadder", 401)))
    )

    with pytest.raises(UpstreamServiceError):
        await catalog.list_jobs(CALLER)


async def test_not_connected_is_not_masked_by_demo_data() -> None:
    catalog = JobCatalog(mode="auto", live=LiveJobSource(StubGateway(NotConnectedError())))

    with pytest.raises(NotConnectedError):
        await catalog.list_jobs(CALLER)


async def test_live_mode_never_falls_back() -> None:
    catalog = JobCatalog(mode="live", live=LiveJobSource(StubGateway(httpx.ConnectError("offline"))))

    with pytest.raises(httpx.ConnectError):
        await catalog.list_jobs(CALLER)


async def test_demo_mode_filters_by_search() -> None:
    gateway = StubGateway()
    catalog = JobCatalog(mode="demo", live=LiveJobSource(gateway))

    listing = await catalog.list_jobs(CALLER, "product")

    assert [item.title for item in listing.items] == ["Product Manager"]
    assert listing.notice == DEMO_NOTICE
    assert gateway.calls == []


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        JobCatalog(mode="sometimes", live=LiveJobSource(StubGateway()))
