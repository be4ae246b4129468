from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
import json
from datetime import datetime, timedelta, timezone
from itertools import count

import httpx
import pytest

from recruitsync.clients.jobadder_api import JobAdderGateway
from recruitsync.clients.jobadder_auth import ConfiguredClientIdProvider, JobAdderOAuthClient
from recruitsync.clients.remote_systems import RemoteRecord
from recruitsync.clients.sqlite_store import (
    SecurityEventStore,
    SQLiteDatabase,
    SyncRecordStore,
    TokenStore,
)
from recruitsync.core.config import JobAdderSettings, SyncSettings
from recruitsync.core.errors import PersistenceError, RateLimitedError, UpstreamServiceError
from recruitsync.models.records import EntityType, SyncableRecord, SyncState
from recruitsync.services.audit import SecurityAuditLog
from recruitsync.services.oauth_session import AccessGrant, OAuthSessionManager
from recruitsync.services.rate_limits import RetryAfterGate
from recruitsync.services.sessions import SessionContext, SignedPayloadCodec
from recruitsync.services.sync_engine import SyncCounts, SyncDirection, SyncEngine
from recruitsync.services.token_cipher import TokenCipherService
from recruitsync.utils.http import RetryConfig

CALLER = SessionContext(user_id="recruiter-1")


class StubRemote:
    name = "jobadder"

    def __init__(self) -> None:
        self.remote: list[RemoteRecord] = []
        self.created: list[str] = []
        self.create_errors: dict[str, list[Exception]] = {}
        self.list_errors: list[Exception] = []
        self._ids = count(100)

    async def list_records(self, context, entity_type):
        if self.list_errors:
            raise self.list_errors.pop(0)
        return [record for record in self.remote if record.entity_type is entity_type]

    async def create_record(self, context, record):
        await asyncio.sleep(0)
        errors = self.create_errors.get(record.id)
        if errors:
            raise errors.pop(0)
        external_id = str(next(self._ids))
        self.created.append(record.id)
        self.remote.append(
            RemoteRecord(external_id=external_id, entity_type=record.entity_type, title=record.title)
        )
        return external_id


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.slept: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


@pytest.fixture()
def database(tmp_path) -> SQLiteDatabase:
    return SQLiteDatabase(str(tmp_path / "sync.db"))


@pytest.fixture()
def store(database) -> SyncRecordStore:
    return SyncRecordStore(database)


@pytest.fixture()
def remote() -> StubRemote:
    return StubRemote()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(store, remote, clock) -> SyncEngine:
    return SyncEngine(
        store=store,
        remote=remote,
        settings=SyncSettings(),
        gate=RetryAfterGate(clock=clock, sleep=clock.sleep),
    )


def _seed_jobs(store: SyncRecordStore, *titles: str) -> None:
    for index, title in enumerate(titles, start=1):
        store.insert_local(SyncableRecord(id=f"job-{index}", entity_type=EntityType.JOBS, title=title))


@pytest.mark.asyncio
async def test_push_binds_every_unbound_record(engine, store, remote) -> None:
    _seed_jobs(store, "Engineer", "Designer")

    counts = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert counts == SyncCounts(local_to_remote=2)
    assert all(record.sync_state is SyncState.SYNCED for record in store.list_all(EntityType.JOBS))
    assert store.list_unbound(EntityType.JOBS) == []


@pytest.mark.asyncio
async def test_push_isolates_failures(engine, store, remote) -> None:
    _seed_jobs(store, "Engineer", "Designer", "Analyst")
    remote.create_errors["job-2"] = [UpstreamServiceError("jobadder", 500)]

    counts = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert (counts.pushed, counts.failed) == (2, 1)
    assert store.get("job-1").external_id is not None
    assert store.get("job-3").external_id is not None
    failed = store.get("job-2")
    assert failed.external_id is None
    assert failed.sync_state is SyncState.SYNC_FAILED
    assert failed.last_error == "jobadder API error: 500"


@pytest.mark.asyncio
async def test_failed_record_is_retried_on_next_push(engine, store, remote) -> None:
    _seed_jobs(store, "Engineer")
    remote.create_errors["job-1"] = [httpx.ConnectError("down")]

    first = await engine.push_unsynced(CALLER, EntityType.JOBS)
    second = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert (first.failed, second.pushed) == (1, 1)
    assert store.get("job-1").sync_state is SyncState.SYNCED


@pytest.mark.asyncio
async def test_push_with_nothing_unbound_is_a_noop(engine, remote) -> None:
    assert await engine.push_unsynced(CALLER, EntityType.CANDIDATES) == SyncCounts()
    assert remote.created == []


@pytest.mark.asyncio
async def test_rate_limit_suspends_and_retries(engine, store, remote, clock) -> None:
    _seed_jobs(store, "Engineer")
    remote.create_errors["job-1"] = [RateLimitedError("jobadder", 12.0)]

    counts = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert counts.pushed == 1
    assert clock.slept == [12.0]
    assert remote.created == ["job-1"]


@pytest.mark.asyncio
async def test_persistent_rate_limit_fails_the_record(engine, store, remote, clock) -> None:
    _seed_jobs(store, "Engineer")
    remote.create_errors["job-1"] = [RateLimitedError("jobadder", 1.0) for _ in range(10)]

    counts = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert counts == SyncCounts(failed=1)
    assert len(clock.slept) == SyncSettings().max_rate_limit_waits
    assert store.get("job-1").sync_state is SyncState.SYNC_FAILED


@pytest.mark.asyncio
async def test_pull_is_idempotent(engine, store, remote) -> None:
    remote.remote = [
        RemoteRecord(external_id="7", entity_type=EntityType.JOBS, title="Recruiter"),
        RemoteRecord(external_id="8", entity_type=EntityType.JOBS, title="Sourcer"),
        RemoteRecord(external_id="9", entity_type=EntityType.CANDIDATES, title="Ann Lee"),
    ]

    first = await engine.pull_new(CALLER, EntityType.JOBS)
    second = await engine.pull_new(CALLER, EntityType.JOBS)

    assert first.pulled == 2
    assert second == SyncCounts()
    rows = store.list_all(EntityType.JOBS)
    assert sorted(row.external_id for row in rows) == ["7", "8"]
    assert all(row.external_system == "jobadder" for row in rows)


@pytest.mark.asyncio
async def test_pull_waits_out_rate_limit(engine, remote, clock) -> None:
    remote.list_errors = [RateLimitedError("jobadder", 3.0)]
    remote.remote = [RemoteRecord(external_id="1", entity_type=EntityType.JOBS, title="Recruiter")]

    counts = await engine.pull_new(CALLER, EntityType.JOBS)

    assert counts.pulled == 1
    assert clock.slept == [3.0]


@pytest.mark.asyncio
async def test_pull_listing_failure_propagates(engine, remote) -> None:
    remote.list_errors = [UpstreamServiceError("jobadder", 503)]

    with pytest.raises(UpstreamServiceError):
        await engine.pull_new(CALLER, EntityType.JOBS)


@pytest.mark.asyncio
async def test_bidirectional_sync_does_not_reimport_pushed_records(engine, store, remote) -> None:
    _seed_jobs(store, "Engineer", "Designer")
    remote.remote = [RemoteRecord(external_id="55", entity_type=EntityType.JOBS, title="Recruiter")]

    counts = await engine.run(CALLER, EntityType.JOBS, SyncDirection.BIDIRECTIONAL)

    assert counts == SyncCounts(local_to_remote=2, remote_to_local=1, failed=0)
    assert len(store.list_all(EntityType.JOBS)) == 3


@pytest.mark.asyncio
async def test_end_to_end_connect_and_sync_against_jobadder(database, store) -> None:
    settings = JobAdderSettings(
        JOBADDER_CLIENT_ID="client-123", JOBADDER_CLIENT_SECRET="secret-456"
    )
    next_job_id = count(501)
    remote_jobs = [{"jobId": 900, "jobTitle": "Account Manager", "status": {"name": "Open"}}]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/connect/token":
            return httpx.Response(
                200,
                json={
                    "access_token": "live-access",
                    "refresh_token": "live-refresh",
                    "expires_in": 3600,
                    "api": "https://api.jobadder.com/v2",
                },
            )
        assert request.headers["Authorization"] == "Bearer live-access"
        if request.method == "POST" and request.url.path == "/v2/jobs":
            payload = json.loads(request.content)
            created = {"jobId": next(next_job_id), "jobTitle": payload["jobTitle"]}
            remote_jobs.append(created)
            return httpx.Response(201, json=created)
        if request.method == "GET" and request.url.path == "/v2/jobs":
            return httpx.Response(200, json={"items": remote_jobs})
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    cipher = TokenCipherService(secret="vault-secret")
    manager = OAuthSessionManager(
        token_store=TokenStore(database),
        oauth_client=JobAdderOAuthClient(settings, transport=transport),
        client_ids=ConfiguredClientIdProvider(settings),
        settings=settings,
        token_cipher=cipher,
        audit_log=SecurityAuditLog(SecurityEventStore(database)),
        state_codec=SignedPayloadCodec("secret-456"),
    )
    engine = SyncEngine(
        store=store,
        remote=JobAdderGateway(
            manager, transport=transport, retry_config=RetryConfig(attempts=1)
        ),
        settings=SyncSettings(),
    )

    await manager.exchange_code_for_tokens(CALLER, "auth-code")
    _seed_jobs(store, "Engineer", "Designer")

    counts = await engine.bidirectional_sync(CALLER, EntityType.JOBS)

    assert counts == SyncCounts(local_to_remote=2, remote_to_local=1, failed=0)
    rows = store.list_all(EntityType.JOBS)
    assert len(rows) == 3
    assert sorted(row.external_id for row in rows) == ["501", "502", "900"]
    imported = next(row for row in rows if row.external_id == "900")
    assert (imported.title, imported.status) == ("Account Manager", "Open")


class StaticGrantManager:
    async def get_valid_access_token(self, context) -> AccessGrant:
        return AccessGrant(access_token="live-access", api_url="https://api.jobadder.com/v2")


@pytest.mark.asyncio
async def test_empty_create_answer_fails_only_that_record(store) -> None:
    next_job_id = count(700)

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if payload["jobTitle"] == "Designer":
            return httpx.Response(201, content=b"")
        return httpx.Response(201, json={"jobId": next(next_job_id)})

    engine = SyncEngine(
        store=store,
        remote=JobAdderGateway(StaticGrantManager(), transport=httpx.MockTransport(handler)),
        settings=SyncSettings(),
    )
    _seed_jobs(store, "Engineer", "Designer", "Analyst")

    counts = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert counts == SyncCounts(local_to_remote=2, failed=1)
    failed = store.get("job-2")
    assert failed.sync_state is SyncState.SYNC_FAILED
    assert failed.last_error == "jobadder API error: 201"
    assert store.get("job-1").external_id is not None
    assert store.get("job-3").external_id is not None


@pytest.mark.asyncio
async def test_unexpected_error_is_counted_as_failure(engine, store, remote) -> None:
    _seed_jobs(store, "Engineer", "Designer")
    remote.create_errors["job-1"] = [KeyError("jobId")]

    counts = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert counts == SyncCounts(local_to_remote=1, failed=1)
    assert store.get("job-1").sync_state is SyncState.SYNC_FAILED


@pytest.mark.asyncio
async def test_overlapping_pushes_create_each_record_once(engine, store, remote) -> None:
    _seed_jobs(store, "Engineer", "Designer", "Analyst")

    first, second = await asyncio.gather(
        engine.push_unsynced(CALLER, EntityType.JOBS),
        engine.push_unsynced(CALLER, EntityType.JOBS),
    )

    assert sorted(remote.created) == ["job-1", "job-2", "job-3"]
    assert first.pushed + second.pushed == 3
    assert first.failed + second.failed == 0
    assert store.list_unbound(EntityType.JOBS) == []


@pytest.mark.asyncio
async def test_binding_failure_parks_the_record(engine, store, remote, monkeypatch) -> None:
    _seed_jobs(store, "Engineer")

    def failing_bind(record_id, *, external_system, external_id):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "bind", failing_bind)

    first = await engine.push_unsynced(CALLER, EntityType.JOBS)
    second = await engine.push_unsynced(CALLER, EntityType.JOBS)

    assert first == SyncCounts(failed=1)
    assert second == SyncCounts()
    assert remote.created == ["job-1"]
    parked = store.get("job-1")
    assert parked.sync_state is SyncState.BIND_FAILED
    assert "created remotely as 100" in parked.last_error


def test_claim_is_exclusive_until_stale(store) -> None:
    _seed_jobs(store, "Engineer")
    now = datetime.now(timezone.utc)

    assert store.claim("job-1", stale_before=now - timedelta(minutes=15)) is True
    assert store.claim("job-1", stale_before=now - timedelta(minutes=15)) is False
    assert store.get("job-1").sync_state is SyncState.PUSHING
    assert store.claim("job-1", stale_before=now + timedelta(minutes=1)) is True
