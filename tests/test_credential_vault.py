from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from recruitsync.clients.crm_vendors import VendorProbeClient
from recruitsync.clients.sqlite_store import SecurityEventStore, SQLiteDatabase, VaultStore
from recruitsync.core.errors import KeyNotFoundError, NotAuthenticatedError
from recruitsync.services.audit import SecurityAuditLog
from recruitsync.services.credential_vault import CredentialVault
from recruitsync.services.sessions import SessionContext
from recruitsync.services.token_cipher import TokenCipherService

ALICE = SessionContext(user_id="alice")
BOB = SessionContext(user_id="bob")


class RecordingTransport(httpx.AsyncBaseTransport):
    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json={"results": []})


@pytest.fixture()
def database(tmp_path) -> SQLiteDatabase:
    return SQLiteDatabase(str(tmp_path / "vault.db"))


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def vault(database, transport) -> CredentialVault:
    return CredentialVault(
        store=VaultStore(database),
        token_cipher=TokenCipherService(secret="vault-secret"),
        audit_log=SecurityAuditLog(SecurityEventStore(database)),
        probe_client=VendorProbeClient(transport=transport),
    )


def _event_types(database) -> list[str]:
    return [event.event_type for event in SecurityEventStore(database).list_for_user(user_id="alice")]


def test_store_then_retrieve_roundtrip(vault, database) -> None:
    assert vault.store(ALICE, " HubSpot ", "pat-na1-secret") == "hubspot"
    assert vault.retrieve(ALICE, "hubspot") == "pat-na1-secret"

    raw = VaultStore(database).get_active(user_id="alice", service_name="hubspot")
    assert raw.encrypted_key != "pat-na1-secret"


def test_store_twice_keeps_one_entry(vault, database) -> None:
    vault.store(ALICE, "hubspot", "first")
    vault.store(ALICE, "hubspot", "second", label="prod")

    with database.connect() as conn:
        rows = conn.execute(
            "SELECT * FROM vault_entries WHERE user_id = ? AND service_name = ?",
            ("alice", "hubspot"),
        ).fetchall()
    assert len(rows) == 1
    assert vault.retrieve(ALICE, "hubspot") == "second"
    assert [item.label for item in vault.list(ALICE)] == ["prod"]


def test_keys_are_scoped_per_user(vault) -> None:
    vault.store(ALICE, "hubspot", "alice-key")

    with pytest.raises(KeyNotFoundError):
        vault.retrieve(BOB, "hubspot")


def test_delete_then_retrieve_is_not_found(vault) -> None:
    vault.store(ALICE, "pipedrive", "pd-key")
    vault.delete(ALICE, "pipedrive")
    vault.delete(ALICE, "pipedrive")

    with pytest.raises(KeyNotFoundError):
        vault.retrieve(ALICE, "pipedrive")


def test_list_exposes_no_key_material(vault) -> None:
    vault.store(ALICE, "hubspot", "secret-1")
    vault.store(ALICE, "zoho", "secret-2")

    summaries = vault.list(ALICE)

    assert sorted(item.service_name for item in summaries) == ["hubspot", "zoho"]
    for item in summaries:
        assert "secret" not in repr(item)


def test_every_operation_writes_one_event(vault, database) -> None:
    vault.store(ALICE, "hubspot", "secret-1")
    vault.retrieve(ALICE, "hubspot")
    with pytest.raises(KeyNotFoundError):
        vault.retrieve(ALICE, "apollo")
    vault.list(ALICE)
    vault.delete(ALICE, "hubspot")

    assert _event_types(database) == [
        "api_key_store",
        "api_key_retrieve",
        "api_key_retrieve",
        "api_key_list",
        "api_key_delete",
    ]
    details = [event.event_details for event in SecurityEventStore(database).list_for_user(user_id="alice")]
    assert details[2]["outcome"] == "failure"
    assert all("secret-1" not in str(detail) for detail in details)


def test_unauthenticated_calls_fail_and_are_audited(vault, database) -> None:
    with pytest.raises(NotAuthenticatedError):
        vault.store(None, "hubspot", "secret")
    with pytest.raises(NotAuthenticatedError):
        vault.list(None)

    events = SecurityEventStore(database).list_recent(limit=10)
    assert [event.event_type for event in events] == ["api_key_list", "api_key_store"]
    assert all(event.user_id is None for event in events)


@pytest.mark.parametrize("service_name, api_key", [("", "key"), ("hubspot", "   ")])
def test_store_requires_service_and_key(vault, database, service_name, api_key) -> None:
    with pytest.raises(ValueError):
        vault.store(ALICE, service_name, api_key)

    assert _event_types(database) == ["api_key_store"]


@pytest.mark.asyncio
async def test_hubspot_probe_treats_rate_limit_as_valid(vault, transport) -> None:
    vault.store(ALICE, "hubspot", "pat-key")
    transport.status = 429

    result = await vault.test(ALICE, "hubspot")

    assert result.valid is True
    assert result.status == 429
    request = transport.requests[0]
    assert request.url.host == "api.hubapi.com"
    assert request.headers["Authorization"] == "Bearer pat-key"


@pytest.mark.asyncio
async def test_hubspot_probe_rejects_unauthorized_key(vault, transport) -> None:
    vault.store(ALICE, "hubspot", "pat-key")
    transport.status = 401

    result = await vault.test(ALICE, "hubspot")

    assert result.valid is False


@pytest.mark.asyncio
async def test_apollo_probe_sends_api_key_header(vault, transport) -> None:
    vault.store(ALICE, "apollo", "apollo-key")

    await vault.test(ALICE, "apollo")

    assert transport.requests[0].headers["X-Api-Key"] == "apollo-key"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "api_key, valid",
    [("00D5g000004!AQ8AQNkqd3fS2xAB", True), ("too-short", False)],
)
async def test_salesforce_uses_shape_check(vault, transport, api_key, valid) -> None:
    vault.store(ALICE, "salesforce", api_key)

    result = await vault.test(ALICE, "salesforce")

    assert result.valid is valid
    assert transport.requests == []


@pytest.mark.asyncio
async def test_unknown_service_passes_format_check_only(vault, transport, database) -> None:
    vault.store(ALICE, "greenhouse", "gh-key")

    result = await vault.test(ALICE, "greenhouse")

    assert result.valid is True
    assert "not implemented" in result.message
    assert transport.requests == []
    assert _event_types(database)[-1] == "api_key_test"


@pytest.mark.asyncio
async def test_missing_key_test_raises_and_audits(vault, database) -> None:
    with pytest.raises(KeyNotFoundError):
        await vault.test(ALICE, "hubspot")

    assert _event_types(database) == ["api_key_test"]
