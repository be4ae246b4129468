"""
Reconcile local jobs and candidates against one external system of record.

Push creates remote records for unbound local rows; pull imports remote
records whose id is not yet bound locally. Each record is claimed before its
vendor call and its transition is committed on its own, so overlapping runs
never post the same row twice and a batch can stop at any record boundary
without rolling back earlier progress.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import httpx

from recruitsync.clients.remote_systems import RemoteRecord, RemoteSystem
from recruitsync.clients.sqlite_store import SyncRecordStore
from recruitsync.core.config import SyncSettings
from recruitsync.core.errors import PersistenceError, RateLimitedError, RecruitSyncError
from recruitsync.models.records import EntityType, SyncableRecord, SyncState
from recruitsync.services.rate_limits import RetryAfterGate
from recruitsync.services.sessions import SessionContext

logger = logging.getLogger(__name__)


class SyncDirection(str, Enum):
    PUSH = "push"
    PULL = "pull"
    BIDIRECTIONAL = "bidirectional"


@dataclass(frozen=True)
class SyncCounts:
    local_to_remote: int = 0
    remote_to_local: int = 0
    failed: int = 0

    @property
    def pushed(self) -> int:
        return self.local_to_remote

    @property
    def pulled(self) -> int:
        return self.remote_to_local

    def __add__(self, other: "SyncCounts") -> "SyncCounts":
        return SyncCounts(
            local_to_remote=self.local_to_remote + other.local_to_remote,
            remote_to_local=self.remote_to_local + other.remote_to_local,
            failed=self.failed + other.failed,
        )


class SyncEngine:
    """Push/pull one entity type between the local store and ``remote``.

    Vendor calls run on a bounded worker pool. A 429 from the vendor suspends
    every worker through the shared ``RetryAfterGate``; the rate-limited
    record is retried after the wait instead of failing outright.
    """

    def __init__(
        self,
        *,
        store: SyncRecordStore,
        remote: RemoteSystem,
        settings: SyncSettings,
        gate: RetryAfterGate | None = None,
    ) -> None:
        self._store = store
        self._remote = remote
        self._settings = settings
        self._gate = gate or RetryAfterGate()

    @property
    def system_name(self) -> str:
        return self._remote.name

    async def push_unsynced(self, context: SessionContext, entity_type: EntityType) -> SyncCounts:
        records = self._store.list_unbound(entity_type)
        if not records:
            return SyncCounts()

        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def _worker(record: SyncableRecord) -> bool | None:
            async with semaphore:
                return await self._push_one(context, record)

        outcomes = await asyncio.gather(*(_worker(record) for record in records))
        counts = SyncCounts(
            local_to_remote=sum(1 for ok in outcomes if ok is True),
            failed=sum(1 for ok in outcomes if ok is False),
        )
        logger.info(
            "Push batch finished",
            extra={
                "system": self.system_name,
                "entity_type": entity_type.value,
                "pushed": counts.local_to_remote,
                "failed": counts.failed,
                "skipped": sum(1 for ok in outcomes if ok is None),
            },
        )
        return counts

    async def pull_new(self, context: SessionContext, entity_type: EntityType) -> SyncCounts:
        remote_records = await self._list_remote(context, entity_type)
        known = self._store.known_external_ids(entity_type, self.system_name)

        pulled = failed = 0
        for remote in remote_records:
            if remote.external_id in known:
                continue
            try:
                inserted = self._store.insert_remote(self._to_local(remote))
            except PersistenceError:
                logger.exception(
                    "Failed to import remote record",
                    extra={"system": self.system_name, "external_id": remote.external_id},
                )
                failed += 1
                continue
            known.add(remote.external_id)
            if inserted:
                pulled += 1

        logger.info(
            "Pull batch finished",
            extra={
                "system": self.system_name,
                "entity_type": entity_type.value,
                "pulled": pulled,
                "failed": failed,
            },
        )
        return SyncCounts(remote_to_local=pulled, failed=failed)

    async def bidirectional_sync(
        self, context: SessionContext, entity_type: EntityType
    ) -> SyncCounts:
        """Push first, then pull. No conflict resolution between the two sides."""
        pushed = await self.push_unsynced(context, entity_type)
        pulled = await self.pull_new(context, entity_type)
        return pushed + pulled

    async def run(
        self, context: SessionContext, entity_type: EntityType, direction: SyncDirection
    ) -> SyncCounts:
        if direction is SyncDirection.PUSH:
            return await self.push_unsynced(context, entity_type)
        if direction is SyncDirection.PULL:
            return await self.pull_new(context, entity_type)
        return await self.bidirectional_sync(context, entity_type)

    async def _push_one(self, context: SessionContext, record: SyncableRecord) -> bool | None:
        """True when bound, False when failed, None when another run holds the row."""
        stale_before = datetime.now(timezone.utc) - timedelta(
            seconds=self._settings.claim_timeout_seconds
        )
        try:
            claimed = self._store.claim(record.id, stale_before=stale_before)
        except PersistenceError as exc:
            return self._fail(record, exc)
        if not claimed:
            logger.info(
                "Record already claimed by another push",
                extra={"system": self.system_name, "record_id": record.id},
            )
            return None

        waits = 0
        while True:
            await self._gate.wait(self.system_name)
            try:
                external_id = await self._remote.create_record(context, record)
            except RateLimitedError as exc:
                self._gate.suspend(self.system_name, exc.retry_after)
                waits += 1
                if waits > self._settings.max_rate_limit_waits:
                    return self._fail(record, exc)
                continue
            except (RecruitSyncError, httpx.HTTPError) as exc:
                return self._fail(record, exc)
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception(
                    "Unexpected error while pushing record",
                    extra={"system": self.system_name, "record_id": record.id},
                )
                return self._fail(record, exc)
            break

        try:
            self._store.bind(record.id, external_system=self.system_name, external_id=external_id)
        except PersistenceError as exc:
            logger.exception(
                "Remote record created but local binding failed",
                extra={"record_id": record.id, "external_id": external_id},
            )
            self._park(record, external_id, exc)
            return False
        return True

    async def _list_remote(
        self, context: SessionContext, entity_type: EntityType
    ) -> list[RemoteRecord]:
        waits = 0
        while True:
            await self._gate.wait(self.system_name)
            try:
                return await self._remote.list_records(context, entity_type)
            except RateLimitedError as exc:
                self._gate.suspend(self.system_name, exc.retry_after)
                waits += 1
                if waits > self._settings.max_rate_limit_waits:
                    raise

    def _fail(self, record: SyncableRecord, exc: Exception) -> bool:
        logger.warning(
            "Record push failed",
            extra={
                "system": self.system_name,
                "record_id": record.id,
                "reason": type(exc).__name__,
            },
        )
        try:
            self._store.mark_failed(record.id, error=str(exc) or type(exc).__name__)
        except PersistenceError:
            logger.exception("Could not record sync failure", extra={"record_id": record.id})
        return False

    def _park(self, record: SyncableRecord, external_id: str, exc: Exception) -> None:
        # Left claimed if this write fails too; the claim only expires after the timeout.
        try:
            self._store.mark_bind_failed(record.id, external_id=external_id, error=str(exc))
        except PersistenceError:
            logger.exception(
                "Could not record orphaned remote id",
                extra={"record_id": record.id, "external_id": external_id},
            )

    def _to_local(self, remote: RemoteRecord) -> SyncableRecord:
        return SyncableRecord(
            id=uuid.uuid4().hex,
            entity_type=remote.entity_type,
            title=remote.title,
            status=remote.status,
            description=remote.description,
            email=remote.email,
            first_name=remote.first_name,
            last_name=remote.last_name,
            phone=remote.phone,
            external_system=self.system_name,
            external_id=remote.external_id,
            sync_state=SyncState.SYNCED,
        )


__all__ = ["SyncCounts", "SyncDirection", "SyncEngine"]
