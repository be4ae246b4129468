"""SQLite-backed relational storage for tokens, vault entries, audit events and sync records."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from recruitsync.core.errors import PersistenceError
from recruitsync.models.records import (
    EntityType,
    SecurityEvent,
    StoredToken,
    SyncState,
    SyncableRecord,
    VaultEntry,
)

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS oauth_tokens (
        user_id TEXT NOT NULL,
        integration TEXT NOT NULL,
        access_token_encrypted TEXT NOT NULL,
        refresh_token_encrypted TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        api_url TEXT NOT NULL,
        instance TEXT,
        account TEXT,
        scope TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, integration)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vault_entries (
        user_id TEXT NOT NULL,
        service_name TEXT NOT NULL,
        encrypted_key TEXT NOT NULL,
        label TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, service_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS security_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT,
        event_type TEXT NOT NULL,
        event_details TEXT NOT NULL,
        ip_address TEXT,
        user_agent TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_records (
        id TEXT PRIMARY KEY,
        entity_type TEXT NOT NULL,
        title TEXT NOT NULL,
        status TEXT,
        description TEXT,
        email TEXT,
        first_name TEXT,
        last_name TEXT,
        phone TEXT,
        external_system TEXT,
        external_id TEXT,
        sync_state TEXT NOT NULL,
        last_error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (entity_type, external_system, external_id)
    )
    """,
)

_RECORD_COLUMNS = (
    "id",
    "entity_type",
    "title",
    "status",
    "description",
    "email",
    "first_name",
    "last_name",
    "phone",
    "external_system",
    "external_id",
    "sync_state",
    "last_error",
    "created_at",
    "updated_at",
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class SQLiteDatabase:
    """Owns the database file and hands out short-lived connections."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def write(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run a write, translating driver failures into ``PersistenceError``."""
        try:
            with self.connect() as conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Datastore write failed", extra={"operation": operation})
            raise PersistenceError(f"Failed to {operation}: {exc}") from exc

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)


class TokenStore:
    """OAuth token rows keyed by (user_id, integration)."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def upsert(self, token: StoredToken) -> None:
        with self._db.write("store OAuth token") as conn:
            conn.execute(
                """
                INSERT INTO oauth_tokens (
                    user_id, integration, access_token_encrypted,
                    refresh_token_encrypted, expires_at, api_url, instance,
                    account, scope, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, integration) DO UPDATE SET
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = excluded.refresh_token_encrypted,
                    expires_at = excluded.expires_at,
                    api_url = excluded.api_url,
                    instance = excluded.instance,
                    account = excluded.account,
                    scope = excluded.scope,
                    updated_at = excluded.updated_at
                """,
                (
                    token.user_id,
                    token.integration,
                    token.access_token_encrypted,
                    token.refresh_token_encrypted,
                    _iso(token.expires_at),
                    token.api_url,
                    token.instance,
                    token.account,
                    token.scope,
                    _iso(token.created_at),
                    _iso(token.updated_at),
                ),
            )

    def get(self, *, user_id: str, integration: str) -> Optional[StoredToken]:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM oauth_tokens WHERE user_id = ? AND integration = ?",
                (user_id, integration),
            ).fetchone()
        if not row:
            return None
        return StoredToken(**dict(row))

    def delete(self, *, user_id: str, integration: str) -> bool:
        with self._db.write("delete OAuth token") as conn:
            cursor = conn.execute(
                "DELETE FROM oauth_tokens WHERE user_id = ? AND integration = ?",
                (user_id, integration),
            )
            deleted = cursor.rowcount > 0
        return deleted

    def list_expiring(self, *, integration: str, before: datetime) -> list[StoredToken]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM oauth_tokens
                WHERE integration = ? AND expires_at <= ?
                ORDER BY expires_at
                """,
                (integration, _iso(before)),
            ).fetchall()
        return [StoredToken(**dict(row)) for row in rows]

    def list_user_ids(self, *, integration: str) -> list[str]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT user_id FROM oauth_tokens WHERE integration = ? ORDER BY user_id",
                (integration,),
            ).fetchall()
        return [row["user_id"] for row in rows]


class VaultStore:
    """Encrypted credential rows unique on (user_id, service_name)."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def upsert(self, entry: VaultEntry) -> None:
        with self._db.write("store API key") as conn:
            conn.execute(
                """
                INSERT INTO vault_entries (
                    user_id, service_name, encrypted_key, label, is_active,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(user_id, service_name) DO UPDATE SET
                    encrypted_key = excluded.encrypted_key,
                    label = excluded.label,
                    is_active = 1,
                    updated_at = excluded.updated_at
                """,
                (
                    entry.user_id,
                    entry.service_name,
                    entry.encrypted_key,
                    entry.label,
                    _iso(entry.created_at),
                    _iso(entry.updated_at),
                ),
            )

    def get_active(self, *, user_id: str, service_name: str) -> Optional[VaultEntry]:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM vault_entries
                WHERE user_id = ? AND service_name = ? AND is_active = 1
                """,
                (user_id, service_name),
            ).fetchone()
        if not row:
            return None
        return VaultEntry(**dict(row))

    def deactivate(self, *, user_id: str, service_name: str) -> bool:
        with self._db.write("delete API key") as conn:
            cursor = conn.execute(
                """
                UPDATE vault_entries SET is_active = 0, updated_at = ?
                WHERE user_id = ? AND service_name = ? AND is_active = 1
                """,
                (_now_iso(), user_id, service_name),
            )
            deactivated = cursor.rowcount > 0
        return deactivated

    def list_active(self, *, user_id: str) -> list[VaultEntry]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM vault_entries
                WHERE user_id = ? AND is_active = 1
                ORDER BY created_at DESC
                """,
                (user_id,),
            ).fetchall()
        return [VaultEntry(**dict(row)) for row in rows]


class SecurityEventStore:
    """Append-only audit table; rows are never updated or deleted."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def append(self, event: SecurityEvent) -> SecurityEvent:
        with self._db.write("record security event") as conn:
            cursor = conn.execute(
                """
                INSERT INTO security_events (
                    user_id, event_type, event_details, ip_address, user_agent, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.user_id,
                    event.event_type,
                    json.dumps(event.event_details, sort_keys=True),
                    event.ip_address,
                    event.user_agent,
                    _iso(event.created_at),
                ),
            )
            event_id = cursor.lastrowid
        return event.model_copy(update={"id": event_id})

    def list_recent(self, *, limit: int = 100) -> list[SecurityEvent]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM security_events ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._to_event(row) for row in rows]

    def list_for_user(self, *, user_id: str) -> list[SecurityEvent]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM security_events WHERE user_id = ? ORDER BY created_at, id",
                (user_id,),
            ).fetchall()
        return [self._to_event(row) for row in rows]

    @staticmethod
    def _to_event(row: sqlite3.Row) -> SecurityEvent:
        data = dict(row)
        data["event_details"] = json.loads(data["event_details"])
        return SecurityEvent(**data)


class SyncRecordStore:
    """Local job and candidate rows together with their remote binding."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def insert_local(self, record: SyncableRecord) -> SyncableRecord:
        with self._db.write("insert local record") as conn:
            self._insert(conn, record)
        return record

    def insert_remote(self, record: SyncableRecord) -> bool:
        """Insert a row already bound to a remote id; False when that id is taken."""
        if record.external_system is None or record.external_id is None:
            raise ValueError("Remote records must carry external_system and external_id")
        with self._db.write("import remote record") as conn:
            cursor = self._insert(conn, record, ignore_bound_conflict=True)
            inserted = cursor.rowcount > 0
        return inserted

    def get(self, record_id: str) -> Optional[SyncableRecord]:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM sync_records WHERE id = ?", (record_id,)
            ).fetchone()
        if not row:
            return None
        return SyncableRecord(**dict(row))

    def list_all(self, entity_type: EntityType) -> list[SyncableRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_records WHERE entity_type = ? ORDER BY created_at, id",
                (entity_type.value,),
            ).fetchall()
        return [SyncableRecord(**dict(row)) for row in rows]

    def list_unbound(self, entity_type: EntityType) -> list[SyncableRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM sync_records
                WHERE entity_type = ? AND external_id IS NULL AND sync_state != ?
                ORDER BY created_at, id
                """,
                (entity_type.value, SyncState.BIND_FAILED.value),
            ).fetchall()
        return [SyncableRecord(**dict(row)) for row in rows]

    def claim(self, record_id: str, *, stale_before: datetime) -> bool:
        """Mark an unbound row as being pushed; False when another push holds it."""
        with self._db.write("claim record for push") as conn:
            cursor = conn.execute(
                """
                UPDATE sync_records SET sync_state = ?, updated_at = ?
                WHERE id = ? AND external_id IS NULL
                  AND (
                    sync_state IN (?, ?)
                    OR (sync_state = ? AND updated_at < ?)
                  )
                """,
                (
                    SyncState.PUSHING.value,
                    _now_iso(),
                    record_id,
                    SyncState.UNSYNCED.value,
                    SyncState.SYNC_FAILED.value,
                    SyncState.PUSHING.value,
                    _iso(stale_before),
                ),
            )
            claimed = cursor.rowcount > 0
        return claimed

    def known_external_ids(
        self, entity_type: EntityType, external_system: str
    ) -> set[str]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT external_id FROM sync_records
                WHERE entity_type = ? AND external_system = ? AND external_id IS NOT NULL
                """,
                (entity_type.value, external_system),
            ).fetchall()
        return {row["external_id"] for row in rows}

    def bind(self, record_id: str, *, external_system: str, external_id: str) -> None:
        with self._db.write("bind record to remote id") as conn:
            conn.execute(
                """
                UPDATE sync_records
                SET external_system = ?, external_id = ?, sync_state = ?,
                    last_error = NULL, updated_at = ?
                WHERE id = ? AND external_id IS NULL
                """,
                (
                    external_system,
                    external_id,
                    SyncState.SYNCED.value,
                    _now_iso(),
                    record_id,
                ),
            )

    def mark_failed(self, record_id: str, *, error: str) -> None:
        with self._db.write("mark record sync failure") as conn:
            conn.execute(
                """
                UPDATE sync_records SET sync_state = ?, last_error = ?, updated_at = ?
                WHERE id = ? AND external_id IS NULL
                """,
                (SyncState.SYNC_FAILED.value, error[:500], _now_iso(), record_id),
            )

    def mark_bind_failed(self, record_id: str, *, external_id: str, error: str) -> None:
        """Park a row whose remote copy exists but could not be bound locally."""
        message = f"created remotely as {external_id}; local binding failed: {error}"
        with self._db.write("mark record binding failure") as conn:
            conn.execute(
                """
                UPDATE sync_records SET sync_state = ?, last_error = ?, updated_at = ?
                WHERE id = ? AND external_id IS NULL
                """,
                (SyncState.BIND_FAILED.value, message[:500], _now_iso(), record_id),
            )

    @staticmethod
    def _insert(
        conn: sqlite3.Connection,
        record: SyncableRecord,
        *,
        ignore_bound_conflict: bool = False,
    ) -> sqlite3.Cursor:
        values: Dict[str, Any] = record.model_dump()
        values["entity_type"] = record.entity_type.value
        values["sync_state"] = record.sync_state.value
        values["created_at"] = _iso(record.created_at)
        values["updated_at"] = _iso(record.updated_at)
        placeholders = ", ".join("?" for _ in _RECORD_COLUMNS)
        conflict = (
            " ON CONFLICT(entity_type, external_system, external_id) DO NOTHING"
            if ignore_bound_conflict
            else ""
        )
        return conn.execute(
            f"INSERT INTO sync_records ({', '.join(_RECORD_COLUMNS)}) "
            f"VALUES ({placeholders}){conflict}",
            tuple(values[column] for column in _RECORD_COLUMNS),
        )


__all__ = [
    "SQLiteDatabase",
    "SecurityEventStore",
    "SyncRecordStore",
    "TokenStore",
    "VaultStore",
]
