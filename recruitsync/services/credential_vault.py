"""
Per-user encrypted credential storage for secondary CRM vendors.

Every public operation writes exactly one ``api_key_<action>`` security event,
whether it succeeds or fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from recruitsync.clients.crm_vendors import VendorProbeClient
from recruitsync.clients.sqlite_store import VaultStore
from recruitsync.core.errors import KeyNotFoundError, PersistenceError, RecruitSyncError
from recruitsync.models.records import VaultEntry
from recruitsync.services.audit import SecurityAuditLog
from recruitsync.services.sessions import SessionContext, require_session
from recruitsync.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultKeySummary:
    service_name: str
    label: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class KeyTestResult:
    service_name: str
    valid: bool
    message: str
    status: Optional[int] = None


def normalize_service_name(service_name: Optional[str]) -> str:
    return (service_name or "").strip().lower()


class CredentialVault:
    def __init__(
        self,
        *,
        store: VaultStore,
        token_cipher: TokenCipherService,
        audit_log: SecurityAuditLog,
        probe_client: VendorProbeClient,
    ) -> None:
        self._store = store
        self._cipher = token_cipher
        self._audit = audit_log
        self._probe = probe_client

    def store(
        self,
        context: Optional[SessionContext],
        service_name: str,
        api_key: str,
        label: Optional[str] = None,
    ) -> str:
        """Encrypt and upsert a key; returns the service name, never the key."""
        service = normalize_service_name(service_name)
        details: Dict[str, Any] = {"service_name": service, "outcome": "failure"}
        try:
            caller = require_session(context)
            if not service or not api_key or not api_key.strip():
                raise ValueError("Service name and API key are required")

            now = datetime.now(timezone.utc)
            self._store.upsert(
                VaultEntry(
                    user_id=caller.user_id,
                    service_name=service,
                    encrypted_key=self._cipher.encrypt(api_key.strip()),
                    label=label,
                    created_at=now,
                    updated_at=now,
                )
            )
            details["outcome"] = "success"
            details["label"] = label
            return service
        except (RecruitSyncError, ValueError) as exc:
            details["error"] = type(exc).__name__
            raise
        finally:
            self._audit.record(context, "api_key_store", details)

    def retrieve(self, context: Optional[SessionContext], service_name: str) -> str:
        """Return the decrypted key to its owner."""
        service = normalize_service_name(service_name)
        details: Dict[str, Any] = {"service_name": service, "outcome": "failure"}
        try:
            api_key = self._load_key(require_session(context), service)
            details["outcome"] = "success"
            return api_key
        except RecruitSyncError as exc:
            details["error"] = type(exc).__name__
            raise
        finally:
            self._audit.record(context, "api_key_retrieve", details)

    def delete(self, context: Optional[SessionContext], service_name: str) -> None:
        """Soft-delete the entry. Deleting a missing entry is not an error."""
        service = normalize_service_name(service_name)
        details: Dict[str, Any] = {"service_name": service, "outcome": "failure"}
        try:
            caller = require_session(context)
            details["removed"] = self._store.deactivate(
                user_id=caller.user_id, service_name=service
            )
            details["outcome"] = "success"
        except RecruitSyncError as exc:
            details["error"] = type(exc).__name__
            raise
        finally:
            self._audit.record(context, "api_key_delete", details)

    def list(self, context: Optional[SessionContext]) -> list[VaultKeySummary]:
        details: Dict[str, Any] = {"outcome": "failure"}
        try:
            caller = require_session(context)
            entries = self._store.list_active(user_id=caller.user_id)
            details.update(outcome="success", count=len(entries))
            return [
                VaultKeySummary(
                    service_name=entry.service_name,
                    label=entry.label,
                    created_at=entry.created_at,
                    updated_at=entry.updated_at,
                )
                for entry in entries
            ]
        except RecruitSyncError as exc:
            details["error"] = type(exc).__name__
            raise
        finally:
            self._audit.record(context, "api_key_list", details)

    async def test(self, context: Optional[SessionContext], service_name: str) -> KeyTestResult:
        """Probe the vendor with the stored key and report validity only."""
        service = normalize_service_name(service_name)
        details: Dict[str, Any] = {"service_name": service, "outcome": "failure"}
        try:
            api_key = self._load_key(require_session(context), service)
            result = await self._probe.probe(service, api_key)
            details.update(outcome="success", valid=result.valid, status=result.status)
            return KeyTestResult(
                service_name=service,
                valid=result.valid,
                message=result.message,
                status=result.status,
            )
        except RecruitSyncError as exc:
            details["error"] = type(exc).__name__
            raise
        finally:
            self._audit.record(context, "api_key_test", details)

    def load_key_for_dispatch(self, context: SessionContext, service_name: str) -> str:
        """Decrypt a key for an in-process caller that writes its own audit event."""
        return self._load_key(context, normalize_service_name(service_name))

    def _load_key(self, context: SessionContext, service: str) -> str:
        entry = self._store.get_active(user_id=context.user_id, service_name=service)
        if entry is None:
            raise KeyNotFoundError(service)
        try:
            return self._cipher.decrypt(entry.encrypted_key)
        except ValueError as exc:
            logger.error(
                "Stored API key could not be decrypted",
                extra={"user_id": context.user_id, "service_name": service},
            )
            raise PersistenceError(f"Stored key for {service} is unreadable") from exc


__all__ = [
    "CredentialVault",
    "KeyTestResult",
    "VaultKeySummary",
    "normalize_service_name",
]
