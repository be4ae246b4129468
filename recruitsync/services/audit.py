"""Append-only security audit trail for identity-sensitive operations."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from recruitsync.clients.sqlite_store import SecurityEventStore
from recruitsync.models.records import SecurityEvent
from recruitsync.services.sessions import SessionContext

logger = logging.getLogger(__name__)

_SENSITIVE_KEY_PATTERNS = ("api_key", "authorization", "token", "secret", "password")
_REDACTED_VALUE = "[REDACTED]"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_details(value: Any) -> Any:
    """Recursively scrub credential-bearing fields from event details."""
    if isinstance(value, dict):
        sanitized: Dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            key = str(raw_key)
            if _is_sensitive_key(key):
                sanitized[key] = _REDACTED_VALUE
            else:
                sanitized[key] = sanitize_details(raw_value)
        return sanitized
    if isinstance(value, list):
        return [sanitize_details(item) for item in value]
    return value


def strip_query(endpoint: str) -> str:
    """Reduce a URL to scheme, host, port and path.

    Userinfo, query string and fragment are never kept.
    """
    try:
        parts = urlsplit(endpoint)
        port = parts.port
    except ValueError:
        return ""
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if port is not None:
        host = f"{host}:{port}"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


class SecurityAuditLog:
    """Write and read ``SecurityEvent`` rows."""

    def __init__(self, store: SecurityEventStore) -> None:
        self._store = store

    def record(
        self,
        context: Optional[SessionContext],
        event_type: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        event = SecurityEvent(
            user_id=context.user_id if context else None,
            event_type=event_type,
            event_details=sanitize_details(details or {}),
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
        )
        stored = self._store.append(event)
        logger.info(
            "Security event recorded",
            extra={"event_type": event_type, "event_id": stored.id},
        )
        return stored

    def list_events(self, *, limit: int = 100) -> list[SecurityEvent]:
        """Return the most recent events, newest first. Callers enforce admin access."""
        return self._store.list_recent(limit=limit)


__all__ = ["SecurityAuditLog", "sanitize_details", "strip_query"]
