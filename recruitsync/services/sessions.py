"""
Signed session tokens and the per-request caller context.

The identity backend issues HMAC-signed bearer tokens; every service in this
package receives the verified ``SessionContext`` explicitly instead of
consulting process-wide state.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict, Optional

from recruitsync.core.errors import NotAuthenticatedError

ADMIN_ROLE = "admin"


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Who is calling, and from where."""

    user_id: str
    role: str = "user"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class SignedPayloadCodec:
    """Encode and decode JSON payloads guarded by an HMAC-SHA256 signature."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Malformed signed payload.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise ValueError("Invalid payload signature.")
        return json.loads(serialized)


class SessionTokenVerifier:
    """Issue and verify bearer session tokens."""

    def __init__(self, codec: SignedPayloadCodec) -> None:
        self._codec = codec

    def issue(self, *, user_id: str, role: str = "user", ttl_seconds: int = 3600) -> str:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        return self._codec.encode(
            {"sub": user_id, "role": role, "exp": int(expires_at.timestamp())}
        )

    def verify(
        self,
        token: Optional[str],
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SessionContext:
        if not token:
            raise NotAuthenticatedError("Please sign in first.")
        try:
            claims = self._codec.decode(token)
        except ValueError as exc:
            raise NotAuthenticatedError("Invalid session token.") from exc

        user_id = claims.get("sub")
        expires = claims.get("exp")
        if not user_id or not isinstance(expires, int):
            raise NotAuthenticatedError("Session token is missing required claims.")
        if datetime.now(timezone.utc).timestamp() >= expires:
            raise NotAuthenticatedError("Session has expired.")

        return SessionContext(
            user_id=str(user_id),
            role=str(claims.get("role") or "user"),
            ip_address=ip_address,
            user_agent=user_agent,
        )


def require_session(context: Optional[SessionContext]) -> SessionContext:
    """Return ``context`` or fail with ``NotAuthenticatedError``."""
    if context is None:
        raise NotAuthenticatedError("Please sign in first.")
    return context


__all__ = [
    "ADMIN_ROLE",
    "SessionContext",
    "SessionTokenVerifier",
    "SignedPayloadCodec",
    "require_session",
]
