"""
Authorization-code lifecycle for the primary ATS integration.

Tokens are created, refreshed and deleted here, server-side only. Callers
learn whether a user is connected, never what the token is; outbound ATS
calls obtain the token per request through ``get_valid_access_token``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from recruitsync.clients.jobadder_auth import (
    ClientIdProvider,
    JobAdderOAuthClient,
    TokenGrant,
)
from recruitsync.clients.sqlite_store import TokenStore
from recruitsync.core.config import JobAdderSettings
from recruitsync.core.errors import (
    ExchangeFailedError,
    NotConnectedError,
    RecruitSyncError,
    UpstreamServiceError,
)
from recruitsync.models.records import StoredToken
from recruitsync.services.audit import SecurityAuditLog
from recruitsync.services.sessions import (
    SessionContext,
    SignedPayloadCodec,
    require_session,
)
from recruitsync.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

INTEGRATION = "jobadder"


@dataclass(frozen=True)
class ConnectionConfirmation:
    """Redacted result of a successful exchange."""

    status: str
    expires_at: datetime
    instance: Optional[str] = None
    account: Optional[str] = None


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    expires_at: Optional[datetime] = None
    instance: Optional[str] = None
    account: Optional[str] = None


@dataclass(frozen=True)
class AccessGrant:
    """Server-side only: what an outbound ATS call needs."""

    access_token: str
    api_url: str


@dataclass(frozen=True)
class RefreshSummary:
    refreshed: int
    disconnected: int
    deferred: int = 0


class OAuthSessionManager:
    """Stateless per-call manager; every method receives the caller context."""

    _REFRESH_WINDOW = timedelta(minutes=5)

    def __init__(
        self,
        *,
        token_store: TokenStore,
        oauth_client: JobAdderOAuthClient,
        client_ids: ClientIdProvider,
        settings: JobAdderSettings,
        token_cipher: TokenCipherService,
        audit_log: SecurityAuditLog,
        state_codec: SignedPayloadCodec,
        state_ttl_seconds: int = 900,
    ) -> None:
        self._tokens = token_store
        self._oauth = oauth_client
        self._client_ids = client_ids
        self._settings = settings
        self._cipher = token_cipher
        self._audit = audit_log
        self._state_codec = state_codec
        self._state_ttl = timedelta(seconds=state_ttl_seconds)
        self._refresh_locks: Dict[str, asyncio.Lock] = {}

    async def get_authorization_url(self, context: Optional[SessionContext] = None) -> str:
        """Return the vendor consent URL.

        When the server-side client id lookup fails the hard-coded fallback
        identifier is used, so the caller always receives a usable URL.
        """
        try:
            client_id = await self._client_ids.get_client_id()
        except (LookupError, OSError, httpx.HTTPError) as exc:
            logger.warning(
                "Client id lookup failed; using fallback identifier",
                extra={"reason": type(exc).__name__},
            )
            client_id = self._settings.fallback_client_id

        state = None
        if context is not None:
            state = self._state_codec.encode(
                {
                    "sub": context.user_id,
                    "nonce": uuid.uuid4().hex,
                    "issued_at": datetime.now(timezone.utc).isoformat(),
                }
            )
        return self._oauth.build_authorization_url(client_id=client_id, state=state)

    async def exchange_code_for_tokens(
        self,
        context: Optional[SessionContext],
        code: str,
        state: Optional[str] = None,
    ) -> ConnectionConfirmation:
        """Exchange ``code`` server-side and persist the token row.

        All-or-nothing: nothing is stored unless the vendor answered with a
        complete grant. Exactly one audit event is written per call.
        """
        details: Dict[str, Any] = {"integration": INTEGRATION, "outcome": "failure"}
        try:
            caller = require_session(context)
            if not code or not code.strip():
                raise ExchangeFailedError(
                    "No authorization code provided. Please complete the OAuth flow."
                )
            if state is not None:
                self._verify_state(state, caller.user_id)

            grant = await self._oauth.exchange_authorization_code(code.strip())
            now = datetime.now(timezone.utc)
            token = self._to_stored_token(caller.user_id, grant, now=now)
            self._tokens.upsert(token)

            details.update(outcome="success", instance=grant.instance, account=grant.account)
            logger.info("OAuth exchange completed", extra={"user_id": caller.user_id})
            return ConnectionConfirmation(
                status="connected",
                expires_at=token.expires_at,
                instance=grant.instance,
                account=grant.account,
            )
        except RecruitSyncError as exc:
            details["error"] = type(exc).__name__
            raise
        finally:
            self._audit.record(context, "oauth_token_exchange", details)

    async def is_authenticated(self, context: Optional[SessionContext]) -> bool:
        """True iff the caller has ever connected; expiry is not inspected."""
        if context is None:
            return False
        return self._tokens.get(user_id=context.user_id, integration=INTEGRATION) is not None

    async def connection_status(self, context: SessionContext) -> ConnectionStatus:
        token = self._tokens.get(user_id=context.user_id, integration=INTEGRATION)
        if token is None:
            return ConnectionStatus(connected=False)
        return ConnectionStatus(
            connected=True,
            expires_at=token.expires_at,
            instance=token.instance,
            account=token.account,
        )

    async def clear_tokens(self, context: Optional[SessionContext]) -> None:
        """Delete the caller's token row. Safe to call repeatedly."""
        caller = require_session(context)
        removed = self._tokens.delete(user_id=caller.user_id, integration=INTEGRATION)
        self._audit.record(
            caller, "oauth_disconnect", {"integration": INTEGRATION, "removed": removed}
        )

    async def get_valid_access_token(self, context: SessionContext) -> AccessGrant:
        """Return a fresh access token for outbound calls, refreshing near expiry."""
        token = self._tokens.get(user_id=context.user_id, integration=INTEGRATION)
        if token is None:
            raise NotConnectedError("JobAdder account not connected.")

        if self._is_fresh(token):
            return self._to_access_grant(token)

        lock = self._refresh_locks.setdefault(context.user_id, asyncio.Lock())
        async with lock:
            token = self._tokens.get(user_id=context.user_id, integration=INTEGRATION)
            if token is None:
                raise NotConnectedError("JobAdder account not connected.")
            if self._is_fresh(token):
                return self._to_access_grant(token)
            try:
                token = await self._refresh(token)
            except UpstreamServiceError:
                if self._is_expired(token):
                    raise
                logger.warning(
                    "Token endpoint unavailable; using current access token",
                    extra={"user_id": context.user_id},
                )
        return self._to_access_grant(token)

    async def refresh_expiring(self, *, within: timedelta) -> RefreshSummary:
        """Refresh every token expiring inside ``within``; used by the sweep.

        Tokens whose refresh hit an outage are kept and counted as deferred.
        """
        cutoff = datetime.now(timezone.utc) + within
        refreshed = disconnected = deferred = 0
        for token in self._tokens.list_expiring(integration=INTEGRATION, before=cutoff):
            try:
                await self._refresh(token)
            except NotConnectedError:
                disconnected += 1
            except UpstreamServiceError:
                logger.warning(
                    "Token refresh deferred; token endpoint unavailable",
                    extra={"user_id": token.user_id},
                )
                deferred += 1
            else:
                refreshed += 1
        return RefreshSummary(refreshed=refreshed, disconnected=disconnected, deferred=deferred)

    async def _refresh(self, token: StoredToken) -> StoredToken:
        try:
            refresh_token = self._cipher.decrypt(token.refresh_token_encrypted)
        except ValueError as exc:
            raise NotConnectedError(
                "Stored token cannot be decrypted; re-authentication required."
            ) from exc

        try:
            grant = await self._oauth.refresh_token(refresh_token)
        except ExchangeFailedError as exc:
            current = self._tokens.get(user_id=token.user_id, integration=INTEGRATION)
            if current is not None and self._is_fresh(current):
                # Another worker refreshed the row while this attempt was in flight.
                return current
            logger.warning(
                "Token refresh failed; clearing stored token",
                extra={"user_id": token.user_id},
            )
            self._tokens.delete(user_id=token.user_id, integration=INTEGRATION)
            raise NotConnectedError("JobAdder session expired; please reconnect.") from exc

        now = datetime.now(timezone.utc)
        updated = self._to_stored_token(token.user_id, grant, now=now).model_copy(
            update={"created_at": token.created_at}
        )
        self._tokens.upsert(updated)
        logger.info("Access token refreshed", extra={"user_id": token.user_id})
        return updated

    def _verify_state(self, state: str, user_id: str) -> None:
        try:
            payload = self._state_codec.decode(state)
        except ValueError as exc:
            raise ExchangeFailedError("Invalid OAuth state signature.") from exc

        if payload.get("sub") != user_id:
            raise ExchangeFailedError("OAuth state was issued to a different user.")
        issued_at_raw = payload.get("issued_at")
        try:
            issued_at = datetime.fromisoformat(issued_at_raw)
        except (TypeError, ValueError) as exc:
            raise ExchangeFailedError("Invalid issued_at in state token.") from exc
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - issued_at > self._state_ttl:
            raise ExchangeFailedError("OAuth state token has expired.")

    def _is_fresh(self, token: StoredToken) -> bool:
        expires_at = token.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at > datetime.now(timezone.utc) + self._REFRESH_WINDOW

    @staticmethod
    def _is_expired(token: StoredToken) -> bool:
        expires_at = token.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc)

    def _to_access_grant(self, token: StoredToken) -> AccessGrant:
        try:
            access_token = self._cipher.decrypt(token.access_token_encrypted)
        except ValueError as exc:
            raise NotConnectedError(
                "Stored token cannot be decrypted; re-authentication required."
            ) from exc
        return AccessGrant(access_token=access_token, api_url=token.api_url)

    def _to_stored_token(self, user_id: str, grant: TokenGrant, *, now: datetime) -> StoredToken:
        return StoredToken(
            user_id=user_id,
            integration=INTEGRATION,
            access_token_encrypted=self._cipher.encrypt(grant.access_token),
            refresh_token_encrypted=self._cipher.encrypt(grant.refresh_token),
            expires_at=now + timedelta(seconds=grant.expires_in),
            api_url=grant.api_url,
            instance=grant.instance,
            account=grant.account,
            scope=grant.scope,
            created_at=now,
            updated_at=now,
        )


__all__ = [
    "AccessGrant",
    "ConnectionConfirmation",
    "ConnectionStatus",
    "INTEGRATION",
    "OAuthSessionManager",
    "RefreshSummary",
]
