"""
Request-scoped caller identity and per-user request limits.
"""

from __future__ import annotations

from http import HTTPStatus
from ipaddress import IPv4Network, IPv6Network, ip_address
from typing import Annotated, Awaitable, Callable, Optional, Sequence, Union

from fastapi import Depends, HTTPException, Request

from recruitsync.core.errors import NotAuthenticatedError
from recruitsync.services import FixedWindowRateLimiter, SessionContext, SessionTokenVerifier

from .clients import get_rate_limiter, get_session_verifier
from .config import SettingsDependency

IPNetwork = Union[IPv4Network, IPv6Network]


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _is_trusted(address: str, trusted: Sequence[IPNetwork]) -> bool:
    try:
        parsed = ip_address(address)
    except ValueError:
        return False
    return any(parsed in network for network in trusted)


def resolve_client_ip(
    request: Request, trusted: Sequence[IPNetwork] = ()
) -> Optional[str]:
    """Caller address; forwarding headers count only when the peer is a trusted proxy."""
    peer = request.client.host if request.client else None
    if peer is None or not _is_trusted(peer, trusted):
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        # Nearest hop first; the first address not owned by a trusted proxy is the client.
        for hop in reversed(hops):
            if not _is_trusted(hop, trusted):
                return hop
        if hops:
            return hops[0]
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    return real_ip or peer


async def get_client_ip(request: Request, settings: SettingsDependency) -> Optional[str]:
    return resolve_client_ip(request, settings.security.trusted_proxy_networks)


ClientIp = Annotated[Optional[str], Depends(get_client_ip)]


async def get_optional_session(
    request: Request,
    client_ip: ClientIp,
    verifier: Annotated[SessionTokenVerifier, Depends(get_session_verifier)],
) -> Optional[SessionContext]:
    """Resolve the caller, or None when no valid session accompanies the request."""
    try:
        return verifier.verify(
            _bearer_token(request),
            ip_address=client_ip,
            user_agent=request.headers.get("user-agent"),
        )
    except NotAuthenticatedError:
        return None


async def get_session(
    session: Annotated[Optional[SessionContext], Depends(get_optional_session)],
) -> SessionContext:
    if session is None:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Please sign in first.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


async def get_admin_session(
    session: Annotated[SessionContext, Depends(get_session)],
) -> SessionContext:
    if not session.is_admin:
        raise HTTPException(status_code=HTTPStatus.FORBIDDEN, detail="Admin access required.")
    return session


def rate_limit(limit_type: str) -> Callable[..., Awaitable[None]]:
    """Build a dependency that counts one request against ``limit_type``."""

    async def _enforce(
        client_ip: ClientIp,
        session: Annotated[Optional[SessionContext], Depends(get_optional_session)],
        limiter: Annotated[FixedWindowRateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        identifier = session.user_id if session else (client_ip or "anonymous")
        decision = limiter.hit(limit_type, identifier)
        if not decision.allowed:
            raise HTTPException(
                status_code=HTTPStatus.TOO_MANY_REQUESTS,
                detail="Rate limit exceeded. Please wait before making another request.",
                headers={
                    "Retry-After": str(max(int(decision.reset_in_seconds), 1)),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": str(decision.remaining),
                },
            )

    return _enforce


__all__ = [
    "ClientIp",
    "get_admin_session",
    "get_client_ip",
    "get_optional_session",
    "get_session",
    "rate_limit",
    "resolve_client_ip",
]
