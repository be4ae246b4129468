"""
Error taxonomy shared by the identity, vault, proxy and sync layers.
"""

from __future__ import annotations

from typing import Any


class RecruitSyncError(Exception):
    """Base class for all domain errors raised by this package."""


class NotAuthenticatedError(RecruitSyncError):
    """Raised when the caller has no valid local session."""


class NotConnectedError(RecruitSyncError):
    """Raised when no stored OAuth token exists for the integration."""


class ExchangeFailedError(RecruitSyncError):
    """Raised when the vendor rejects an authorization code or credentials."""


class KeyNotFoundError(RecruitSyncError):
    """Raised when no active vault entry exists for a service."""

    def __init__(self, service_name: str) -> None:
        super().__init__(f"API key not found for {service_name}")
        self.service_name = service_name


class UnsupportedServiceError(RecruitSyncError, ValueError):
    """Raised when a service name is outside the supported vendor set."""


class RateLimitedError(RecruitSyncError):
    """Raised by remote clients when a vendor answers HTTP 429."""

    def __init__(self, vendor: str, retry_after: float) -> None:
        super().__init__(f"{vendor} rate limit exceeded; retry after {retry_after}s")
        self.vendor = vendor
        self.retry_after = retry_after


class UpstreamServiceError(RecruitSyncError):
    """Raised when a vendor answers with any other non-2xx status."""

    def __init__(self, vendor: str, status_code: int, body: Any = None) -> None:
        super().__init__(f"{vendor} API error: {status_code}")
        self.vendor = vendor
        self.status_code = status_code
        self.body = body


class PersistenceError(RecruitSyncError):
    """Raised when a local datastore write fails."""


__all__ = [
    "ExchangeFailedError",
    "KeyNotFoundError",
    "NotAuthenticatedError",
    "NotConnectedError",
    "PersistenceError",
    "RateLimitedError",
    "RecruitSyncError",
    "UnsupportedServiceError",
    "UpstreamServiceError",
]
