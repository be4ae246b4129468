"""
Read-path job listings with a labelled demonstration fallback.

The source is chosen once, when the catalogue is built. Only listings go
through here; push and create paths always talk to the live vendor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

import httpx

from recruitsync.clients.remote_systems import RemoteRecord
from recruitsync.core.errors import UpstreamServiceError
from recruitsync.models.records import EntityType
from recruitsync.services.sessions import SessionContext

logger = logging.getLogger(__name__)

DEMO_NOTICE = "Using demo data - API unavailable"


class DataSource(str, Enum):
    LIVE = "live"
    DEMO = "demo"


@dataclass(frozen=True)
class JobListing:
    items: list[RemoteRecord]
    source: DataSource
    notice: Optional[str] = None


class JobSource(Protocol):
    async def list_jobs(
        self, context: SessionContext, search: Optional[str]
    ) -> list[RemoteRecord]: ...


class LiveJobSource:
    """Jobs straight from the connected ATS."""

    def __init__(self, gateway) -> None:
        self._gateway = gateway

    async def list_jobs(self, context: SessionContext, search: Optional[str]) -> list[RemoteRecord]:
        return await self._gateway.list_records(context, EntityType.JOBS, search=search)


@dataclass
class DemoJobSource:
    """Fixed sample jobs; every listing built from it is labelled as demo data."""

    jobs: list[RemoteRecord] = field(default_factory=lambda: list(DEMO_JOBS))

    async def list_jobs(self, context: SessionContext, search: Optional[str]) -> list[RemoteRecord]:
        if not search:
            return list(self.jobs)
        needle = search.lower()
        return [
            job
            for job in self.jobs
            if needle in job.title.lower() or needle in (job.description or "").lower()
        ]


DEMO_JOBS = (
    RemoteRecord(
        external_id="demo-1",
        entity_type=EntityType.JOBS,
        title="Senior Frontend Developer",
        status="Published",
        description="Join our innovative team building cutting-edge web applications",
    ),
    RemoteRecord(
        external_id="demo-2",
        entity_type=EntityType.JOBS,
        title="Product Manager",
        status="Published",
        description="Lead product strategy for our core platform",
    ),
    RemoteRecord(
        external_id="demo-3",
        entity_type=EntityType.JOBS,
        title="UX Designer",
        status="Published",
        description="Create beautiful and intuitive user experiences",
    ),
)


class JobCatalog:
    """Serve job listings from the source selected by ``mode``.

    ``live`` and ``demo`` are fixed. ``auto`` uses the live source and, when
    the vendor is unreachable or failing server-side, answers with the demo
    dataset and a notice instead of an error.
    """

    def __init__(
        self,
        *,
        mode: str,
        live: JobSource,
        demo: JobSource | None = None,
    ) -> None:
        if mode not in ("auto", "live", "demo"):
            raise ValueError(f"Unknown data source mode: {mode}")
        self._mode = mode
        self._live = live
        self._demo = demo or DemoJobSource()

    async def list_jobs(
        self, context: SessionContext, search: Optional[str] = None
    ) -> JobListing:
        if self._mode == "demo":
            return await self._demo_listing(context, search)

        try:
            items = await self._live.list_jobs(context, search)
        except (httpx.TransportError, UpstreamServiceError) as exc:
            if self._mode == "live" or not _is_unavailable(exc):
                raise
            logger.warning(
                "Job listing API unavailable; serving demo data",
                extra={"reason": type(exc).__name__},
            )
            return await self._demo_listing(context, search)
        return JobListing(items=items, source=DataSource.LIVE)

    async def _demo_listing(self, context: SessionContext, search: Optional[str]) -> JobListing:
        items = await self._demo.list_jobs(context, search)
        return JobListing(items=items, source=DataSource.DEMO, notice=DEMO_NOTICE)


def _is_unavailable(exc: Exception) -> bool:
    if isinstance(exc, UpstreamServiceError):
        return exc.status_code >= 500
    return True


__all__ = [
    "DEMO_JOBS",
    "DEMO_NOTICE",
    "DataSource",
    "DemoJobSource",
    "JobCatalog",
    "JobListing",
    "JobSource",
    "LiveJobSource",
]
