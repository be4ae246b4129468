"""One-shot refresh and sync sweep, intended to be invoked by an external scheduler.

Example::

    python -m scripts.run_sweep --entity-type jobs --entity-type candidates
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Sequence

import httpx

from recruitsync.core.config import get_settings
from recruitsync.core.errors import RecruitSyncError
from recruitsync.core.logging import configure_logging
from recruitsync.dependencies.clients import (
    build_sync_engine,
    get_oauth_session_manager,
    get_token_store,
)
from recruitsync.models.records import EntityType
from recruitsync.services.oauth_session import INTEGRATION, OAuthSessionManager
from recruitsync.services.sessions import SessionContext
from recruitsync.services.sync_engine import SyncCounts, SyncEngine

logger = logging.getLogger(__name__)

SWEEP_USER_AGENT = "recruitsync-sweep"


@dataclass
class SweepReport:
    refreshed: int = 0
    disconnected: int = 0
    deferred: int = 0
    users: int = 0
    user_failures: int = 0
    counts: SyncCounts = field(default_factory=SyncCounts)


class SyncSweep:
    """Refresh expiring tokens, then sync every connected user."""

    def __init__(
        self,
        *,
        oauth_manager: OAuthSessionManager,
        engine: SyncEngine,
        user_ids: Sequence[str],
        refresh_window: timedelta,
    ) -> None:
        self._oauth = oauth_manager
        self._engine = engine
        self._user_ids = list(user_ids)
        self._refresh_window = refresh_window

    async def run(self, entity_types: Sequence[EntityType]) -> SweepReport:
        report = SweepReport()
        refresh = await self._oauth.refresh_expiring(within=self._refresh_window)
        report.refreshed = refresh.refreshed
        report.disconnected = refresh.disconnected
        report.deferred = refresh.deferred

        for user_id in self._user_ids:
            context = SessionContext(user_id=user_id, role="service", user_agent=SWEEP_USER_AGENT)
            if not await self._oauth.is_authenticated(context):
                continue
            report.users += 1
            for entity_type in entity_types:
                try:
                    counts = await self._engine.bidirectional_sync(context, entity_type)
                except (RecruitSyncError, httpx.HTTPError):
                    logger.exception(
                        "Sweep failed for user",
                        extra={"user_id": user_id, "entity_type": entity_type.value},
                    )
                    report.user_failures += 1
                    continue
                report.counts = report.counts + counts

        logger.info(
            "Sweep finished",
            extra={
                "users": report.users,
                "refreshed": report.refreshed,
                "disconnected": report.disconnected,
                "deferred": report.deferred,
                "local_to_remote": report.counts.local_to_remote,
                "remote_to_local": report.counts.remote_to_local,
                "failed": report.counts.failed,
            },
        )
        return report


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Refresh tokens and sync connected users once.")
    parser.add_argument(
        "--system",
        default="jobadder",
        help="System of record to sync against (default: jobadder).",
    )
    parser.add_argument(
        "--entity-type",
        action="append",
        choices=[entity.value for entity in EntityType],
        help="Entity type to sync; repeat for several (default: jobs).",
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    entity_types = [EntityType(value) for value in (args.entity_type or ["jobs"])]
    sweep = SyncSweep(
        oauth_manager=get_oauth_session_manager(),
        engine=build_sync_engine(args.system),
        user_ids=get_token_store().list_user_ids(integration=INTEGRATION),
        refresh_window=timedelta(seconds=settings.sync.refresh_window_seconds),
    )
    report = await sweep.run(entity_types)
    return 1 if report.user_failures else 0


if __name__ == "__main__":  # pragma: no cover - manual execution path
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Sync sweep stopped")
