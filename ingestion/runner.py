# ============================================================================
# File: ingestion/runner.py
# Description: Terviseamet feed sync orchestrator
# ============================================================================
"""
Sync Runner - checks every feed, imports what changed, refreshes statuses.

Feeds are processed strictly one after another on a single session:
- Per-feed fetch failures are recorded and the run moves on
- Per-feed import failures roll back that feed only
- Latest statuses are recomputed once, after all feeds
- At most one run executes at a time (process lock, plus a PostgreSQL
  advisory lock across processes)
"""

from datetime import datetime
from typing import Callable, Optional, Set
import asyncio
import logging

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from core.clock import utcnow
from core.config import Settings, settings as default_settings
from core.exceptions import ParseError, PersistenceError, SyncAlreadyRunningError
from ingestion.extractors.terviseamet_fetcher import ConditionalFetcher, FetchStatus
from ingestion.feeds import FeedDescriptor, build_feed_descriptors
from ingestion.loaders.water_quality_loader import WaterQualityLoader
from ingestion.notifier import LoggingStatusNotifier, StatusNotifier
from ingestion.status_diff import StatusRefresher
from ingestion.transformers.terviseamet_parsers import (
    parse_beach_locations_xml,
    parse_beach_samples_xml,
    parse_pool_facilities_xml,
    parse_pool_locations_xml,
    parse_pool_samples_xml,
)
from models.base import FeedKind
from schemas.api import SyncSummary

logger = logging.getLogger(__name__)

# Arbitrary application-wide key for pg_try_advisory_lock
ADVISORY_LOCK_KEY = 7_342_901

_run_lock = asyncio.Lock()


def sync_in_progress() -> bool:
    return _run_lock.locked()


class SyncRunner:
    """
    Terviseamet sync orchestrator

    Responsibilities:
    - Build this run's feed descriptors
    - Fetch each feed conditionally and import the changed ones
    - Refresh latest statuses and trigger notifications
    - Report a SyncSummary
    """

    def __init__(
        self,
        db_session: AsyncSession,
        config: Optional[Settings] = None,
        notifier: Optional[StatusNotifier] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db_session
        self.config = config or default_settings
        self.notifier = notifier or LoggingStatusNotifier()
        self.transport = transport
        self.clock = clock

    async def sync_from_terviseamet(self, force: bool = False) -> SyncSummary:
        """
        Run one full sync.

        Args:
            force: Bypass the per-feed refresh interval (conditional
                headers are still sent)

        Raises:
            SyncAlreadyRunningError: Another run holds the lock
        """
        if _run_lock.locked():
            raise SyncAlreadyRunningError("A sync run is already in progress", context={"scope": "process"})

        async with _run_lock:
            lock_conn = await self._acquire_advisory_lock()
            try:
                return await self._run(force)
            finally:
                await self._release_advisory_lock(lock_conn)

    async def _run(self, force: bool) -> SyncSummary:
        now = self.clock()
        summary = SyncSummary()
        affected_place_ids: Set[int] = set()

        # Fresh loader per run: its caches must not outlive the run
        loader = WaterQualityLoader(self.db, now)
        descriptors = build_feed_descriptors(self.config, now)
        logger.info(f"Starting Terviseamet sync: {len(descriptors)} feeds, force={force}")

        async with httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=False,
            timeout=httpx.Timeout(self.config.TERVISEAMET_FETCH_TIMEOUT_SECONDS),
            headers={
                "User-Agent": self.config.TERVISEAMET_USER_AGENT,
                "Accept": "application/xml, text/xml;q=0.9, */*;q=0.1",
            },
        ) as client:
            fetcher = ConditionalFetcher(
                self.db,
                client,
                timeout_seconds=self.config.TERVISEAMET_FETCH_TIMEOUT_SECONDS,
                max_bytes=self.config.TERVISEAMET_MAX_BYTES,
            )

            for descriptor in descriptors:
                summary.feeds_checked += 1

                # --------------------------------------------------
                # FETCH
                # --------------------------------------------------
                try:
                    outcome = await fetcher.fetch_if_changed(descriptor, force=force, now=now)
                except PersistenceError as e:
                    summary.feeds_errored += 1
                    logger.warning(
                        f"Could not record sync state for {descriptor.file_kind.value}/{descriptor.year}",
                        extra={"error_context": e.to_dict()},
                    )
                    continue

                if outcome.status == FetchStatus.SKIPPED:
                    summary.feeds_skipped_by_interval += 1
                    continue
                if outcome.status == FetchStatus.NOT_MODIFIED:
                    summary.feeds_unchanged += 1
                    continue
                if outcome.status == FetchStatus.NOT_FOUND:
                    summary.feeds_not_found += 1
                    continue
                if outcome.status == FetchStatus.ERROR:
                    summary.feeds_errored += 1
                    continue

                # --------------------------------------------------
                # PARSE + LOAD
                # --------------------------------------------------
                try:
                    await self._import(loader, descriptor, outcome.xml, summary, affected_place_ids)
                    summary.feeds_changed += 1
                except (ParseError, PersistenceError) as e:
                    summary.feeds_errored += 1
                    logger.warning(
                        f"Import of {descriptor.file_kind.value}/{descriptor.year} failed: {e.message}",
                        extra={"error_context": e.to_dict()},
                    )
                    await self._invalidate(fetcher, descriptor, e)

        # --------------------------------------------------
        # STATUS DIFF
        # --------------------------------------------------
        refresher = StatusRefresher(self.db, self.notifier)
        events = await refresher.refresh(affected_place_ids, now)
        summary.status_changes = len(events)

        logger.info(f"Terviseamet sync completed: {summary.model_dump(by_alias=True)}")
        return summary

    async def _import(
        self,
        loader: WaterQualityLoader,
        descriptor: FeedDescriptor,
        xml: bytes,
        summary: SyncSummary,
        affected_place_ids: Set[int],
    ) -> None:
        kind = descriptor.file_kind

        if kind == FeedKind.POOL_FACILITIES:
            summary.metadata_rows_processed += await loader.import_pool_facilities(parse_pool_facilities_xml(xml))
        elif kind == FeedKind.POOL_LOCATIONS:
            summary.metadata_rows_processed += await loader.import_pool_locations(parse_pool_locations_xml(xml))
        elif kind == FeedKind.BEACH_LOCATIONS:
            summary.metadata_rows_processed += await loader.import_beach_locations(parse_beach_locations_xml(xml))
        else:
            parse = parse_pool_samples_xml if kind == FeedKind.POOL_SAMPLES else parse_beach_samples_xml
            result = await loader.import_samples(parse(xml, descriptor.year, descriptor.url))
            summary.sample_rows_processed += result.processed
            summary.sample_rows_inserted += result.inserted
            affected_place_ids.update(result.place_ids)

    async def _invalidate(self, fetcher: ConditionalFetcher, descriptor: FeedDescriptor, error) -> None:
        try:
            await fetcher.invalidate(descriptor, f"{type(error).__name__}: {error.message}")
        except PersistenceError as e:
            logger.warning(
                f"Could not invalidate sync state for {descriptor.file_kind.value}/{descriptor.year}",
                extra={"error_context": e.to_dict()},
            )

    async def _acquire_advisory_lock(self) -> Optional[AsyncConnection]:
        """Hold a PostgreSQL session lock on a dedicated connection for the whole run."""
        engine = self.db.bind
        if engine is None or engine.dialect.name != "postgresql":
            return None

        conn = await engine.connect()
        acquired = await conn.scalar(text("SELECT pg_try_advisory_lock(:key)"), {"key": ADVISORY_LOCK_KEY})
        if not acquired:
            await conn.close()
            raise SyncAlreadyRunningError(
                "A sync run is already in progress", context={"scope": "database", "lock_key": ADVISORY_LOCK_KEY}
            )
        return conn

    async def _release_advisory_lock(self, conn: Optional[AsyncConnection]) -> None:
        if conn is None:
            return
        try:
            await conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": ADVISORY_LOCK_KEY})
        finally:
            await conn.close()
