"""
End-to-end sync tests against an in-memory Terviseamet host
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import func, select

from core.exceptions import SyncAlreadyRunningError
from ingestion.runner import SyncRunner, sync_in_progress
from models.base import FeedKind, QualityStatus
from models.latest_status import PlaceLatestStatus
from models.notification import NotificationPreference
from models.place import Place, SamplingPoint
from models.sample import WaterQualitySample
from models.source_sync_state import SourceSyncState

T1 = datetime(2026, 6, 20, 12, 0, tzinfo=timezone.utc)


def serve_all(feed_server, read, beach_samples="supluskoha_veeproovid_run1.xml"):
    feed_server.serve("ujulad.xml", read("ujulad.xml"))
    feed_server.serve("basseinid.xml", read("basseinid.xml"))
    feed_server.serve("supluskohad.xml", read("supluskohad.xml"))
    feed_server.serve("basseini_veeproovid_2026.xml", read("basseini_veeproovid.xml"))
    feed_server.serve("supluskoha_veeproovid_2026.xml", read(beach_samples))


async def run_sync(session_maker, config, transport, now, force=False, notifier=None):
    async with session_maker() as session:
        runner = SyncRunner(session, config=config, notifier=notifier, transport=transport, clock=lambda: now)
        return await runner.sync_from_terviseamet(force=force)


async def place_id(session_maker, external_key) -> int:
    async with session_maker() as session:
        return await session.scalar(select(Place.id).where(Place.external_key == external_key))


class TestSyncPipeline:
    """Two consecutive runs: initial import, then one new BAD beach sample"""

    @pytest.mark.asyncio
    async def test_initial_run_imports_everything(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)

        summary = await run_sync(session_maker, test_settings, feed_server.transport, T1)

        assert summary.feeds_checked == 5
        assert summary.feeds_changed == 5
        assert summary.metadata_rows_processed == 3
        assert summary.sample_rows_processed == 2
        assert summary.sample_rows_inserted == 2
        assert summary.status_changes == 0
        assert summary.is_balanced()

        beach_id = await place_id(session_maker, "BEACH:119")
        pool_id = await place_id(session_maker, "POOL:244")
        async with session_maker() as session:
            statuses = dict(
                (await session.execute(select(PlaceLatestStatus.place_id, PlaceLatestStatus.status))).all()
            )
            states = (await session.execute(select(SourceSyncState))).scalars().all()

        assert statuses == {beach_id: QualityStatus.GOOD, pool_id: QualityStatus.GOOD}
        assert len(states) == 5
        assert all(state.last_status_code == 200 for state in states)

    @pytest.mark.asyncio
    async def test_second_run_detects_status_change(
        self, session_maker, test_settings, feed_server, fixture_xml, recording_notifier
    ):
        serve_all(feed_server, fixture_xml)
        await run_sync(session_maker, test_settings, feed_server.transport, T1)

        beach_id = await place_id(session_maker, "BEACH:119")
        async with session_maker() as session:
            session.add(NotificationPreference(user_id="user-1", place_id=beach_id))
            await session.commit()

        feed_server.serve("supluskoha_veeproovid_2026.xml", fixture_xml("supluskoha_veeproovid_run2.xml"))
        summary = await run_sync(
            session_maker,
            test_settings,
            feed_server.transport,
            T1 + timedelta(minutes=30),
            force=True,
            notifier=recording_notifier,
        )

        assert summary.feeds_checked == 5
        assert summary.feeds_changed == 1
        assert summary.feeds_unchanged == 4
        assert summary.sample_rows_processed == 2
        assert summary.sample_rows_inserted == 1
        assert summary.status_changes == 1
        assert summary.is_balanced()

        async with session_maker() as session:
            latest = await session.get(PlaceLatestStatus, beach_id)
            sample_count = await session.scalar(select(func.count()).select_from(WaterQualitySample))
            beach_points = (
                await session.execute(select(SamplingPoint).where(SamplingPoint.place_id == beach_id))
            ).scalars().all()

        assert latest.status == QualityStatus.BAD
        assert latest.status_raw == "ei vasta"
        assert sample_count == 3
        # 7001 from supluskohad.xml plus one point keyed by the collapsed name
        assert len(beach_points) == 2

        assert len(recording_notifier.calls) == 1
        call = recording_notifier.calls[0]
        assert call["user_id"] == "user-1"
        assert call["place_id"] == beach_id
        assert (call["previous_status"], call["current_status"]) == (QualityStatus.GOOD, QualityStatus.BAD)

    @pytest.mark.asyncio
    async def test_unforced_rerun_skips_by_interval(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)
        await run_sync(session_maker, test_settings, feed_server.transport, T1)
        requests_after_first_run = len(feed_server.requests)

        summary = await run_sync(session_maker, test_settings, feed_server.transport, T1 + timedelta(minutes=45))

        assert summary.feeds_checked == 5
        assert summary.feeds_skipped_by_interval == 5
        assert summary.is_balanced()
        assert len(feed_server.requests) == requests_after_first_run

    @pytest.mark.asyncio
    async def test_identical_forced_rerun_changes_nothing(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)
        await run_sync(session_maker, test_settings, feed_server.transport, T1)

        summary = await run_sync(session_maker, test_settings, feed_server.transport, T1 + timedelta(hours=1), force=True)

        assert summary.feeds_unchanged == 5
        assert summary.sample_rows_processed == 0
        assert summary.sample_rows_inserted == 0
        assert summary.status_changes == 0

    @pytest.mark.asyncio
    async def test_missing_yearly_feed_is_not_found(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)
        feed_server.bodies.pop("basseini_veeproovid_2026.xml")

        summary = await run_sync(session_maker, test_settings, feed_server.transport, T1)

        assert summary.feeds_not_found == 1
        assert summary.feeds_changed == 4
        assert summary.feeds_errored == 0
        assert summary.is_balanced()


class TestFailureIsolation:
    """One broken feed never stops the rest of the run"""

    @pytest.mark.asyncio
    async def test_http_error_and_malformed_xml(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)
        feed_server.respond("ujulad.xml", httpx.Response(500, text="internal error"))
        feed_server.serve("basseinid.xml", b"<basseinid><bassein><id>1</id>")

        summary = await run_sync(session_maker, test_settings, feed_server.transport, T1)

        assert summary.feeds_errored == 2
        assert summary.feeds_changed == 3
        assert summary.sample_rows_inserted == 2
        assert summary.is_balanced()

        async with session_maker() as session:
            states = {
                state.file_kind: state
                for state in (await session.execute(select(SourceSyncState))).scalars().all()
            }

        assert states[FeedKind.POOL_FACILITIES].last_status_code == 500
        assert states[FeedKind.POOL_FACILITIES].last_error.startswith("ProtocolError")
        malformed = states[FeedKind.POOL_LOCATIONS]
        assert malformed.content_hash is None
        assert malformed.etag is None
        assert malformed.last_error.startswith("ParseError")

    @pytest.mark.asyncio
    async def test_malformed_feed_url_errors_only_that_feed(
        self, session_maker, test_settings, feed_server, fixture_xml
    ):
        serve_all(feed_server, fixture_xml)
        config = test_settings.model_copy(
            update={"TERVISEAMET_POOL_FACILITIES_URL": "https://opendata.test:port/opendata/ujulad.xml"}
        )

        summary = await run_sync(session_maker, config, feed_server.transport, T1)

        assert summary.feeds_checked == 5
        assert summary.feeds_errored == 1
        assert summary.feeds_changed == 4
        assert summary.sample_rows_inserted == 2
        assert summary.is_balanced()

        async with session_maker() as session:
            state = (
                await session.execute(
                    select(SourceSyncState).where(SourceSyncState.file_kind == FeedKind.POOL_FACILITIES)
                )
            ).scalar_one()
        assert state.last_status_code is None
        assert state.last_error.startswith("ProtocolError")

    @pytest.mark.asyncio
    async def test_failed_import_is_retried_next_run(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)
        feed_server.serve("basseinid.xml", b"<basseinid><bassein>")
        await run_sync(session_maker, test_settings, feed_server.transport, T1)

        feed_server.serve("basseinid.xml", fixture_xml("basseinid.xml"))
        summary = await run_sync(session_maker, test_settings, feed_server.transport, T1 + timedelta(minutes=5), force=True)

        assert summary.feeds_changed == 1
        assert summary.feeds_unchanged == 4
        async with session_maker() as session:
            state = (
                await session.execute(
                    select(SourceSyncState).where(SourceSyncState.file_kind == FeedKind.POOL_LOCATIONS)
                )
            ).scalar_one()
        assert state.last_error is None


class TestRunLock:

    @pytest.mark.asyncio
    async def test_overlapping_run_is_rejected(self, session_maker, test_settings, feed_server, fixture_xml):
        serve_all(feed_server, fixture_xml)
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_handler(request):
            started.set()
            await release.wait()
            return feed_server.handler(request)

        transport = httpx.MockTransport(slow_handler)
        first = asyncio.create_task(run_sync(session_maker, test_settings, transport, T1))
        await started.wait()

        assert sync_in_progress()
        with pytest.raises(SyncAlreadyRunningError):
            await run_sync(session_maker, test_settings, feed_server.transport, T1)

        release.set()
        summary = await first

        assert summary.feeds_changed == 5
        assert not sync_in_progress()
