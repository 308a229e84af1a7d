"""Unit tests for SQLiteSyncLogProvider."""

from __future__ import annotations

import pytest

from joconde_sync.models.reports import SyncStatus, SyncType
from joconde_sync.providers.sync_log.sqlite_sync_log_provider import SQLiteSyncLogProvider
from joconde_sync.utils.errors import PersistenceError, SyncConflictError


class TestRuns:
    @pytest.mark.asyncio
    async def test_start_and_finish(self, sync_log: SQLiteSyncLogProvider) -> None:
        run = await sync_log.start_run(SyncType.MANUAL)
        assert run.status == SyncStatus.RUNNING
        assert (await sync_log.get_running()).id == run.id

        closed = await sync_log.finish_run(
            run.id, SyncStatus.COMPLETED, items_processed=12, source_fingerprint="etag:abc"
        )

        assert closed.status == SyncStatus.COMPLETED
        assert closed.items_processed == 12
        assert closed.source_fingerprint == "etag:abc"
        assert closed.completed_at is not None
        assert closed.duration_seconds >= 0
        assert await sync_log.get_running() is None

    @pytest.mark.asyncio
    async def test_second_running_row_is_refused(self, sync_log: SQLiteSyncLogProvider) -> None:
        await sync_log.start_run(SyncType.MANUAL)
        with pytest.raises(SyncConflictError):
            await sync_log.start_run(SyncType.AUTOMATIC)

    @pytest.mark.asyncio
    async def test_new_run_allowed_after_finish(self, sync_log: SQLiteSyncLogProvider) -> None:
        first = await sync_log.start_run(SyncType.MANUAL)
        await sync_log.finish_run(first.id, SyncStatus.FAILED, error_message="boom")
        second = await sync_log.start_run(SyncType.AUTOMATIC)

        latest = await sync_log.get_latest()
        assert latest.id == second.id
        assert latest.sync_type == SyncType.AUTOMATIC

        runs = await sync_log.list_runs(limit=5)
        assert [r.id for r in runs] == [second.id, first.id]
        assert runs[1].error_message == "boom"

    @pytest.mark.asyncio
    async def test_get_unknown_run(self, sync_log: SQLiteSyncLogProvider) -> None:
        assert await sync_log.get_run("nope") is None
        assert await sync_log.get_latest() is None

    @pytest.mark.asyncio
    async def test_finish_unknown_run(self, sync_log: SQLiteSyncLogProvider) -> None:
        with pytest.raises(PersistenceError):
            await sync_log.finish_run("nope", SyncStatus.COMPLETED)


class TestCancelRun:
    @pytest.mark.asyncio
    async def test_closes_running_row(self, sync_log: SQLiteSyncLogProvider) -> None:
        run = await sync_log.start_run(SyncType.MANUAL)

        closed = await sync_log.cancel_run(run.id, reason="process died")

        assert closed.status == SyncStatus.CANCELED
        assert closed.error_message == "process died"
        assert closed.completed_at is not None
        assert await sync_log.get_running() is None
        assert (await sync_log.start_run(SyncType.AUTOMATIC)).status == SyncStatus.RUNNING

    @pytest.mark.asyncio
    async def test_finished_run_is_left_alone(self, sync_log: SQLiteSyncLogProvider) -> None:
        run = await sync_log.start_run(SyncType.MANUAL)
        await sync_log.finish_run(run.id, SyncStatus.COMPLETED, items_processed=4)

        assert await sync_log.cancel_run(run.id) is None
        assert (await sync_log.get_run(run.id)).status == SyncStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_run(self, sync_log: SQLiteSyncLogProvider) -> None:
        assert await sync_log.cancel_run("nope") is None


class TestFingerprints:
    @pytest.mark.asyncio
    async def test_roundtrip_and_overwrite(self, sync_log: SQLiteSyncLogProvider) -> None:
        url = "https://example.org/export"
        assert await sync_log.get_fingerprint(url) is None

        await sync_log.set_fingerprint(url, "etag:1")
        await sync_log.set_fingerprint(url, "etag:2")

        assert await sync_log.get_fingerprint(url) == "etag:2"
        assert sync_log.get_provider_name() == "sqlite_sync_log"
