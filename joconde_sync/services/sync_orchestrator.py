"""Coordinates one synchronization run against the remote Joconde export.

A run moves through a fixed sequence and leaves exactly one SyncLog row
behind it:

    1. Refuse when another run is RUNNING (in-process lock + sync log).
    2. Compare the source's HEAD validators with the stored fingerprint;
       an unchanged source ends here without writing a row.
    3. Insert the RUNNING row.
    4. Stream the export into a unique temporary file.
    5. Compare the body's SHA-256 with the stored content fingerprint;
       an unchanged body completes the run with zero items.
    6. Hand the file to the ImportEngine, forwarding progress to the
       ProgressTracker under the run's id.
    7. Close the row as COMPLETED, FAILED or CANCELED.  Fingerprints are
       stored only for COMPLETED runs so a failed import is retried.

The temporary file is deleted however the run ends.

Runs can be awaited (:meth:`SyncOrchestrator.synchronize`) or started as
a background task (:meth:`SyncOrchestrator.start_in_background`) that is
canceled cooperatively through :meth:`SyncOrchestrator.cancel`.  A RUNNING
row orphaned by a dead process is released with
:meth:`SyncOrchestrator.cancel_run`.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from joconde_sync.interfaces.sync_log_provider import ISyncLogProvider
from joconde_sync.models.reports import ImportReport, SyncLog, SyncStatus, SyncType
from joconde_sync.pipeline.progress_tracker import ProgressTracker
from joconde_sync.services.downloader import HttpDownloader
from joconde_sync.services.import_engine import ImportEngine
from joconde_sync.utils.errors import JocondeSyncError, SyncConflictError
from joconde_sync.utils.logging import bind_run, get_logger, unbind_run

_TEMP_PREFIX = "joconde_"
_TEMP_SUFFIX = ".download"
_CONTENT_KEY_SUFFIX = "#sha256"


@dataclass
class _RunOutcome:
    status: SyncStatus = SyncStatus.FAILED
    items_processed: int = 0
    error_message: str | None = None
    source_fingerprint: str | None = None


class SyncOrchestrator:
    """Downloads the remote export and imports it when it changed.

    Parameters
    ----------
    sync_log:
        Persists run rows and accepted source fingerprints.
    downloader:
        Fetches validators and streams the export to disk.
    import_engine:
        Parses and merges the downloaded file into the catalog.
    source_url:
        The export URL.
    temp_dir:
        Directory for the downloaded file; the system default when empty.
    tracker:
        Receives ``(stage, current, total)`` updates keyed by run id.
    """

    def __init__(
        self,
        sync_log: ISyncLogProvider,
        downloader: HttpDownloader,
        import_engine: ImportEngine,
        source_url: str,
        temp_dir: str | Path | None = None,
        tracker: ProgressTracker | None = None,
    ) -> None:
        self._sync_log = sync_log
        self._downloader = downloader
        self._engine = import_engine
        self._source_url = source_url
        self._temp_dir = str(temp_dir) if temp_dir else None
        self._tracker = tracker or ProgressTracker()
        self._lock = asyncio.Lock()
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    @property
    def _content_key(self) -> str:
        return f"{self._source_url}{_CONTENT_KEY_SUFFIX}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def check_for_update(self) -> bool:
        """Return True when the source may have changed since the last import.

        Without a stored fingerprint, or when the server advertises no
        validators, the answer is True and the content hash decides later.
        """
        stored = await self._sync_log.get_fingerprint(self._source_url)
        if stored is None:
            return True

        validators = await self._downloader.head(self._source_url)
        current = validators.fingerprint
        if current is None:
            return True

        changed = current != stored
        self._logger.info(
            "source_update_check",
            url=self._source_url,
            changed=changed,
            fingerprint=current,
        )
        return changed

    async def synchronize(
        self,
        cancel_event: asyncio.Event | None = None,
        sync_type: SyncType = SyncType.MANUAL,
        force: bool = False,
    ) -> SyncLog | None:
        """Run one synchronization to completion.

        Returns the closed SyncLog row, or None when the source validators
        show nothing changed (no row is written then).  ``force`` skips
        both change checks.

        Raises:
            SyncConflictError: another run is RUNNING.
        """
        if self._lock.locked():
            raise SyncConflictError()

        async with self._lock:
            run = await self._open_run(sync_type, force)
            if run is None:
                return None
            event = cancel_event or asyncio.Event()
            self._cancel_events[run.id] = event
            try:
                return await self._execute(run, event, force)
            finally:
                self._cancel_events.pop(run.id, None)

    async def start_in_background(
        self,
        sync_type: SyncType = SyncType.MANUAL,
        force: bool = False,
    ) -> SyncLog | None:
        """Open a run and return its RUNNING row while it proceeds in a task.

        Returns None, without starting anything, when the source is unchanged.

        Raises:
            SyncConflictError: another run is RUNNING.
        """
        if self._lock.locked():
            raise SyncConflictError()

        await self._lock.acquire()
        try:
            run = await self._open_run(sync_type, force)
        except BaseException:
            self._lock.release()
            raise
        if run is None:
            self._lock.release()
            return None

        cancel_event = asyncio.Event()
        self._cancel_events[run.id] = cancel_event
        self._tasks[run.id] = asyncio.create_task(
            self._run_in_background(run, cancel_event, force),
            name=f"joconde-sync-{run.id}",
        )
        return run

    def cancel(self, run_id: str) -> bool:
        """Request cooperative cancellation of a run of this orchestrator.

        Returns False when *run_id* is not a run active in this orchestrator.
        """
        event = self._cancel_events.get(run_id)
        if event is None:
            return False
        event.set()
        self._logger.info("sync_cancel_requested", run_id=run_id)
        return True

    async def cancel_run(self, run_id: str) -> bool:
        """Cancel *run_id* whether or not this process is running it.

        A background run of this orchestrator is signalled through
        :meth:`cancel` and closes its own row.  Any other RUNNING row, such
        as one left behind by a killed process, is closed as CANCELED in
        the sync log so later synchronizations are no longer refused.

        Returns False when the run is unknown or already finished.
        """
        if self.cancel(run_id):
            return True
        closed = await self._sync_log.cancel_run(
            run_id, reason="Canceled: no live synchronization task"
        )
        return closed is not None

    async def wait_for(self, run_id: str) -> SyncLog | None:
        """Await a background run and return its closed row."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return await self._sync_log.get_run(run_id)

    async def get_status(self) -> SyncLog | None:
        """Return the most recent run."""
        return await self._sync_log.get_latest()

    def get_progress(self, run_id: str) -> dict:
        return self._tracker.get_status(run_id)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _open_run(self, sync_type: SyncType, force: bool) -> SyncLog | None:
        running = await self._sync_log.get_running()
        if running is not None:
            raise SyncConflictError(
                message=f"Synchronization {running.id} is still running",
                source_name=self._sync_log.get_provider_name(),
            )

        if not force and not await self.check_for_update():
            self._logger.info("sync_skipped_unchanged", url=self._source_url)
            return None

        run = await self._sync_log.start_run(sync_type)
        self._logger.info("sync_started", run_id=run.id, sync_type=sync_type.value)
        return run

    async def _run_in_background(
        self,
        run: SyncLog,
        cancel_event: asyncio.Event,
        force: bool,
    ) -> None:
        try:
            await self._execute(run, cancel_event, force)
        finally:
            self._cancel_events.pop(run.id, None)
            self._tasks.pop(run.id, None)
            self._lock.release()

    async def _execute(
        self,
        run: SyncLog,
        cancel_event: asyncio.Event,
        force: bool,
    ) -> SyncLog:
        start = time.monotonic()
        fd, temp_name = tempfile.mkstemp(
            prefix=_TEMP_PREFIX, suffix=_TEMP_SUFFIX, dir=self._temp_dir
        )
        os.close(fd)
        temp_path = Path(temp_name)
        outcome = _RunOutcome()

        bind_run(run.id)
        try:
            await self._download_and_import(run, temp_path, cancel_event, force, outcome)
        except asyncio.CancelledError:
            outcome.status = SyncStatus.CANCELED
            outcome.error_message = "Synchronization task was cancelled"
            raise
        except JocondeSyncError as exc:
            outcome.status = SyncStatus.FAILED
            outcome.error_message = str(exc)
            self._logger.error("sync_failed", run_id=run.id, error=str(exc))
        except Exception as exc:
            outcome.status = SyncStatus.FAILED
            outcome.error_message = f"Unexpected error: {exc}"
            self._logger.error(
                "sync_failed",
                run_id=run.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        finally:
            temp_path.unlink(missing_ok=True)
            closed = await self._sync_log.finish_run(
                run.id,
                outcome.status,
                items_processed=outcome.items_processed,
                error_message=outcome.error_message,
                source_fingerprint=outcome.source_fingerprint,
            )
            self._tracker.forget(run.id)
            unbind_run()

        self._logger.info(
            "sync_finished",
            run_id=run.id,
            status=closed.status.value,
            items_processed=closed.items_processed,
            elapsed_s=round(time.monotonic() - start, 1),
        )
        return closed

    async def _download_and_import(
        self,
        run: SyncLog,
        temp_path: Path,
        cancel_event: asyncio.Event,
        force: bool,
        outcome: _RunOutcome,
    ) -> None:
        download = await self._downloader.download(self._source_url, temp_path, cancel_event)
        if not download.completed:
            outcome.status = SyncStatus.CANCELED
            return

        content_fingerprint = download.content_fingerprint
        if not force:
            stored = await self._sync_log.get_fingerprint(self._content_key)
            if stored == content_fingerprint:
                self._logger.info("sync_content_unchanged", run_id=run.id)
                await self._accept(download.validators.fingerprint, content_fingerprint, outcome)
                return

        report = await self._engine.import_from_source(
            temp_path,
            on_progress=self._tracker.sink(run.id),
            cancel_event=cancel_event,
        )
        outcome.items_processed = _items_processed(report)

        if report.canceled:
            outcome.status = SyncStatus.CANCELED
        elif not report.success:
            outcome.status = SyncStatus.FAILED
            outcome.error_message = report.error_message
        else:
            await self._accept(download.validators.fingerprint, content_fingerprint, outcome)

    async def _accept(
        self,
        validator_fingerprint: str | None,
        content_fingerprint: str,
        outcome: _RunOutcome,
    ) -> None:
        fingerprint = validator_fingerprint or content_fingerprint
        await self._sync_log.set_fingerprint(self._source_url, fingerprint)
        await self._sync_log.set_fingerprint(self._content_key, content_fingerprint)
        outcome.status = SyncStatus.COMPLETED
        outcome.source_fingerprint = fingerprint


def _items_processed(report: ImportReport) -> int:
    return report.artworks.imported + report.artworks.updated
