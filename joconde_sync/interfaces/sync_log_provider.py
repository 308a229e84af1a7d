"""Abstract base class for the synchronization log.

One row per synchronization attempt, plus the last accepted fingerprint
(ETag, Last-Modified or content hash) of each source URL so the
orchestrator can skip downloads and imports when nothing changed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from joconde_sync.models.reports import SyncLog, SyncStatus, SyncType


class ISyncLogProvider(ABC):
    """Contract for sync-log persistence services."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def start_run(self, sync_type: SyncType) -> SyncLog:
        """Insert a RUNNING row, atomically refusing when one already exists.

        Raises
        ------
        SyncConflictError
            Another run is still RUNNING.
        """

    @abstractmethod
    async def finish_run(
        self,
        run_id: str,
        status: SyncStatus,
        items_processed: int = 0,
        error_message: str | None = None,
        source_fingerprint: str | None = None,
    ) -> SyncLog:
        """Move a run to a terminal status and stamp its completion time."""

    @abstractmethod
    async def cancel_run(self, run_id: str, reason: str = "Canceled by operator") -> SyncLog | None:
        """Close a RUNNING row as CANCELED without a live task behind it.

        Returns None when the run is unknown or no longer RUNNING.
        """

    @abstractmethod
    async def get_run(self, run_id: str) -> SyncLog | None:
        """Return one run by id."""

    @abstractmethod
    async def get_running(self) -> SyncLog | None:
        """Return the RUNNING run, if any."""

    @abstractmethod
    async def get_latest(self) -> SyncLog | None:
        """Return the most recently started run."""

    @abstractmethod
    async def list_runs(self, limit: int = 20) -> list[SyncLog]:
        """Return the most recent runs, newest first."""

    @abstractmethod
    async def get_fingerprint(self, source_url: str) -> str | None:
        """Return the last accepted fingerprint for *source_url*."""

    @abstractmethod
    async def set_fingerprint(self, source_url: str, fingerprint: str) -> None:
        """Store the fingerprint of a successfully imported source."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the name of this backend."""
