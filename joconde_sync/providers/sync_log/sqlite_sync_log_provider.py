"""SQLite-backed synchronization log.

Persists one row per synchronization attempt and the last accepted
fingerprint of each source URL to ``data/joconde_sync_log.db``.  Uses
``aiosqlite`` for async I/O.

The "only one RUNNING run" rule is enforced by a partial unique index on
``status``: inserting a second RUNNING row fails inside SQLite itself, so
two processes racing to start a sync cannot both win.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from joconde_sync.interfaces.sync_log_provider import ISyncLogProvider
from joconde_sync.models.catalog import new_id
from joconde_sync.models.reports import SyncLog, SyncStatus, SyncType
from joconde_sync.utils.errors import PersistenceError, SyncConflictError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/joconde_sync_log.db")
_PROVIDER_NAME = "sqlite_sync_log"

_CREATE_SYNC_LOGS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS sync_logs (
    id                 TEXT PRIMARY KEY,
    sync_type          TEXT    NOT NULL,
    status             TEXT    NOT NULL,
    started_at         TEXT    NOT NULL,
    completed_at       TEXT,
    items_processed    INTEGER NOT NULL DEFAULT 0,
    error_message      TEXT,
    source_fingerprint TEXT
);
"""

_CREATE_FINGERPRINTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS source_fingerprints (
    source_url  TEXT PRIMARY KEY,
    fingerprint TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_INDICES_SQL = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_logs_single_running "
    "ON sync_logs(status) WHERE status = 'RUNNING';",
    "CREATE INDEX IF NOT EXISTS idx_sync_logs_started ON sync_logs(started_at);",
]

_INSERT_RUN_SQL = """\
INSERT INTO sync_logs (id, sync_type, status, started_at)
VALUES (?, ?, ?, ?);
"""

_FINISH_RUN_SQL = """\
UPDATE sync_logs
SET status = ?, completed_at = ?, items_processed = ?, error_message = ?,
    source_fingerprint = COALESCE(?, source_fingerprint)
WHERE id = ?;
"""

_CANCEL_RUN_SQL = """\
UPDATE sync_logs
SET status = ?, completed_at = ?, error_message = ?
WHERE id = ? AND status = 'RUNNING';
"""

_SELECT_RUN_SQL = "SELECT * FROM sync_logs WHERE id = ?;"

_SELECT_RUNNING_SQL = "SELECT * FROM sync_logs WHERE status = 'RUNNING' LIMIT 1;"

_SELECT_RECENT_SQL = "SELECT * FROM sync_logs ORDER BY started_at DESC LIMIT ?;"

_SELECT_FINGERPRINT_SQL = "SELECT fingerprint FROM source_fingerprints WHERE source_url = ?;"

_UPSERT_FINGERPRINT_SQL = """\
INSERT INTO source_fingerprints (source_url, fingerprint)
VALUES (?, ?)
ON CONFLICT(source_url)
DO UPDATE SET fingerprint = excluded.fingerprint,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_log(row: aiosqlite.Row) -> SyncLog:
    return SyncLog(
        id=row["id"],
        sync_type=SyncType(row["sync_type"]),
        status=SyncStatus(row["status"]),
        started_at=_parse_dt(row["started_at"]),
        completed_at=_parse_dt(row["completed_at"]),
        items_processed=row["items_processed"],
        error_message=row["error_message"],
        source_fingerprint=row["source_fingerprint"],
    )


class SQLiteSyncLogProvider(ISyncLogProvider):
    """SQLite-backed sync log persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the sync_logs and source_fingerprints tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_SYNC_LOGS_TABLE_SQL)
            await db.execute(_CREATE_FINGERPRINTS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("sync_log_db_initialized", path=str(self._db_path))

    async def start_run(self, sync_type: SyncType) -> SyncLog:
        run = SyncLog(
            id=new_id(),
            sync_type=sync_type,
            status=SyncStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _INSERT_RUN_SQL,
                    (run.id, run.sync_type.value, run.status.value, run.started_at.isoformat()),
                )
                await db.commit()
        except sqlite3.IntegrityError as exc:
            raise SyncConflictError(
                message="A synchronization is already running",
                source_name=_PROVIDER_NAME,
            ) from exc
        except sqlite3.Error as exc:
            raise PersistenceError(message=str(exc), source_name=_PROVIDER_NAME) from exc

        logger.info("sync_run_started", run_id=run.id, sync_type=run.sync_type.value)
        return run

    async def finish_run(
        self,
        run_id: str,
        status: SyncStatus,
        items_processed: int = 0,
        error_message: str | None = None,
        source_fingerprint: str | None = None,
    ) -> SyncLog:
        completed_at = datetime.now(timezone.utc)
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                _FINISH_RUN_SQL,
                (
                    status.value,
                    completed_at.isoformat(),
                    items_processed,
                    error_message,
                    source_fingerprint,
                    run_id,
                ),
            )
            await db.commit()
            cursor = await db.execute(_SELECT_RUN_SQL, (run_id,))
            row = await cursor.fetchone()

        if row is None:
            raise PersistenceError(
                message=f"Sync run {run_id} does not exist",
                source_name=_PROVIDER_NAME,
            )
        logger.info(
            "sync_run_finished",
            run_id=run_id,
            status=status.value,
            items_processed=items_processed,
            error=error_message,
        )
        return _row_to_log(row)

    async def cancel_run(self, run_id: str, reason: str = "Canceled by operator") -> SyncLog | None:
        """Close *run_id* as CANCELED when it is still RUNNING.

        Returns the closed row, or None when the run is unknown or already
        finished.  Used to release a run whose process died mid-sync.
        """
        completed_at = datetime.now(timezone.utc)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    _CANCEL_RUN_SQL,
                    (SyncStatus.CANCELED.value, completed_at.isoformat(), reason, run_id),
                )
                changed = cursor.rowcount
                await db.commit()
                if not changed:
                    return None
                cursor = await db.execute(_SELECT_RUN_SQL, (run_id,))
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(message=str(exc), source_name=_PROVIDER_NAME) from exc

        logger.warning("sync_run_force_canceled", run_id=run_id, reason=reason)
        return _row_to_log(row)

    async def get_run(self, run_id: str) -> SyncLog | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_RUN_SQL, (run_id,))
            row = await cursor.fetchone()
        return _row_to_log(row) if row else None

    async def get_running(self) -> SyncLog | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_RUNNING_SQL)
            row = await cursor.fetchone()
        return _row_to_log(row) if row else None

    async def get_latest(self) -> SyncLog | None:
        runs = await self.list_runs(limit=1)
        return runs[0] if runs else None

    async def list_runs(self, limit: int = 20) -> list[SyncLog]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_RECENT_SQL, (limit,))
            rows = await cursor.fetchall()
        return [_row_to_log(row) for row in rows]

    async def get_fingerprint(self, source_url: str) -> str | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_SELECT_FINGERPRINT_SQL, (source_url,))
            row = await cursor.fetchone()
        return row[0] if row else None

    async def set_fingerprint(self, source_url: str, fingerprint: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_FINGERPRINT_SQL, (source_url, fingerprint))
            await db.commit()
        logger.debug("source_fingerprint_stored", source_url=source_url)

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
