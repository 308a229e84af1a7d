"""Sync log providers.

SQLiteSyncLogProvider records every synchronization attempt and the last
accepted fingerprint of each source URL in data/joconde_sync_log.db.
"""

from joconde_sync.providers.sync_log.sqlite_sync_log_provider import SQLiteSyncLogProvider

__all__ = ["SQLiteSyncLogProvider"]
