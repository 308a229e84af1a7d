"""Utility modules for joconde-sync.

- **errors** -- Domain-specific exception hierarchy rooted at
  JocondeSyncError; each pipeline stage raises its own subclass so callers
  can tell recoverable per-record failures from fatal ones.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text** -- trimming and ``;`` multi-value splitting shared by the parsers.
"""

from joconde_sync.utils.errors import (
    ConfigurationError,
    DownloadError,
    EntityUpsertError,
    FormatError,
    JocondeSyncError,
    NotFoundError,
    ParseError,
    PersistenceError,
    RecordExtractionError,
    SyncConflictError,
)
from joconde_sync.utils.logging import configure_logging, get_logger
from joconde_sync.utils.text import clean, split_multi_value

__all__ = [
    "ConfigurationError",
    "DownloadError",
    "EntityUpsertError",
    "FormatError",
    "JocondeSyncError",
    "NotFoundError",
    "ParseError",
    "PersistenceError",
    "RecordExtractionError",
    "SyncConflictError",
    "clean",
    "configure_logging",
    "get_logger",
    "split_multi_value",
]
