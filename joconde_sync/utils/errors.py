"""Custom exception hierarchy for joconde-sync.

All application exceptions inherit from :class:`JocondeSyncError`, which
carries an optional ``source_name`` so error handlers can identify which
input or backend (e.g. a file path, "sqlite_catalog", "httpx") caused the
failure.

The hierarchy is organized by pipeline stage:

    JocondeSyncError  (base -- catch-all for any joconde-sync error)
    +-- NotFoundError          (source file/path missing)
    +-- FormatError            (top-level document shape unexpected)
    +-- ParseError             (unrecoverable structural failure mid-stream)
    +-- RecordExtractionError  (one record could not become an Artwork)
    +-- PersistenceError       (store connection / commit failure)
    +-- EntityUpsertError      (one entity failed to upsert)
    +-- DownloadError          (source download failed)
    +-- SyncConflictError      (a synchronization is already running)
    +-- ConfigurationError     (startup / missing config)

Per-record and per-entity errors are recovered locally by the parser and the
import engine; everything else aborts the current call.
"""


class JocondeSyncError(Exception):
    """Base exception for all joconde-sync errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``source_name`` identifying the input or backend that triggered the
    error.  ``__str__`` prefixes the source name in brackets for log output,
    e.g. ``[sqlite_catalog] database is locked``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        source_name: str | None = None,
    ) -> None:
        self._message = message
        self._source_name = source_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def source_name(self) -> str | None:
        return self._source_name

    def __str__(self) -> str:
        if self._source_name:
            return f"[{self._source_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Parsing errors
# ---------------------------------------------------------------------------

class NotFoundError(JocondeSyncError):
    """Raised when the source file does not exist."""

    def __init__(
        self,
        message: str = "Source file not found",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class FormatError(JocondeSyncError):
    """Raised when the document root is not the expected record container."""

    def __init__(
        self,
        message: str = "Unexpected document structure",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class ParseError(JocondeSyncError):
    """Raised when the stream breaks in a way no single-record skip can recover."""

    def __init__(
        self,
        message: str = "Document parsing failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class RecordExtractionError(JocondeSyncError):
    """Raised when one record cannot be turned into an Artwork.

    The parsers catch this, log it and move on to the next record.
    """

    def __init__(
        self,
        message: str = "Record extraction failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


# ---------------------------------------------------------------------------
# Persistence errors
# ---------------------------------------------------------------------------

class PersistenceError(JocondeSyncError):
    """Raised when the store connection or a batch commit fails.

    Fatal to the import call: remaining batches are abandoned and the
    report carries ``success=False``.
    """

    def __init__(
        self,
        message: str = "Catalog store is unavailable",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class EntityUpsertError(JocondeSyncError):
    """Raised when a single entity fails to insert or update.

    The import engine counts the failure and continues with the next entity.
    """

    def __init__(
        self,
        message: str = "Entity upsert failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


# ---------------------------------------------------------------------------
# Synchronization errors
# ---------------------------------------------------------------------------

class DownloadError(JocondeSyncError):
    """Raised when the source document cannot be downloaded."""

    def __init__(
        self,
        message: str = "Source download failed",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class SyncConflictError(JocondeSyncError):
    """Raised when a synchronization is requested while another is Running."""

    def __init__(
        self,
        message: str = "A synchronization is already running",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)


class ConfigurationError(JocondeSyncError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        source_name: str | None = None,
    ) -> None:
        super().__init__(message=message, source_name=source_name)
