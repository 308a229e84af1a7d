"""Import statistics, import reports and synchronization log models.

Pydantic v2 models.  Unlike the parsed catalog entities these are plain
value records: the import engine accumulates counts on an ImportStatistics
instance, then the report and the sync log are serialized as-is by the CLI
and the SQLite sync log provider.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from joconde_sync.models.catalog import ParsingResult


class SyncType(str, Enum):  # noqa: UP042
    """What triggered a synchronization run."""

    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"


class SyncStatus(str, Enum):  # noqa: UP042
    """Lifecycle of one synchronization run.

    RUNNING is the only non-terminal status; at most one RUNNING row may
    exist in the sync log at any time.
    """

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class KindCounts(BaseModel):
    """Outcome counters for one entity kind."""

    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.imported + self.updated


class ImportStatistics(BaseModel):
    """Counters and outcome of one ImportEngine run.

    ``errors`` is the total across kinds.  ``success`` starts True and is
    cleared only by a fatal failure; a canceled import keeps whatever
    ``success`` value it had when it stopped.
    """

    artworks: KindCounts = Field(default_factory=KindCounts)
    artists: KindCounts = Field(default_factory=KindCounts)
    domains: KindCounts = Field(default_factory=KindCounts)
    techniques: KindCounts = Field(default_factory=KindCounts)
    periods: KindCounts = Field(default_factory=KindCounts)
    museums: KindCounts = Field(default_factory=KindCounts)
    errors: int = 0
    duration_seconds: float = 0.0
    success: bool = True
    error_message: str | None = None
    canceled: bool = False

    def counts_for(self, stage: str) -> KindCounts:
        return getattr(self, stage)

    def record_error(self, stage: str) -> None:
        self.counts_for(stage).errors += 1
        self.errors += 1

    def fail(self, message: str) -> None:
        self.success = False
        self.error_message = message


class ImportReport(ImportStatistics):
    """ImportStatistics plus source file name, import date and parse totals."""

    file_name: str = ""
    import_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_artworks: int = 0
    total_artists: int = 0
    total_domains: int = 0
    total_techniques: int = 0
    total_periods: int = 0
    total_museums: int = 0
    skipped_records: int = 0

    @classmethod
    def from_statistics(
        cls,
        stats: ImportStatistics,
        file_name: str,
        parsing_result: ParsingResult | None = None,
    ) -> ImportReport:
        report = cls(file_name=file_name, **stats.model_dump())
        if parsing_result is not None:
            report.total_artworks = len(parsing_result.artworks)
            report.total_artists = len(parsing_result.artists)
            report.total_domains = len(parsing_result.domains)
            report.total_techniques = len(parsing_result.techniques)
            report.total_periods = len(parsing_result.periods)
            report.total_museums = len(parsing_result.museums)
            report.skipped_records = parsing_result.skipped_records
            # Records dropped while parsing never reach the engine.
            report.artworks.skipped += parsing_result.skipped_records
        return report


class SyncLog(BaseModel):
    """One row of the synchronization log."""

    model_config = ConfigDict(frozen=True)

    id: str
    sync_type: SyncType = SyncType.MANUAL
    status: SyncStatus = SyncStatus.RUNNING
    started_at: datetime
    completed_at: datetime | None = None
    items_processed: int = 0
    error_message: str | None = None
    source_fingerprint: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def is_running(self) -> bool:
        return self.status == SyncStatus.RUNNING
