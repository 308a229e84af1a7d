"""Import, download and synchronization services."""

from __future__ import annotations

from joconde_sync.services.downloader import DownloadResult, HttpDownloader, SourceValidators
from joconde_sync.services.import_engine import ImportEngine
from joconde_sync.services.sync_orchestrator import SyncOrchestrator

__all__ = [
    "DownloadResult",
    "HttpDownloader",
    "ImportEngine",
    "SourceValidators",
    "SyncOrchestrator",
]
