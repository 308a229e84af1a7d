"""joconde-sync composition root.

Wires the providers and services together via constructor injection.
Configuration comes from ``config/config.yaml`` layered with ``.env`` and
``JOCONDE_*`` environment variables; structured logging is configured
from the resolved settings.

The CLI (and any embedding application) goes through :func:`load_settings`
and :func:`open_components`; nothing here runs at import time.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
import structlog

from joconde_sync.config.loader import load_config, settings_from_config
from joconde_sync.config.settings import Settings
from joconde_sync.pipeline.progress_tracker import ProgressTracker
from joconde_sync.providers.catalog.sqlite_catalog_store import SQLiteCatalogStore
from joconde_sync.providers.sync_log.sqlite_sync_log_provider import SQLiteSyncLogProvider
from joconde_sync.services.downloader import HttpDownloader
from joconde_sync.services.import_engine import ImportEngine
from joconde_sync.services.sync_orchestrator import SyncOrchestrator
from joconde_sync.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def load_settings(config_path: str = "config/config.yaml") -> Settings:
    """Resolve settings from YAML + environment and configure logging."""
    app_settings = settings_from_config(load_config(config_path))
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    return app_settings


# ---------------------------------------------------------------------------
# DI assembly
# ---------------------------------------------------------------------------


def _ensure_parent(db_path: str) -> None:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def _build_all(app_settings: Settings, http_client: httpx.AsyncClient) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components.
    """
    # -- Persistence --
    catalog_store = SQLiteCatalogStore(db_path=app_settings.catalog_db_path)
    sync_log = SQLiteSyncLogProvider(db_path=app_settings.sync_log_db_path)

    # -- Services --
    tracker = ProgressTracker()
    import_engine = ImportEngine(
        store=catalog_store,
        reference_batch_size=app_settings.reference_batch_size,
        artwork_batch_size=app_settings.artwork_batch_size,
        progress_every=app_settings.progress_every,
        parse_batch_size=app_settings.parse_batch_size,
    )
    downloader = HttpDownloader(http_client=http_client)
    orchestrator = SyncOrchestrator(
        sync_log=sync_log,
        downloader=downloader,
        import_engine=import_engine,
        source_url=app_settings.source_url,
        temp_dir=app_settings.temp_dir or None,
        tracker=tracker,
    )

    _logger.info(
        "components_built",
        catalog_store=catalog_store.get_provider_name(),
        sync_log=sync_log.get_provider_name(),
        source_url=app_settings.source_url,
    )

    return {
        "settings": app_settings,
        "http_client": http_client,
        "catalog_store": catalog_store,
        "sync_log": sync_log,
        "tracker": tracker,
        "import_engine": import_engine,
        "downloader": downloader,
        "orchestrator": orchestrator,
    }


@asynccontextmanager
async def open_components(app_settings: Settings) -> AsyncIterator[dict[str, Any]]:
    """Build and initialize all components; close the HTTP client on exit."""
    _ensure_parent(app_settings.catalog_db_path)
    _ensure_parent(app_settings.sync_log_db_path)

    async with httpx.AsyncClient(timeout=app_settings.http_timeout) as http_client:
        components = _build_all(app_settings, http_client)
        await components["catalog_store"].initialize()
        await components["sync_log"].initialize()
        yield components
