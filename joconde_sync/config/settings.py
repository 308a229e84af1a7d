"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority
# order:
#
#   1. Environment variables, e.g. JOCONDE_SOURCE_URL=https://...
#   2. The .env file in the working directory
#
# Every field is prefixed with ``JOCONDE_`` in the environment
# (``catalog_db_path`` -> ``JOCONDE_CATALOG_DB_PATH``).  Defaults below are
# used when neither source sets a value.
#
# Batch sizes are upper bounds on how many entities one unit of work
# holds.  Smaller batches mean more commits and finer-grained progress.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SOURCE_URL = (
    "https://data.culture.gouv.fr/api/datasets/1.0/"
    "joconde-catalogue-collectif-des-collections-des-musees-de-france/"
    "attachments/base_joconde_extrait_xml_zip"
)


class Settings(BaseSettings):
    """joconde-sync settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="JOCONDE_",
        extra="ignore",
    )

    # === Source ===
    source_url: str = DEFAULT_SOURCE_URL
    # Empty string = system temp directory (tempfile.gettempdir()).
    temp_dir: str = ""
    http_timeout: float = 300.0

    # === Storage ===
    catalog_db_path: str = "data/joconde_catalog.db"
    sync_log_db_path: str = "data/joconde_sync_log.db"

    # === Import tuning ===
    reference_batch_size: int = Field(default=100, ge=1)
    artwork_batch_size: int = Field(default=50, ge=1)
    parse_batch_size: int = Field(default=500, ge=1)
    # Parsers report progress at least this often; capped at 1000.
    progress_every: int = Field(default=100, ge=1, le=1000)

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
