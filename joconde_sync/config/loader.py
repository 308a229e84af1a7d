"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml   Static defaults checked into the repo
#   2. .env file            Local developer overrides (not committed)
#   3. Environment vars     Set at deploy time (JOCONDE_* prefix)
#
# Only values that were explicitly set in .env or the environment
# override the YAML file; pydantic defaults never clobber YAML values.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from joconde_sync.config.settings import Settings
from joconde_sync.utils.errors import ConfigurationError

# Settings field -> (section, key) in the resolved config dict.
_SETTINGS_LAYOUT: dict[str, tuple[str, str]] = {
    "source_url": ("source", "url"),
    "temp_dir": ("source", "temp_dir"),
    "http_timeout": ("source", "http_timeout"),
    "catalog_db_path": ("storage", "catalog_db_path"),
    "sync_log_db_path": ("storage", "sync_log_db_path"),
    "reference_batch_size": ("import", "reference_batch_size"),
    "artwork_batch_size": ("import", "artwork_batch_size"),
    "parse_batch_size": ("import", "parse_batch_size"),
    "progress_every": ("import", "progress_every"),
    "app_env": ("app", "env"),
    "log_level": ("logging", "level"),
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
              an error; an unreadable or non-mapping one is.
        settings: Pre-built Settings (tests); read from the environment
                  when omitted.

    Returns:
        Fully resolved configuration dictionary, with every section of
        ``_SETTINGS_LAYOUT`` present.
    """
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                message=f"Invalid YAML in {config_path}: {exc}",
                source_name="config",
            ) from exc
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(
                message=f"{config_path} must contain a mapping at the top level",
                source_name="config",
            )
    else:
        yaml_config = {}

    settings = settings or Settings()
    explicit = settings.model_fields_set

    defaults: dict = {}
    overrides: dict = {}
    for field_name, (section, key) in _SETTINGS_LAYOUT.items():
        value = getattr(settings, field_name)
        defaults.setdefault(section, {})[key] = value
        if field_name in explicit:
            overrides.setdefault(section, {})[key] = value

    _deep_merge(defaults, yaml_config)
    _deep_merge(defaults, overrides)
    return defaults


def settings_from_config(config: dict) -> Settings:
    """Build a Settings object from a resolved config dictionary."""
    values = {}
    for field_name, (section, key) in _SETTINGS_LAYOUT.items():
        section_values = config.get(section) or {}
        if key in section_values:
            values[field_name] = section_values[key]
    try:
        return Settings(**values)
    except ValueError as exc:
        raise ConfigurationError(message=str(exc), source_name="config") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
