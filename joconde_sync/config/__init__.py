"""Configuration module -- exports Settings and the YAML loader helpers."""

from joconde_sync.config.loader import load_config, settings_from_config
from joconde_sync.config.settings import DEFAULT_SOURCE_URL, Settings

__all__ = ["DEFAULT_SOURCE_URL", "Settings", "load_config", "settings_from_config"]
