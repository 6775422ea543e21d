"""Configuration loader for the event ingestion core."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml

from event_ingest.configs.settings import Settings, get_settings


def _substitute_placeholders(content: str, settings: Settings) -> str:
    """Replace ``${KEY}`` placeholders with values from settings."""
    for key, value in settings.model_dump().items():
        placeholder = f"${{{key}}}"
        if placeholder in content:
            if value is None:
                val_str = ""
            elif hasattr(value, "get_secret_value"):
                val_str = value.get_secret_value()
            else:
                val_str = str(value)
            content = content.replace(placeholder, val_str)
    return content


def load_yaml_config(path: Path, settings: Optional[Settings] = None) -> dict:
    """
    Load a YAML config file, substituting settings placeholders.

    Args:
        path: Path to the YAML file
        settings: Settings used for ``${KEY}`` substitution (defaults to cached)

    Returns:
        Parsed configuration dict (empty dict for an empty file)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing config at {path}")

    with open(path, encoding="utf-8") as f:
        content = _substitute_placeholders(f.read(), settings or get_settings())

    return yaml.safe_load(content) or {}


class Config:
    """Configuration for the event ingestion core."""

    CONFIG_DIR = Path(__file__).parent.resolve()

    @classmethod
    def ingestion_config_path(cls) -> Path:
        """Return the configured path of ingestion.yaml."""
        return get_settings().INGESTION_CONFIG_PATH

    @classmethod
    @lru_cache
    def load_ingestion_config(cls) -> dict:
        """Load the YAML configuration for ingestion sources."""
        return load_yaml_config(cls.ingestion_config_path())
