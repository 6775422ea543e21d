"""Centralized settings management for the event ingestion core."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# BASE_DIR points to the repository root
_BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the repository root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # SOURCE API KEYS
    # Presence of a key switches that source to API-first mode.
    # -------------------------------------------------------------------------
    ALLEVENTS_API_KEY: SecretStr | None = None
    INSIDER_API_KEY: SecretStr | None = None
    TOWNSCRIPT_API_KEY: SecretStr | None = None
    EXPLARA_API_KEY: SecretStr | None = None

    # -------------------------------------------------------------------------
    # OUTBOUND REQUESTS
    # -------------------------------------------------------------------------
    REQUEST_TIMEOUT_S: float = Field(default=10.0, gt=0)
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # -------------------------------------------------------------------------
    # POLITENESS
    # -------------------------------------------------------------------------
    ROBOTS_CACHE_TTL_S: float = Field(default=3600.0, gt=0)
    ROBOTS_FAILURE_TTL_S: float = Field(default=300.0, gt=0)
    # Policy when robots.txt itself cannot be retrieved
    ROBOTS_FAIL_OPEN: bool = True

    # -------------------------------------------------------------------------
    # NORMALIZATION
    # -------------------------------------------------------------------------
    REJECT_UNPARSEABLE_DATES: bool = False
    DEFAULT_TIMEZONE: str = "Asia/Kolkata"

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    BASE_DIR: Path = _BASE_DIR
    INGESTION_CONFIG_PATH: Path = _BASE_DIR / "event_ingest" / "configs" / "ingestion.yaml"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(_BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    def api_key_for(self, source_name: str) -> str | None:
        """
        Return the plain API key configured for a source, if any.

        Parameters
        ----------
        source_name : str
            Source identifier, e.g. ``"allevents"``.

        Returns
        -------
        str | None
            The secret value, or None when the source runs scrape-only.
        """
        attr = f"{source_name.upper().replace('-', '_')}_API_KEY"
        value = getattr(self, attr, None)
        if value is None:
            return None
        secret = value.get_secret_value() if hasattr(value, "get_secret_value") else str(value)
        return secret or None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
