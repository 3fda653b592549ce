"""
Environment configuration for HubSpot Pulse.

Values come from the process environment, with a project-root .env loaded
first. HUBSPOT_API_KEY is required to talk to HubSpot; everything else has a
default. Every entry point (the API app, main.py) reads one Settings object,
so a value is parsed by exactly one set of rules.

Usage:
    from lib.config import Settings
    settings = Settings.from_env()
"""
from pathlib import Path
from typing import Annotated, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from lib.errors import ConfigError

PROJECT_ROOT = Path(__file__).resolve().parent.parent

HUBSPOT_API_URL = "https://api.hubapi.com"


class Settings(BaseSettings):
    """Runtime settings, resolved once at startup."""

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    hubspot_api_key: str = Field("", validation_alias="HUBSPOT_API_KEY")
    hubspot_base_url: str = Field(HUBSPOT_API_URL, validation_alias="HUBSPOT_BASE_URL")
    request_timeout: float = Field(10.0, gt=0, validation_alias="HUBSPOT_TIMEOUT_SECONDS")
    max_retries: int = Field(3, ge=0, validation_alias="HUBSPOT_MAX_RETRIES")
    backoff_ms: int = Field(2000, ge=0, validation_alias="HUBSPOT_BACKOFF_MS")
    concurrency: int = Field(3, ge=1, validation_alias="HUBSPOT_CONCURRENCY")
    batch_delay_ms: int = Field(400, ge=0, validation_alias="HUBSPOT_BATCH_DELAY_MS")
    page_size: int = Field(100, ge=1, le=100, validation_alias="HUBSPOT_PAGE_SIZE")
    cache_ttl_seconds: int = Field(300, ge=0, validation_alias="CACHE_TTL_SECONDS")
    timezone: str = Field("UTC", validation_alias="DASHBOARD_TIMEZONE")
    port: int = Field(8001, validation_alias="DASHBOARD_PORT")
    debug: bool = Field(False, validation_alias="DEBUG")
    require_api_key: bool = Field(False, validation_alias="REQUIRE_API_KEY")
    dashboard_api_key: str = Field("", validation_alias="DASHBOARD_API_KEY")
    # Comma-separated in the environment
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8001"],
        validation_alias="CORS_ORIGINS",
    )

    @field_validator("hubspot_api_key", mode="before")
    @classmethod
    def _strip_key(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("hubspot_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {value!r}")
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def ensure_hubspot_key(self) -> None:
        """Raise ConfigError unless a HubSpot API key is set."""
        if not self.hubspot_api_key:
            raise ConfigError(
                "HubSpot API key not found. Set HUBSPOT_API_KEY in the environment or .env",
                variable="HUBSPOT_API_KEY",
            )

    @classmethod
    def env_name(cls, field_or_alias: str) -> str:
        """Environment variable behind a field (or its alias) for error messages."""
        field = cls.model_fields.get(field_or_alias)
        if field is not None and isinstance(field.validation_alias, str):
            return field.validation_alias
        return str(field_or_alias).upper()

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True, require_hubspot_key: bool = True) -> "Settings":
        """
        Build settings from the environment. Raises ConfigError on bad input.

        require_hubspot_key=False lets the app object be built (auth, CORS)
        before the key is checked at startup.
        """
        if load_dotenv_file:
            load_dotenv(PROJECT_ROOT / ".env")

        try:
            settings = cls()
        except ValidationError as e:
            first = e.errors()[0]
            variable = cls.env_name(str(first["loc"][0])) if first.get("loc") else None
            raise ConfigError(f"Invalid {variable}: {first['msg']}", variable=variable)

        if require_hubspot_key:
            settings.ensure_hubspot_key()
        return settings
