"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
Values may also come from a `.env` file or a `config.yaml` file; real
environment variables always win.
"""

import os
import yaml
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config.yaml in common locations
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/capirelay
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class CORSSettings(BaseSettings):
    """Cross-origin configuration."""

    allowed_origins: str = Field(
        default="",
        description="Comma-separated list of allowed origins (empty allows all)"
    )

    @property
    def origins(self) -> List[str]:
        """Allowed origins as a list; ["*"] when none are configured."""
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]

    @property
    def is_restricted(self) -> bool:
        return bool(self.allowed_origins.strip())

    class Config:
        env_prefix = ""
        env_file = ".env"
        extra = "ignore"


class FacebookSettings(BaseSettings):
    """Facebook Conversions API configuration."""

    pixel_id: str = Field(default="", description="Pixel / dataset ID")
    access_token: str = Field(default="", description="Conversions API access token")
    api_version: str = Field(default="", description="Graph API version, e.g. v19.0")
    test_event_code: Optional[str] = Field(
        default=None,
        description="Routes events to the Events Manager test console when set"
    )
    graph_base_url: str = Field(default="https://graph.facebook.com", description="Graph API host")
    timeout_seconds: Optional[float] = Field(
        default=None,
        description="Outbound request timeout (transport default when unset)"
    )

    @field_validator("test_event_code", "timeout_seconds", mode="before")
    def blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def missing_fields(self) -> List[str]:
        """Names of the required settings that are not configured."""
        required = {
            "FB_PIXEL_ID": self.pixel_id,
            "FB_ACCESS_TOKEN": self.access_token,
            "FB_API_VERSION": self.api_version,
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_configured(self) -> bool:
        return not self.missing_fields

    @property
    def events_url(self) -> str:
        """Event ingestion endpoint (the access token is sent as a query parameter)."""
        return f"{self.graph_base_url.rstrip('/')}/{self.api_version}/{self.pixel_id}/events"

    class Config:
        env_prefix = "FB_"
        env_file = ".env"
        extra = "ignore"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3002, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    app_env: str = Field(default="production", description="Deployment environment")

    @field_validator("debug", mode="before")
    def parse_debug_flag(cls, v: Any) -> Any:
        """Anything but a recognised truthy string turns debug off."""
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes", "on")
        return v

    # Component settings
    cors: CORSSettings = Field(default_factory=CORSSettings)
    facebook: FacebookSettings = Field(default_factory=FacebookSettings)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    class Config:
        env_prefix = ""
        env_file = ".env"
        extra = "ignore"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    # Load config file data
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    settings = Settings()
    return settings


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "HOST",
        ("server", "port"): "PORT",
        ("server", "debug"): "DEBUG",
        ("server", "log_level"): "LOG_LEVEL",
        ("server", "app_env"): "APP_ENV",
        ("cors", "allowed_origins"): "ALLOWED_ORIGINS",
        ("facebook", "pixel_id"): "FB_PIXEL_ID",
        ("facebook", "access_token"): "FB_ACCESS_TOKEN",
        ("facebook", "api_version"): "FB_API_VERSION",
        ("facebook", "test_event_code"): "FB_TEST_EVENT_CODE",
        ("facebook", "graph_base_url"): "FB_GRAPH_BASE_URL",
        ("facebook", "timeout_seconds"): "FB_TIMEOUT_SECONDS",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is None:
                continue
            # Allow origins to be written as a YAML list
            if isinstance(value, list):
                value = ",".join(str(v) for v in value)
            os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
