"""Application configuration and settings management."""

from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDTRACK_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Tracking API"
    api_prefix: str = "/api"
    log_level: str = Field(default="info", description="Uvicorn log level used by start_server.py.")

    # Position feed
    poll_interval_ms: int = Field(
        default=5000,
        ge=100,
        description="Interval of the polling fallback that fetches the latest provider position.",
    )
    position_table: str = Field(default="provider_data", description="Table holding live provider positions.")
    default_address: str = Field(
        default="Provider location",
        description="Label used when a position row carries no address.",
    )

    # Route progress
    reliability_guard_meters: float = Field(
        default=200.0,
        ge=0.0,
        description="Fixes farther than this from the nearest route vertex are ignored.",
    )
    publish_distance_epsilon_meters: float = Field(default=20.0, ge=0.0)
    publish_time_epsilon_seconds: float = Field(default=10.0, ge=0.0)

    # Route deviation
    max_deviation_meters: float = Field(default=50.0, gt=0.0)
    min_dwell_ms: int = Field(default=3000, ge=0)
    cooldown_ms: int = Field(default=10000, ge=0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        return str(value).strip().lower() if value else "info"

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
