"""Runtime settings for RouteWise."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration loaded from ``ROUTEWISE_*`` environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTEWISE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nominatim's usage policy requires an identifying user agent and at
    # most one request per second.
    nominatim_user_agent: str = Field(default="routewise_app")
    geocode_timeout_seconds: float = Field(default=10.0, gt=0.0)
    geocode_retry_timeout_seconds: float = Field(default=20.0, gt=0.0)
    geocode_min_delay_seconds: float = Field(default=1.0, ge=0.0)
    geocode_max_concurrency: int = Field(default=8, ge=1)

    two_opt_max_passes: int = Field(default=100, ge=1)

    osrm_base_url: str = Field(
        default="https://router.project-osrm.org",
        description="Base URL of the OSRM server used for directions.",
    )
    osrm_profile: Literal["driving", "foot", "bike"] = Field(default="driving")
    directions_timeout_seconds: float = Field(default=30.0, gt=0.0)
    directions_max_concurrency: int = Field(default=1, ge=1)
    directions_min_interval_seconds: float = Field(default=1.0, ge=0.0)
    fallback_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Average speed used to estimate leg durations when directions fail.",
    )

    nearby_radius_km: float = Field(default=10.0, gt=0.0)
    location_timeout_seconds: float = Field(default=10.0, ge=0.0)


settings = Settings()
