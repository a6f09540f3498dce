"""Application configuration and settings management."""

from datetime import timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Crew Dispatch Planner API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(),
        description="Origins allowed to call the API from a browser.",
    )
    log_level: str = Field(default="INFO", description="Root log level for the service.")

    # Distance estimation
    earth_radius_miles: float = Field(default=3959.0, gt=0.0)
    route_leg_speed_mph: float = Field(
        default=25.0,
        gt=0.0,
        description="Average speed assumed for legs of a crew route.",
    )
    travel_estimate_speed_mph: float = Field(
        default=30.0,
        gt=0.0,
        description="Average speed assumed for ad-hoc point-to-point travel estimates.",
    )
    unroutable_drive_fallback_minutes: int = Field(
        default=30,
        ge=0,
        description="Drive minutes assumed when the distance matrix has no entry for a leg.",
    )

    # Crew defaults
    default_crew_capacity: int = Field(default=8, ge=1)
    default_availability_start: str = "08:00"
    default_availability_end: str = "17:00"
    default_daily_capacity_minutes: int = Field(default=480, ge=0)
    business_timezone: str = Field(
        default="UTC",
        description="IANA zone that crew availability windows and the dispatch day are expressed in.",
    )

    # Assignment scoring
    score_drive_weight: float = 1.5
    score_utilization_weight: float = 10.0
    primary_zone_bonus: float = 20.0
    backup_zone_bonus: float = 10.0
    algorithm_version: str = "v1-greedy"

    # Orchestration
    debounce_seconds: float = Field(default=5.0, ge=0.0)
    external_call_timeout_seconds: float = Field(default=10.0, gt=0.0)
    writeback_max_parallel_crews: int = Field(default=1, ge=1)
    route_base_url: str = "https://lawnflow.app"
    auto_apply_default: bool = Field(
        default=False,
        description="Auto-apply answer returned once the field-service account is reachable.",
    )

    # Jobber field-service API
    jobber_api_url: str = "https://api.getjobber.com/api/graphql"
    jobber_api_version: str = "2023-11-15"
    jobber_access_token: Optional[str] = None
    jobber_page_size: int = Field(default=50, ge=1, le=100)
    jobber_max_jobs: int = Field(default=500, ge=1)
    jobber_route_plan_field_label: str = "LawnFlow Route Plan"
    jobber_job_statuses: tuple[str, ...] = Field(
        default=("REQUIRES_INVOICING", "ACTIVE", "TODAY", "UPCOMING"),
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

    @field_validator("default_availability_start", "default_availability_end")
    @classmethod
    def _validate_time_of_day(cls, value: str) -> str:
        parse_time_of_day(value)
        return value

    @field_validator("business_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value

    @field_validator("frontend_allowed_origins", "jobber_job_statuses", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
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


def parse_time_of_day(value: str) -> int:
    """Return minutes after midnight for an ``HH:MM`` string."""

    try:
        hours_text, minutes_text = value.strip().split(":")[:2]
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM.") from exc
    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM.")
    return hours * 60 + minutes


def resolve_timezone(name: str) -> tzinfo:
    """Return the tzinfo for an IANA zone name; ``UTC`` needs no tz database."""

    if name.strip().upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone '{name}'.") from exc


settings = Settings()
