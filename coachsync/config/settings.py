import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is for local development only. Set DATABASE_URL to a PostgreSQL
    connection string for anything shared.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "coachsync.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    strava_client_id: str = Field(default="", validation_alias="STRAVA_CLIENT_ID")
    strava_client_secret: str = Field(default="", validation_alias="STRAVA_CLIENT_SECRET")
    strava_webhook_verify_token: str = Field(default="", validation_alias="STRAVA_WEBHOOK_VERIFY_TOKEN")
    strava_api_base_url: str = Field(default="https://www.strava.com/api/v3", validation_alias="STRAVA_API_BASE_URL")
    strava_token_url: str = Field(default="https://www.strava.com/oauth/token", validation_alias="STRAVA_TOKEN_URL")
    strava_autosync_enabled: bool = Field(
        default=True,
        validation_alias="STRAVA_AUTOSYNC_ENABLED",
        description="Kill switch for the scheduled poll (webhooks and on-demand polls are unaffected)",
    )
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")

    sync_lookback_days: int = Field(default=14, validation_alias="SYNC_LOOKBACK_DAYS")
    sync_safety_buffer_minutes: int = Field(default=120, validation_alias="SYNC_SAFETY_BUFFER_MINUTES")
    sync_page_size: int = Field(default=50, validation_alias="SYNC_PAGE_SIZE")
    sync_max_pages: int = Field(default=1, validation_alias="SYNC_MAX_PAGES")
    sync_max_workers: int = Field(
        default=1,
        validation_alias="SYNC_MAX_WORKERS",
        description="Athletes processed in parallel per run (1 = sequential)",
    )
    sync_poll_interval_minutes: int = Field(default=15, validation_alias="SYNC_POLL_INTERVAL_MINUTES")
    sync_audit_enabled: bool = Field(default=False, validation_alias="SYNC_AUDIT_ENABLED")
    default_athlete_timezone: str = Field(default="UTC", validation_alias="DEFAULT_ATHLETE_TIMEZONE")
    scoring_task_name: str = Field(
        default="scoring.recompute_for_activity",
        validation_alias="SCORING_TASK_NAME",
        description="Celery task notified after an activity is created or updated",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(sorted(valid_levels))}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("strava_client_id", "strava_client_secret")
    @classmethod
    def validate_required(cls, value: str) -> str:
        """Warn when Strava credentials are missing.

        Empty values are allowed so the app can boot locally; token refresh
        raises ProviderConfigError at the point of use instead.
        """
        if not value:
            logger.warning(
                "STRAVA_CLIENT_ID and/or STRAVA_CLIENT_SECRET are not set. "
                "Token refresh will fail until they are configured."
            )
        return value

    @field_validator("sync_lookback_days")
    @classmethod
    def validate_lookback(cls, value: int) -> int:
        """Keep the default lookback inside the provider-friendly range."""
        if value < 1 or value > 30:
            logger.warning(f"SYNC_LOOKBACK_DAYS={value} out of range [1, 30], using 14")
            return 14
        return value

    @field_validator("sync_max_workers")
    @classmethod
    def validate_max_workers(cls, value: int) -> int:
        return max(1, value)


settings = Settings()
