import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    feed_base_url: str = "http://api.sr.se/api/v2"
    refresh_interval_sec: int = 60
    schedule_window_hours: int = 12
    feed_utc_correction_hours: int = 1  # Upstream reports UTC+0 for local times
    feed_timeout_sec: float = 30.0
    feed_max_retries: int = 1
    feed_retry_backoff: float = 2.0
    channels_refresh_cron: str = "0 4 * * *"  # Daily at 4 AM, empty disables
    scheduler_misfire_grace_sec: int = 30
    default_channel_id: int | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("feed_base_url")
    @classmethod
    def validate_feed_base_url(cls, value: str) -> str:
        """Validate feed URL is HTTP/HTTPS."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Feed base URL must be HTTP/HTTPS: {value}")
        return value.rstrip("/")

    @field_validator("refresh_interval_sec")
    @classmethod
    def validate_refresh_interval(cls, value: int) -> int:
        """Validate the periodic refresh interval (seconds)."""
        if value <= 0:
            raise ValueError("refresh_interval_sec must be > 0")
        return value

    @field_validator("schedule_window_hours")
    @classmethod
    def validate_window_hours(cls, value: int) -> int:
        """Validate the schedule window is positive and reasonable."""
        if value <= 0:
            raise ValueError("schedule_window_hours must be > 0")
        if value > 72:
            raise ValueError("schedule_window_hours must be <= 72 hours")
        return value

    @field_validator("feed_utc_correction_hours")
    @classmethod
    def validate_utc_correction(cls, value: int) -> int:
        if not -14 <= value <= 14:
            raise ValueError("feed_utc_correction_hours must be between -14 and 14")
        return value

    @field_validator("feed_timeout_sec")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Validate HTTP timeout (seconds)."""
        if value <= 0:
            raise ValueError("feed_timeout_sec must be > 0")
        return value

    @field_validator("feed_max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """Ensure at least one download attempt is made."""
        if value < 1:
            raise ValueError("feed_max_retries must be >= 1")
        return value

    @field_validator("feed_retry_backoff")
    @classmethod
    def validate_backoff(cls, value: float) -> float:
        """Ensure the backoff multiplier is at least 1."""
        if value < 1:
            raise ValueError("feed_retry_backoff must be >= 1")
        return value

    @field_validator("scheduler_misfire_grace_sec")
    @classmethod
    def validate_misfire_grace(cls, value: int) -> int:
        """Validate scheduler misfire grace period (seconds)."""
        if value < 0:
            raise ValueError("scheduler_misfire_grace_sec must be >= 0")
        return value

    @field_validator("default_channel_id")
    @classmethod
    def validate_default_channel(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("default_channel_id must be > 0")
        return value

    @field_validator("channels_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid (empty disables the job)."""
        value = value.strip()
        if not value:
            return value
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_schedule_configuration(self):
        """Validate cross-field configuration."""
        if self.default_channel_id is None:
            logger.warning(
                "No default channel configured - schedule stays empty until a channel is selected"
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Feed: %s", self.feed_base_url)
        logger.info("  Refresh Interval: %ss", self.refresh_interval_sec)
        logger.info("  Schedule Window: +/-%s hours", self.schedule_window_hours)
        logger.info("  UTC Correction: %+d hours", self.feed_utc_correction_hours)
        logger.info(
            "  HTTP: timeout=%.1fs attempts=%s backoff=%.1f",
            self.feed_timeout_sec,
            self.feed_max_retries,
            self.feed_retry_backoff,
        )
        logger.info(
            "  Channel List Refresh: %s",
            self.channels_refresh_cron or "disabled",
        )
        logger.info("  Misfire Grace: %ss", self.scheduler_misfire_grace_sec)
        logger.info("  Default Channel: %s", self.default_channel_id or "none")


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
