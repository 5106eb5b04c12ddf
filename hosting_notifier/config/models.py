"""Configuration schema models using Pydantic."""

import re
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range

_HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _validated_duration(value: str, min_seconds: int, max_seconds: int, label: str) -> str:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class SchedulerConfig(BaseModel):
    """Clock settings for the two cadences."""

    timezone: str = Field("UTC", description="IANA timezone used for wall-clock matching")
    expiry_sweep_time: str = Field(
        "08:00", description="Local HH:MM at which the daily expiry sweep runs"
    )
    run_startup_sweep: bool = Field(
        True, description="Run one expiry sweep shortly after the process starts"
    )
    startup_sweep_delay: str = Field(
        "10s", description="Delay before the startup sweep"
    )
    misfire_grace_time: int = Field(
        30, ge=1, le=300, description="Seconds a late tick may still run before it is dropped"
    )

    startup_sweep_delay_seconds: Optional[int] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown zone names early."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: '{v}'") from e
        return v

    @field_validator("expiry_sweep_time")
    @classmethod
    def validate_sweep_time(cls, v: str) -> str:
        """Require a 24-hour HH:MM value."""
        v = v.strip()
        if not _HHMM_PATTERN.match(v):
            raise ValueError(f"expiry_sweep_time must be HH:MM, got '{v}'")
        return v

    @field_validator("startup_sweep_delay")
    @classmethod
    def validate_startup_delay(cls, v: str) -> str:
        return _validated_duration(v, 1, 3600, "startup_sweep_delay")

    @model_validator(mode="after")
    def compute_fields(self):
        self.startup_sweep_delay_seconds = parse_duration(self.startup_sweep_delay)
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def sweep_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.expiry_sweep_time.split(":")
        return int(hour), int(minute)


class DispatchConfig(BaseModel):
    """Per-item execution limits for the dispatcher."""

    item_timeout: str = Field(
        "30s", description="Upper bound for one send or report generation"
    )
    max_workers: int = Field(
        4, ge=1, le=16, description="Worker threads used for blocking per-item work"
    )

    item_timeout_seconds: Optional[int] = None

    @field_validator("item_timeout")
    @classmethod
    def validate_item_timeout(cls, v: str) -> str:
        return _validated_duration(v, 1, 600, "item_timeout")

    @model_validator(mode="after")
    def compute_fields(self):
        self.item_timeout_seconds = parse_duration(self.item_timeout)
        return self


class EmailConfig(BaseModel):
    """Transport settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    test_subject_prefix: str = Field(
        "[TEST]", description="Prefix for operator-initiated test sends"
    )


class AttachmentConfig(BaseModel):
    """Where uploaded domain documents live."""

    upload_dir: str = Field(
        "./data/pdfs", min_length=1, description="Directory with {id}_{filename} uploads"
    )

    @field_validator("upload_dir")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("upload_dir cannot be empty")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )
    environment: str = Field("local", description="Environment label added to every record")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the hosting notifier."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    attachments: AttachmentConfig = Field(default_factory=AttachmentConfig)
    settings_cache_ttl: str = Field(
        "1m", description="How long app_settings and company info stay cached"
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    settings_cache_ttl_seconds: Optional[int] = None

    @field_validator("settings_cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: str) -> str:
        return _validated_duration(v, 1, 86400, "settings_cache_ttl")

    @model_validator(mode="after")
    def compute_fields(self):
        self.settings_cache_ttl_seconds = parse_duration(self.settings_cache_ttl)
        return self
