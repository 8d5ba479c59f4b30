"""
Configuration Module
====================

Settings read from the environment (and `.env`), plus the string constants
shared by the domain, the ORM check constraints and the API.

Every knob has a default that works for local development; production
overrides come from env vars such as PREDICTOR_BASE_URL or SMTP_HOST.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from datetime import time
from typing import List, Optional


class Settings(BaseSettings):
    """
    Service configuration. Env var names are the field names, case-insensitive.
    """

    # ========== Application ==========
    app_name: str = Field(default="sla-sentinel", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/sla",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    create_tables_on_startup: bool = Field(
        default=True,
        description="Create missing tables at startup (development only)"
    )

    # ========== Operating Calendar ==========
    operating_utc_offset_hours: int = Field(
        default=-5,
        description="Fixed UTC offset of the operating region (no DST)",
        ge=-12,
        le=14
    )
    operating_timezone_name: str = Field(
        default="America/Lima",
        description="Display name of the operating timezone"
    )

    # ========== Predictor Service ==========
    predictor_base_url: str = Field(
        default="http://localhost:8001",
        description="Base URL of the breach-probability predictor"
    )
    predictor_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single predictor call",
        ge=0.1,
        le=120
    )
    predictor_training_timeout_seconds: float = Field(
        default=300.0,
        description="Timeout for a retraining call",
        ge=1
    )
    predictor_max_concurrency: int = Field(
        default=4,
        description="Concurrent predictor calls per evaluation cycle",
        ge=1,
        le=32
    )
    predictor_model_version: str = Field(
        default="Docker-v1",
        description="Model version reported when the predictor omits one"
    )
    predictor_failure_threshold: int = Field(
        default=5,
        description="Consecutive failures before the predictor circuit opens",
        ge=1
    )
    predictor_recovery_timeout: float = Field(
        default=60.0,
        description="Seconds before an open predictor circuit allows a probe",
        ge=1
    )

    # ========== Risk Evaluation ==========
    cycle_timeout_seconds: float = Field(
        default=600.0,
        description="Deadline for one full evaluation cycle",
        ge=1
    )
    default_threshold_days: int = Field(
        default=5,
        description="SLA window used when a request has no SLA config",
        ge=1
    )
    alert_notify_tier: str = Field(
        default="HIGH",
        description="Lowest risk tier that creates an alert"
    )

    # ========== Worker ==========
    sync_interval_hours: float = Field(
        default=6,
        description="Hours between alert synchronization runs",
        gt=0
    )
    enable_sync: bool = Field(default=True, description="Run the alert sync job")
    run_sync_on_startup: bool = Field(default=True, description="Run one sync at startup")
    daily_summary_time: str = Field(
        default="08:00",
        description="Local HH:MM at which the daily summary is due"
    )
    enable_daily_summary: bool = Field(default=True, description="Send the daily summary")
    daily_summary_recipient: str = Field(
        default="admin@tata.com",
        description="Recipient of the daily summary"
    )
    notify_on_alert_created: bool = Field(
        default=True,
        description="Email the responsible person when a new alert is created"
    )

    # ========== SMTP ==========
    smtp_host: Optional[str] = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port", ge=1, le=65535)
    smtp_user: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use STARTTLS")
    smtp_timeout_seconds: float = Field(default=30.0, description="SMTP timeout", ge=1)
    email_from: str = Field(default="sla-sentinel@localhost", description="Sender address")

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:4200"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Reject unknown deployment environments."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("alert_notify_tier")
    @classmethod
    def validate_notify_tier(cls, v: str) -> str:
        """Ensure the notify threshold is a known risk tier."""
        v = v.upper()
        if v not in RISK_TIERS:
            raise ValueError(f"alert_notify_tier must be one of {RISK_TIERS}")
        return v

    @field_validator("daily_summary_time")
    @classmethod
    def validate_summary_time(cls, v: str) -> str:
        """Ensure the daily summary time parses as HH:MM."""
        parse_clock_time(v)
        return v

    @property
    def daily_summary_clock(self) -> time:
        """Daily summary time as a ``datetime.time``."""
        return parse_clock_time(self.daily_summary_time)


def parse_clock_time(value: str) -> time:
    """Parse an ``HH:MM`` string."""
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError as e:
        raise ValueError(f"invalid HH:MM time '{value}'") from e


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


# ========== Constants ==========

class RiskTier(str):
    """Risk tiers, most severe first."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RequestState(str):
    """Request lifecycle states."""
    ACTIVE = "ACTIVE"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING = "PENDING"
    CLOSED = "CLOSED"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    DELETED = "DELETED"


class ComplianceTag(str):
    """Prefixes of the compliance outcome stored on closed requests."""
    MET_PREFIX = "CUMPLE_"
    BREACHED_PREFIX = "NO_CUMPLE_"


class AlertType(str):
    """Alert conditions tracked per request."""
    AT_RISK = "SLA_AT_RISK"
    BREACHED = "SLA_BREACHED"


class AlertState(str):
    """Alert lifecycle states."""
    UNREAD = "UNREAD"
    READ = "READ"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class EmailKind(str):
    """Kinds of notification recorded in the email log."""
    BROADCAST = "BROADCAST"
    DAILY_SUMMARY = "DAILY_SUMMARY"
    INDIVIDUAL = "INDIVIDUAL"


class EmailState(str):
    """Outcome of a notification attempt."""
    OK = "OK"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    SKIPPED = "SKIPPED"


# ========== Groupings used in queries and validation ==========

RISK_TIERS = [RiskTier.CRITICAL, RiskTier.HIGH, RiskTier.MEDIUM, RiskTier.LOW]
ACTIVE_REQUEST_STATES = [RequestState.ACTIVE, RequestState.IN_PROGRESS, RequestState.PENDING]
CLOSED_REQUEST_STATES = [RequestState.CLOSED, RequestState.INACTIVE, RequestState.EXPIRED]
OPEN_ALERT_STATES = [AlertState.UNREAD, AlertState.READ]

settings = get_settings()
