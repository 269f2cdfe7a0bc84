"""Pydantic settings for PrintWatch configuration."""

from __future__ import annotations

from datetime import time
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_SLOW_KEYWORDS = ["kyocera", "sharp", "konica"]


def _load_yaml_config() -> dict[str, Any]:
    """Load config from ~/.printwatch/config.yaml, falling back to project config.yaml."""
    user_cfg = Path.home() / ".printwatch" / "config.yaml"
    if user_cfg.exists():
        with open(user_cfg) as f:
            return yaml.safe_load(f) or {}
    project_cfg = Path(__file__).parent.parent / "config.yaml"
    if project_cfg.exists():
        with open(project_cfg) as f:
            return yaml.safe_load(f) or {}
    return {}


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a :class:`datetime.time`."""
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


class AlertSettings(BaseModel):
    """Thresholds and spam suppression for the alert engine."""

    enabled: bool = True
    low_supply_threshold: int = Field(20, ge=0, le=100)
    critical_supply_threshold: int = Field(10, ge=0, le=100)
    offline_minutes: float = Field(5, ge=0)
    cooldown_hours: float = Field(4, ge=0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "AlertSettings":
        if self.critical_supply_threshold >= self.low_supply_threshold:
            raise ValueError("critical_supply_threshold must be below low_supply_threshold")
        return self


class NotificationSchedule(BaseModel):
    """When notifications may be dispatched.

    ``always`` never gates. ``business-hours`` allows Monday to Friday between
    ``start_time`` and ``end_time``. ``scheduled`` allows the listed ``days``
    (0 = Monday, as ``datetime.weekday()``) between the same times.
    """

    mode: Literal["always", "business-hours", "scheduled"] = "always"
    start_time: str = "08:00"
    end_time: str = "18:00"
    days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4])

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @field_validator("days")
    @classmethod
    def _valid_days(cls, v: list[int]) -> list[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days must be weekday numbers 0-6")
        return sorted(set(v))


class EmailSettings(BaseModel):
    enabled: bool = False
    host: str = ""
    port: int = 587
    use_tls: bool = True
    user: str = ""
    password: str = ""
    sender: str | None = None
    recipients: list[str] = Field(default_factory=list)


class WebhookSettings(BaseModel):
    url: str
    enabled: bool = True
    name: str | None = None


class NotificationSettings(BaseModel):
    schedule: NotificationSchedule = Field(default_factory=NotificationSchedule)
    email: EmailSettings = Field(default_factory=EmailSettings)
    webhooks: list[WebhookSettings] = Field(default_factory=list)
    webhook_timeout: float = 10.0


class Settings(BaseSettings):
    """PrintWatch application settings.

    Priority (highest → lowest): environment variables → config.yaml → defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="PRINTWATCH_",
        env_nested_delimiter="__",
    )

    # SNMP
    community: str = "public"
    snmp_port: int = 161
    snmp_timeout: float = 2.0
    snmp_retries: int = 1
    slow_device_keywords: list[str] = Field(default_factory=lambda: list(_DEFAULT_SLOW_KEYWORDS))
    slow_snmp_timeout: float = 5.0
    slow_snmp_retries: int = 3

    # Scheduling
    poll_interval: int = 60
    history_interval: int | None = None
    save_interval: int = 300
    max_concurrent_polls: int = 5
    scan_batch_size: int = 10

    # Retention
    max_snapshots: int = 1440
    daily_retention_days: int = 30
    max_alerts: int = 1000

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 5000

    # Logging
    log_level: str = "INFO"

    # Database
    db_path: str | None = None

    alerts: AlertSettings = Field(default_factory=AlertSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        yaml_values = _load_yaml_config()
        # YAML values serve as defaults; explicit env/init values take priority
        merged = {**yaml_values, **{k: v for k, v in values.items() if v is not None}}
        return merged

    @property
    def resolved_db_path(self) -> Path:
        if self.db_path:
            return Path(self.db_path)
        return Path.home() / ".printwatch" / "printwatch.db"


def get_settings(**overrides: Any) -> Settings:
    """Create a Settings instance, optionally with overrides."""
    return Settings(**overrides)
