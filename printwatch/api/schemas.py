"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from printwatch.core.models import (
    DeviceError,
    DeviceSnapshot,
    DeviceStatus,
    SupplyType,
    Tray,
)


class SupplyResponse(BaseModel):
    name: str
    level: int
    max_capacity: int
    type: SupplyType
    percentage: int


class PrinterResponse(BaseModel):
    address: str
    display_name: str
    name: str | None = None
    model: str | None = None
    serial: str | None = None
    sys_name: str | None = None
    location: str | None = None
    contact: str | None = None
    online: bool
    status: DeviceStatus
    total_pages: int | None = None
    supplies: list[SupplyResponse] = Field(default_factory=list)
    trays: list[Tray] = Field(default_factory=list)
    errors: list[DeviceError] = Field(default_factory=list)
    last_update: datetime
    last_online: datetime | None = None
    ever_polled: bool

    @classmethod
    def from_snapshot(cls, device: DeviceSnapshot) -> "PrinterResponse":
        data = device.model_dump(exclude={"supplies"})
        return cls(
            **data,
            display_name=device.display_name,
            ever_polled=device.ever_polled,
            supplies=[
                SupplyResponse(**s.model_dump(), percentage=s.percentage)
                for s in device.supplies
            ],
        )


class AddPrinterRequest(BaseModel):
    address: str = Field(min_length=1)
    community: str | None = None


class RefreshRequest(BaseModel):
    community: str | None = None


class RefreshResponse(BaseModel):
    refreshed: int


class ScanRequest(BaseModel):
    prefix: str
    community: str | None = None


class ScanStatusResponse(BaseModel):
    scanning: bool
    last_scan: datetime | None = None
    prefix: str | None = None
    found: list[str] = Field(default_factory=list)


class AlertSettingsUpdate(BaseModel):
    """Partial update of the alert settings; omitted fields keep their value."""

    enabled: bool | None = None
    low_supply_threshold: int | None = Field(None, ge=0, le=100)
    critical_supply_threshold: int | None = Field(None, ge=0, le=100)
    offline_minutes: float | None = Field(None, ge=0)
    cooldown_hours: float | None = Field(None, ge=0)


class AcknowledgeRequest(BaseModel):
    by: str = "user"


class CountResponse(BaseModel):
    count: int


class StatsResponse(BaseModel):
    total_printers: int
    online_count: int
    offline_count: int
    active_count: int
    low_supply_count: int
    unacknowledged_alerts: int
    scanning: bool
    last_scan: datetime | None = None


class HealthResponse(BaseModel):
    status: str
    printers: int
    timestamp: datetime


class EventResponse(BaseModel):
    event_type: str
    address: str | None = None
    timestamp: str
    details: dict[str, Any] = Field(default_factory=dict)


class NotificationTestResponse(BaseModel):
    sent: bool
    channels: dict[str, str | None] = Field(default_factory=dict)
