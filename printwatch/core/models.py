"""Device, history and alert models for PrintWatch."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DeviceStatus(str, Enum):
    OTHER = "other"
    UNKNOWN = "unknown"
    IDLE = "idle"
    PRINTING = "printing"
    WARMUP = "warmup"
    WAITING = "waiting"
    OFFLINE = "offline"

    @classmethod
    def from_code(cls, code: int) -> "DeviceStatus":
        """Map an hrPrinterStatus-style integer to a status."""
        return _STATUS_CODES.get(code, cls.UNKNOWN)


_STATUS_CODES: dict[int, DeviceStatus] = {
    1: DeviceStatus.OTHER,
    2: DeviceStatus.UNKNOWN,
    3: DeviceStatus.IDLE,
    4: DeviceStatus.PRINTING,
    5: DeviceStatus.WARMUP,
    6: DeviceStatus.WAITING,
}


class SupplyType(str, Enum):
    TONER = "toner"
    DRUM = "drum"
    FUSER = "fuser"
    TRANSFER = "transfer"
    MAINTENANCE = "maintenance"
    WASTE = "waste"


class TrayStatus(str, Enum):
    READY = "ready"
    ACTIVE = "active"
    UNAVAILABLE = "unavailable"
    BROKEN = "broken"
    ERROR = "error"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class CapacityStatus(str, Enum):
    HAS_PAPER = "has-paper"
    EMPTY = "empty"


class ErrorSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class AlertType(str, Enum):
    OFFLINE = "offline"
    BACK_ONLINE = "back-online"
    LOW_SUPPLY = "low-supply"
    CRITICAL_SUPPLY = "critical-supply"


class EventType(str, Enum):
    ALERT = "alert"
    SCAN_STARTED = "scan_started"
    SCAN_COMPLETE = "scan_complete"
    POLL_COMPLETE = "poll_complete"


def _now() -> datetime:
    return datetime.now().astimezone()


def supply_percentage(level: int, max_capacity: int) -> int:
    """Remaining percentage of a supply, 0 when the capacity is unusable."""
    if max_capacity <= 0:
        return 0
    return round(level / max_capacity * 100)


class Supply(BaseModel):
    """A consumable reported by the printer's marker supplies table."""

    name: str
    level: int
    max_capacity: int
    type: SupplyType

    @property
    def percentage(self) -> int:
        return supply_percentage(self.level, self.max_capacity)


class Tray(BaseModel):
    """A paper input reported by the printer's input table."""

    name: str
    max_capacity: int | None = None
    current_level: int | None = None
    status: TrayStatus = TrayStatus.UNKNOWN
    media_name: str | None = None
    capacity_status: CapacityStatus | None = None


class DeviceError(BaseModel):
    severity: ErrorSeverity
    description: str
    timestamp: datetime = Field(default_factory=_now)


class DeviceSnapshot(BaseModel):
    """Canonical state of one monitored printer, keyed by address."""

    address: str  # Primary key, IPv4 address
    name: str | None = None
    model: str | None = None
    serial: str | None = None
    sys_name: str | None = None
    location: str | None = None
    contact: str | None = None
    online: bool = False
    status: DeviceStatus = DeviceStatus.UNKNOWN
    total_pages: int | None = None
    supplies: list[Supply] = Field(default_factory=list)
    trays: list[Tray] = Field(default_factory=list)
    errors: list[DeviceError] = Field(default_factory=list)
    last_update: datetime = Field(default_factory=_now)
    last_online: datetime | None = None

    @property
    def display_name(self) -> str:
        """Best available name for display purposes."""
        return self.sys_name or self.name or self.address

    @property
    def ever_polled(self) -> bool:
        return self.last_online is not None


class SupplyLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    percentage: int


class DeviceSample(BaseModel):
    """One device's state as captured by a history snapshot."""

    model_config = ConfigDict(frozen=True)

    address: str
    name: str | None = None
    status: DeviceStatus
    online: bool
    total_pages: int | None = None
    supplies: tuple[SupplyLevel, ...] = ()

    @classmethod
    def from_snapshot(cls, device: DeviceSnapshot) -> "DeviceSample":
        return cls(
            address=device.address,
            name=device.name,
            status=device.status,
            online=device.online,
            total_pages=device.total_pages,
            supplies=tuple(
                SupplyLevel(name=s.name, percentage=s.percentage) for s in device.supplies
            ),
        )


class HistorySnapshot(BaseModel):
    """Immutable fleet sample stored in the history ring."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_now)
    devices: tuple[DeviceSample, ...] = ()


class DailyDeviceStats(BaseModel):
    page_count_start: int | None = None
    page_count_end: int | None = None
    samples: int = 0
    online_samples: int = 0
    supply_levels: list[SupplyLevel] = Field(default_factory=list)

    @property
    def pages_printed(self) -> int:
        if self.page_count_start is None or self.page_count_end is None:
            return 0
        return self.page_count_end - self.page_count_start

    @property
    def uptime_percent(self) -> int:
        return round(self.online_samples / (self.samples or 1) * 100)


class DailyAggregate(BaseModel):
    """Per-calendar-day rollup, keyed by ISO date."""

    date: str
    devices: dict[str, DailyDeviceStats] = Field(default_factory=dict)


class AlertEvent(BaseModel):
    """A fired alert, kept in the alert log until deleted."""

    id: str
    type: AlertType
    address: str
    device_name: str
    supply_name: str | None = None
    subject: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None


class MonitorEvent(BaseModel):
    """An event published on the in-process event bus."""

    event_type: EventType
    alert: AlertEvent | None = None
    timestamp: datetime = Field(default_factory=_now)
    details: dict[str, str] = Field(default_factory=dict)


class ScanStatus(BaseModel):
    scanning: bool = False
    last_scan: datetime | None = None
    prefix: str | None = None
    found: list[str] = Field(default_factory=list)
