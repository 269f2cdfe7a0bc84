"""Normalization of raw Printer-MIB table columns into supplies, trays and errors.

Raw walks come back as parallel columns (one list per table column). They are
merged row-wise first, then each row is validated and classified. Anything that
fails validation is dropped; nothing here raises on malformed device data.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, ConfigDict

from printwatch.core.models import (
    CapacityStatus,
    DeviceError,
    ErrorSeverity,
    Supply,
    SupplyType,
    Tray,
    TrayStatus,
    _now,
)

logger = logging.getLogger(__name__)

TRAY_KEYWORDS = (
    "tray",
    "drawer",
    "cassette",
    "bypass",
    "manual feed",
    "multi-purpose",
    "multipurpose",
    "mpt",
)

_SIGNED_INT = re.compile(r"[+-]?\d+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

# prtAlertSeverityLevel: other(1), critical(3), warning(4), warningBinaryChangeEvent(5)
_ALERT_SEVERITIES: dict[int, ErrorSeverity] = {
    3: ErrorSeverity.CRITICAL,
    4: ErrorSeverity.WARNING,
    5: ErrorSeverity.WARNING,
}


def parse_int(raw: str | int | None) -> int | None:
    """Parse an SNMP value as an integer, None when it isn't one."""
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def merge_columns(*columns: Sequence[str]) -> list[tuple[str, ...]]:
    """Zip parallel table columns into rows.

    Rows stop at the end of the shortest column, so a row is kept only when
    every column has a cell for it.
    """
    if not columns:
        return []
    length = min(len(c) for c in columns)
    return [tuple(c[i] for c in columns) for i in range(length)]


def validate_name(raw: str | None) -> str | None:
    """Trimmed name, or None if shorter than 3 characters or purely numeric."""
    if raw is None:
        return None
    name = raw.strip()
    if len(name) < 3 or name.isdigit():
        return None
    return name


def classify_supply(name: str) -> SupplyType | None:
    """Map a supply description to a recognized type; None means "other"."""
    lowered = name.lower()
    if any(k in lowered for k in ("toner", "ink", "cartridge")):
        return SupplyType.WASTE if "waste" in lowered else SupplyType.TONER
    if "drum" in lowered:
        return SupplyType.DRUM
    if "fuser" in lowered or "fixing" in lowered:
        return SupplyType.FUSER
    if "belt" in lowered or "transfer" in lowered:
        return SupplyType.TRANSFER
    if "maintenance" in lowered or "kit" in lowered:
        return SupplyType.MAINTENANCE
    return None


def parse_supplies(
    descriptions: Sequence[str], maxes: Sequence[str], levels: Sequence[str]
) -> list[Supply]:
    supplies: list[Supply] = []
    for raw_name, raw_max, raw_level in merge_columns(descriptions, maxes, levels):
        name = validate_name(raw_name)
        max_capacity = parse_int(raw_max)
        level = parse_int(raw_level)
        if name is None or max_capacity is None or level is None or max_capacity <= 0:
            continue
        supply_type = classify_supply(name)
        if supply_type is None:
            logger.debug("Dropping unclassified supply %r", name)
            continue
        supplies.append(
            Supply(name=name, level=level, max_capacity=max_capacity, type=supply_type)
        )
    return supplies


class TrayLevelKind(str, Enum):
    KNOWN = "known"
    HAS_PAPER = "has-paper"
    EMPTY = "empty"
    UNKNOWN = "unknown"


class TrayLevel(BaseModel):
    """Tagged form of a Printer-MIB capacity value.

    Positive values are literal sheet counts; 0 is empty; -1 and -3 mean paper
    is present in an unknown amount; every other value is unknown.
    """

    model_config = ConfigDict(frozen=True)

    kind: TrayLevelKind
    count: int | None = None

    @classmethod
    def from_raw(cls, raw: int | None) -> "TrayLevel":
        if raw is None:
            return cls(kind=TrayLevelKind.UNKNOWN)
        if raw > 0:
            return cls(kind=TrayLevelKind.KNOWN, count=raw)
        if raw == 0:
            return cls(kind=TrayLevelKind.EMPTY)
        if raw in (-1, -3):
            return cls(kind=TrayLevelKind.HAS_PAPER)
        return cls(kind=TrayLevelKind.UNKNOWN)

    @property
    def capacity_status(self) -> CapacityStatus | None:
        if self.kind is TrayLevelKind.HAS_PAPER:
            return CapacityStatus.HAS_PAPER
        if self.kind is TrayLevelKind.EMPTY:
            return CapacityStatus.EMPTY
        return None


def decode_tray_status(code: int | None) -> TrayStatus:
    """Decode a prtInputStatus sub-unit status bit field."""
    if code is None or code < 0:
        return TrayStatus.UNKNOWN
    if code & 32:
        return TrayStatus.OFFLINE
    if code & 16:
        return TrayStatus.ERROR
    return {
        0: TrayStatus.READY,
        2: TrayStatus.READY,
        4: TrayStatus.ACTIVE,
        6: TrayStatus.ACTIVE,
        1: TrayStatus.UNAVAILABLE,
        3: TrayStatus.BROKEN,
    }.get(code & 7, TrayStatus.UNKNOWN)


def normalize_media(raw: str | None) -> str | None:
    if raw is None:
        return None
    media = raw.strip()
    if not media or _SIGNED_INT.fullmatch(media):
        return None
    return media


def is_tray_name(name: str) -> bool:
    lowered = name.lower()
    return any(k in lowered for k in TRAY_KEYWORDS)


def parse_trays(
    names: Sequence[str],
    maxes: Sequence[str],
    levels: Sequence[str],
    statuses: Sequence[str],
    media: Sequence[str],
) -> list[Tray]:
    trays: list[Tray] = []
    seen: set[str] = set()
    rows = merge_columns(names, maxes, levels, statuses, media)
    for raw_name, raw_max, raw_level, raw_status, raw_media in rows:
        name = validate_name(raw_name)
        if name is None or _CONTROL_CHARS.search(name) or not is_tray_name(name):
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)

        level = TrayLevel.from_raw(parse_int(raw_level))
        trays.append(
            Tray(
                name=name,
                max_capacity=TrayLevel.from_raw(parse_int(raw_max)).count,
                current_level=level.count,
                status=decode_tray_status(parse_int(raw_status)),
                media_name=normalize_media(raw_media),
                capacity_status=level.capacity_status,
            )
        )
    return trays


def parse_alerts(
    severities: Sequence[str],
    descriptions: Sequence[str],
    now: datetime | None = None,
) -> list[DeviceError]:
    """Keep only critical and warning rows of the printer alert table."""
    timestamp = now or _now()
    errors: list[DeviceError] = []
    for raw_severity, raw_description in merge_columns(severities, descriptions):
        severity = _ALERT_SEVERITIES.get(parse_int(raw_severity))  # type: ignore[arg-type]
        if severity is None:
            continue
        errors.append(
            DeviceError(
                severity=severity,
                description=(raw_description or "").strip() or "Unspecified printer alert",
                timestamp=timestamp,
            )
        )
    return errors
