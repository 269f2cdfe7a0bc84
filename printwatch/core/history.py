"""Rolling fleet history: a bounded snapshot ring plus per-day rollups."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Sequence

from printwatch.core.models import (
    DailyAggregate,
    DailyDeviceStats,
    DeviceSample,
    DeviceSnapshot,
    HistorySnapshot,
    _now,
)

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Single writer of the history ring and the daily aggregates.

    Readers always receive copies, never the live containers.
    """

    def __init__(
        self,
        max_snapshots: int = 1440,
        retention_days: int = 30,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.max_snapshots = max_snapshots
        self.retention_days = retention_days
        self._clock = clock
        self._snapshots: deque[HistorySnapshot] = deque(maxlen=max_snapshots)
        self._daily: dict[str, DailyAggregate] = {}

    def record(self, devices: Sequence[DeviceSnapshot]) -> HistorySnapshot | None:
        """Append one fleet sample and fold it into today's aggregate."""
        if not devices:
            return None

        now = self._clock()
        snapshot = HistorySnapshot(
            timestamp=now,
            devices=tuple(DeviceSample.from_snapshot(d) for d in devices),
        )
        self._snapshots.append(snapshot)

        today = now.date().isoformat()
        aggregate = self._daily.setdefault(today, DailyAggregate(date=today))
        for sample in snapshot.devices:
            stats = aggregate.devices.setdefault(sample.address, DailyDeviceStats())
            if sample.total_pages is not None:
                if stats.page_count_start is None:
                    stats.page_count_start = sample.total_pages
                stats.page_count_end = sample.total_pages
            stats.samples += 1
            if sample.online:
                stats.online_samples += 1
            stats.supply_levels = list(sample.supplies)

        self._purge(now)
        logger.debug("History sample recorded (%d devices, ring %d)", len(devices), len(self._snapshots))
        return snapshot

    def _purge(self, now: datetime) -> None:
        cutoff = (now - timedelta(days=self.retention_days)).date().isoformat()
        for date in [d for d in self._daily if d < cutoff]:
            del self._daily[date]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def snapshots(self) -> list[HistorySnapshot]:
        return list(self._snapshots)

    def recent(self, window_minutes: int = 60) -> list[HistorySnapshot]:
        """Snapshots from the last ``window_minutes``, oldest first."""
        cutoff = self._clock() - timedelta(minutes=window_minutes)
        return [s for s in self._snapshots if s.timestamp >= cutoff]

    def daily(self, days: int = 7) -> list[DailyAggregate]:
        """The most recent ``days`` daily aggregates, oldest first."""
        dates = sorted(self._daily)[-days:] if days > 0 else []
        return [self._daily[d].model_copy(deep=True) for d in dates]

    def for_device(self, address: str, window_minutes: int = 60) -> dict[str, Any]:
        """Recent samples and daily rows for one device."""
        recent = [
            {"timestamp": s.timestamp, **sample.model_dump()}
            for s in self.recent(window_minutes)
            for sample in s.devices
            if sample.address == address
        ]
        daily = []
        for date in sorted(self._daily):
            stats = self._daily[date].devices.get(address)
            if stats is None:
                continue
            daily.append(
                {
                    "date": date,
                    "pages_printed": stats.pages_printed,
                    "total_pages": stats.page_count_end,
                    "uptime_percent": stats.uptime_percent,
                    "supply_levels": [s.model_dump() for s in stats.supply_levels],
                }
            )
        return {"address": address, "recent": recent, "daily": daily}

    def analytics(
        self, devices: Sequence[DeviceSnapshot], low_threshold: int = 20
    ) -> dict[str, Any]:
        """Fleet-wide printing totals, top printers and low supplies."""
        today = self._clock().date().isoformat()
        names = {d.address: d.display_name for d in devices}
        total_all_time = 0
        total_today = 0
        per_device: dict[str, dict[str, int]] = {}

        for date in sorted(self._daily):
            for address, stats in self._daily[date].devices.items():
                printed = stats.pages_printed
                total_all_time += printed
                if date == today:
                    total_today += printed
                entry = per_device.setdefault(address, {"total_printed": 0, "days_active": 0})
                entry["total_printed"] += printed
                entry["days_active"] += 1

        top = sorted(
            (
                {
                    "address": address,
                    "name": names.get(address, address),
                    "total_printed": entry["total_printed"],
                    "avg_per_day": round(entry["total_printed"] / entry["days_active"]),
                }
                for address, entry in per_device.items()
            ),
            key=lambda row: row["total_printed"],
            reverse=True,
        )[:5]

        low_supplies = sorted(
            (
                {
                    "address": d.address,
                    "printer_name": d.display_name,
                    "supply_name": s.name,
                    "percentage": s.percentage,
                }
                for d in devices
                for s in d.supplies
                if 0 <= s.percentage < low_threshold
            ),
            key=lambda row: row["percentage"],
        )

        return {
            "summary": {
                "total_pages_all_time": total_all_time,
                "total_pages_today": total_today,
                "days_tracked": len(self._daily),
                "printers_monitored": len(devices),
            },
            "top_printers": top,
            "low_supply_alerts": low_supplies,
            "last_updated": self._clock().isoformat(),
        }

    def restore(
        self, snapshots: Iterable[HistorySnapshot], daily: Iterable[DailyAggregate]
    ) -> None:
        """Load persisted history, keeping the ring bound."""
        self._snapshots = deque(snapshots, maxlen=self.max_snapshots)
        self._daily = {d.date: d for d in daily}
