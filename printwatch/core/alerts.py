"""Alert evaluation with offline timers, supply thresholds and cooldown suppression.

Evaluation and acknowledgement only touch the cooldown and offline-timer maps
from synchronous code, so on a single event loop they never interleave.
Notification dispatch is scheduled as a background task and never delays or
prevents the creation of an alert event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from printwatch.config import Settings
from printwatch.core.events import EventBus
from printwatch.core.models import (
    AlertEvent,
    AlertType,
    DeviceSnapshot,
    EventType,
    MonitorEvent,
    Supply,
    _now,
)
from printwatch.core.schedule import next_window_opening, schedule_allows

logger = logging.getLogger(__name__)

CooldownKey = tuple[str, AlertType, str | None]


def is_threshold_supply(name: str) -> bool:
    """Only toner/ink supplies are checked against thresholds; drums and fusers never are."""
    lowered = name.lower()
    if "drum" in lowered or "fuser" in lowered:
        return False
    return "toner" in lowered or "ink" in lowered


def _format_duration(delta: timedelta) -> str:
    minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


class AlertEngine:
    """Evaluates freshly polled devices and keeps the alert log."""

    def __init__(
        self,
        settings: Settings,
        event_bus: EventBus | None = None,
        notifier: Any = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.settings = settings
        self.event_bus = event_bus
        self.notifier = notifier
        self._clock = clock
        self._events: list[AlertEvent] = []
        self._cooldowns: dict[CooldownKey, datetime] = {}
        self._offline_since: dict[str, datetime] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def update_settings(self, settings: Settings) -> None:
        """Swap in new settings; they apply from the next evaluation."""
        self.settings = settings

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, devices: Iterable[DeviceSnapshot]) -> list[AlertEvent]:
        """Evaluate every device and return the alerts that fired."""
        if not self.settings.alerts.enabled:
            return []

        now = self._clock()
        fired: list[AlertEvent] = []
        for device in devices:
            fired.extend(self._evaluate_device(device, now))

        if fired:
            self._events.extend(fired)
            overflow = len(self._events) - self.settings.max_alerts
            if overflow > 0:
                del self._events[:overflow]

        for event in fired:
            logger.info("Alert %s: %s", event.type.value, event.subject)
            if self.event_bus is not None:
                self.event_bus.publish(MonitorEvent(event_type=EventType.ALERT, alert=event))
            self._notify(event)
        return fired

    def _evaluate_device(self, device: DeviceSnapshot, now: datetime) -> list[AlertEvent]:
        cfg = self.settings.alerts
        events: list[AlertEvent] = []
        started = self._offline_since.get(device.address)

        if not device.online:
            if started is None:
                self._offline_since[device.address] = now
            elif now - started >= timedelta(minutes=cfg.offline_minutes):
                minutes = int((now - started).total_seconds() // 60)
                event = self._fire(
                    AlertType.OFFLINE,
                    device,
                    now,
                    subject=f"Printer offline: {device.display_name}",
                    message=(
                        f"{device.display_name} ({device.address}) has not responded "
                        f"for {minutes} minutes."
                    ),
                    details={
                        "offline_since": started.isoformat(),
                        "offline_minutes": minutes,
                    },
                )
                if event is not None:
                    events.append(event)
            return events

        if started is not None:
            del self._offline_since[device.address]
            downtime = now - started
            events.append(
                self._new_event(
                    AlertType.BACK_ONLINE,
                    device,
                    now,
                    subject=f"Printer back online: {device.display_name}",
                    message=(
                        f"{device.display_name} ({device.address}) is responding again "
                        f"after {_format_duration(downtime)} offline."
                    ),
                    details={
                        "offline_since": started.isoformat(),
                        "downtime_minutes": round(downtime.total_seconds() / 60, 1),
                    },
                )
            )

        for supply in device.supplies:
            event = self._evaluate_supply(device, supply, now)
            if event is not None:
                events.append(event)
        return events

    def _evaluate_supply(
        self, device: DeviceSnapshot, supply: Supply, now: datetime
    ) -> AlertEvent | None:
        if not is_threshold_supply(supply.name):
            return None
        cfg = self.settings.alerts
        pct = supply.percentage
        if 0 <= pct < cfg.critical_supply_threshold:
            alert_type, threshold, label = AlertType.CRITICAL_SUPPLY, cfg.critical_supply_threshold, "Critical"
        elif cfg.critical_supply_threshold <= pct < cfg.low_supply_threshold:
            alert_type, threshold, label = AlertType.LOW_SUPPLY, cfg.low_supply_threshold, "Low"
        else:
            return None

        return self._fire(
            alert_type,
            device,
            now,
            supply_name=supply.name,
            subject=f"{label} supply: {supply.name} on {device.display_name}",
            message=(
                f"{supply.name} on {device.display_name} ({device.address}) is at "
                f"{pct}% (threshold {threshold}%)."
            ),
            details={
                "percentage": pct,
                "threshold": threshold,
                "level": supply.level,
                "max_capacity": supply.max_capacity,
                "supply_type": supply.type.value,
            },
        )

    def _fire(
        self,
        alert_type: AlertType,
        device: DeviceSnapshot,
        now: datetime,
        *,
        supply_name: str | None = None,
        subject: str,
        message: str,
        details: dict[str, Any],
    ) -> AlertEvent | None:
        """Create an event unless the same condition fired within the cooldown."""
        key: CooldownKey = (device.address, alert_type, supply_name)
        last = self._cooldowns.get(key)
        if last is not None and now - last < timedelta(hours=self.settings.alerts.cooldown_hours):
            logger.debug("Suppressed %s for %s (cooldown)", alert_type.value, device.address)
            return None
        self._cooldowns[key] = now
        return self._new_event(
            alert_type,
            device,
            now,
            supply_name=supply_name,
            subject=subject,
            message=message,
            details=details,
        )

    @staticmethod
    def _new_event(
        alert_type: AlertType,
        device: DeviceSnapshot,
        now: datetime,
        *,
        supply_name: str | None = None,
        subject: str,
        message: str,
        details: dict[str, Any],
    ) -> AlertEvent:
        return AlertEvent(
            id=uuid.uuid4().hex,
            type=alert_type,
            address=device.address,
            device_name=device.display_name,
            supply_name=supply_name,
            subject=subject,
            message=message,
            details=details,
            created_at=now,
        )

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _notify(self, event: AlertEvent) -> None:
        if self.notifier is None:
            return
        schedule = self.settings.notifications.schedule
        if not schedule_allows(schedule, event.created_at):
            logger.info(
                "Notification for %s skipped by %s schedule (next window opens %s)",
                event.subject,
                schedule.mode,
                next_window_opening(schedule, event.created_at),
            )
            return
        task = asyncio.get_running_loop().create_task(self._dispatch(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, event: AlertEvent) -> None:
        try:
            await self.notifier.dispatch(event.subject, event.message, event.type.value)
        except Exception as exc:
            logger.warning("Dispatch of alert %s failed: %s", event.id, exc)

    # ------------------------------------------------------------------
    # Alert log
    # ------------------------------------------------------------------

    def list_alerts(self) -> list[AlertEvent]:
        """All alerts, newest first."""
        return [e.model_copy() for e in reversed(self._events)]

    def unacknowledged_count(self) -> int:
        return sum(1 for e in self._events if not e.acknowledged)

    def _acknowledge(self, event: AlertEvent, by: str, now: datetime) -> None:
        event.acknowledged = True
        event.acknowledged_by = by
        event.acknowledged_at = now
        # Acknowledging re-arms the condition immediately
        self._cooldowns.pop((event.address, event.type, event.supply_name), None)

    def acknowledge(self, alert_id: str, by: str = "user") -> AlertEvent | None:
        for event in self._events:
            if event.id == alert_id:
                self._acknowledge(event, by, self._clock())
                return event.model_copy()
        return None

    def acknowledge_all(self, by: str = "user") -> int:
        now = self._clock()
        count = 0
        for event in self._events:
            if not event.acknowledged:
                self._acknowledge(event, by, now)
                count += 1
        return count

    def delete_alert(self, alert_id: str) -> bool:
        for i, event in enumerate(self._events):
            if event.id == alert_id:
                del self._events[i]
                return True
        return False

    def clear_alerts(self) -> int:
        count = len(self._events)
        self._events.clear()
        return count

    def forget_device(self, address: str) -> None:
        """Drop the offline timer of a device that is no longer monitored."""
        self._offline_since.pop(address, None)

    def restore(self, events: Iterable[AlertEvent]) -> None:
        """Load persisted alerts (oldest first). Cooldowns are not persisted."""
        self._events = list(events)[-self.settings.max_alerts:]
