"""Fleet registry, periodic poll cycle and subnet discovery scan."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from datetime import datetime
from typing import Callable, Iterable

from printwatch.config import Settings
from printwatch.core.alerts import AlertEngine
from printwatch.core.events import EventBus
from printwatch.core.history import HistoryRecorder
from printwatch.core.models import (
    DeviceSnapshot,
    EventType,
    MonitorEvent,
    ScanStatus,
    _now,
)
from printwatch.core.poller import DevicePoller

logger = logging.getLogger(__name__)

PRINTER_KEYWORDS = (
    "printer",
    "hp",
    "canon",
    "brother",
    "epson",
    "xerox",
    "lexmark",
    "samsung",
    "ricoh",
    "kyocera",
    "zebra",
)

SCAN_HOSTS = range(1, 255)


class PrintWatchError(Exception):
    """Base class for PrintWatch operational errors."""


class ScanInProgressError(PrintWatchError):
    """Raised when a discovery scan is requested while another is running."""


def parse_prefix(prefix: str) -> str:
    """Validate a three-octet network prefix such as ``192.168.1``."""
    cleaned = prefix.strip().rstrip(".")
    if cleaned.count(".") != 2:
        raise ValueError(f"Invalid network prefix {prefix!r}; expected three octets like 192.168.1")
    ipaddress.IPv4Address(f"{cleaned}.1")
    return cleaned


def is_printer_description(description: str) -> bool:
    lowered = description.lower()
    return any(k in lowered for k in PRINTER_KEYWORDS)


class FleetMonitor:
    """Owns the device registry and coordinates polling, history and alerts.

    All registry writes happen under one asyncio lock. SNMP round trips run
    outside the lock; only the commit of a finished snapshot takes it.
    """

    def __init__(
        self,
        poller: DevicePoller,
        history: HistoryRecorder,
        alerts: AlertEngine,
        settings: Settings,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.poller = poller
        self.history = history
        self.alerts = alerts
        self.settings = settings
        self.event_bus = event_bus
        self._clock = clock
        self._devices: dict[str, DeviceSnapshot] = {}
        self._communities: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._polling = False
        self._scan = ScanStatus()
        self._scan_task: asyncio.Task[None] | None = None
        self._cancel_requested = False

    def update_settings(self, settings: Settings) -> None:
        """Apply reloaded settings from the next cycle on."""
        self.settings = settings
        self.poller.settings = settings
        self.alerts.update_settings(settings)

    def _publish(self, event_type: EventType, **details: str) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(MonitorEvent(event_type=event_type, details=details))

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def get_all(self) -> list[DeviceSnapshot]:
        return [d.model_copy(deep=True) for d in self._devices.values()]

    def get(self, address: str) -> DeviceSnapshot | None:
        device = self._devices.get(address)
        return device.model_copy(deep=True) if device else None

    def communities(self) -> dict[str, str]:
        return dict(self._communities)

    async def add_device(self, address: str, community: str | None = None) -> DeviceSnapshot:
        """Register a device and poll it immediately."""
        address = address.strip()
        community = community or self.settings.community
        previous = self._devices.get(address)
        snapshot = await self.poller.poll(address, community, previous)
        async with self._lock:
            self._devices[address] = snapshot
            self._communities[address] = community
        logger.info("Added printer %s (online=%s)", address, snapshot.online)
        return snapshot.model_copy(deep=True)

    async def remove_device(self, address: str) -> bool:
        async with self._lock:
            removed = self._devices.pop(address, None) is not None
            self._communities.pop(address, None)
        if removed:
            self.alerts.forget_device(address)
            logger.info("Removed printer %s", address)
        return removed

    async def refresh_one(
        self, address: str, community: str | None = None
    ) -> DeviceSnapshot | None:
        """Re-poll one registered device; None if it isn't registered."""
        snapshot = await self._refresh(address, community)
        return snapshot.model_copy(deep=True) if snapshot else None

    async def refresh_all(self, community: str | None = None) -> int:
        """Re-poll every registered device and return how many were polled."""
        snapshots = await self._poll_many(list(self._devices), community)
        return len(snapshots)

    async def _refresh(self, address: str, community: str | None) -> DeviceSnapshot | None:
        async with self._lock:
            previous = self._devices.get(address)
            if previous is None:
                return None
            community = community or self._communities.get(address, self.settings.community)

        snapshot = await self.poller.poll(address, community, previous)

        async with self._lock:
            if address not in self._devices:
                # Removed while the poll was in flight
                return None
            self._devices[address] = snapshot
            self._communities[address] = community
        return snapshot

    async def _poll_many(
        self, addresses: list[str], community: str | None = None
    ) -> list[DeviceSnapshot]:
        sem = asyncio.Semaphore(max(1, self.settings.max_concurrent_polls))

        async def _one(address: str) -> DeviceSnapshot | None:
            async with sem:
                return await self._refresh(address, community)

        results = await asyncio.gather(*(_one(a) for a in addresses), return_exceptions=True)
        snapshots: list[DeviceSnapshot] = []
        for address, result in zip(addresses, results):
            if isinstance(result, Exception):
                logger.warning("Refresh of %s failed: %s", address, result)
            elif result is not None:
                snapshots.append(result)
        return snapshots

    def restore(self, devices: Iterable[DeviceSnapshot], communities: dict[str, str]) -> None:
        """Load persisted devices at start-up."""
        for device in devices:
            self._devices[device.address] = device
            self._communities[device.address] = communities.get(
                device.address, self.settings.community
            )

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    async def poll_cycle(self) -> list[DeviceSnapshot]:
        """Poll the whole fleet, then sample history and evaluate alerts."""
        if self._scan.scanning:
            logger.info("Discovery scan in progress, skipping poll cycle")
            return []
        if self._polling:
            logger.warning("Poll cycle already in progress, skipping")
            return []

        self._polling = True
        try:
            addresses = list(self._devices)
            if addresses:
                logger.info("Auto-refreshing %d printers", len(addresses))
                await self._poll_many(addresses)

            devices = self.get_all()
            if self.settings.history_interval is None:
                self.history.record(devices)
            self.alerts.evaluate(devices)
            self._publish(EventType.POLL_COMPLETE, devices=str(len(devices)))
            return devices
        finally:
            self._polling = False

    def record_history(self) -> None:
        """History sample on its own cadence; may see a mix of fresh and stale snapshots."""
        self.history.record(self.get_all())

    # ------------------------------------------------------------------
    # Discovery scan
    # ------------------------------------------------------------------

    def scan_status(self) -> ScanStatus:
        return self._scan.model_copy(deep=True)

    def start_scan(self, prefix: str, community: str | None = None) -> ScanStatus:
        """Start a background scan of ``prefix``.1-254.

        Raises ScanInProgressError if a scan is already running and ValueError
        for a malformed prefix; neither touches the current scan state.
        """
        if self._scan.scanning:
            raise ScanInProgressError("Scan already in progress")
        prefix = parse_prefix(prefix)

        self._cancel_requested = False
        self._scan = ScanStatus(scanning=True, last_scan=self._scan.last_scan, prefix=prefix)
        self._scan_task = asyncio.get_running_loop().create_task(
            self._run_scan(prefix, community or self.settings.community)
        )
        return self.scan_status()

    def cancel_scan(self) -> bool:
        """Request cancellation; the batch in flight still completes."""
        if not self._scan.scanning:
            return False
        self._cancel_requested = True
        logger.info("Cancellation requested for scan of %s", self._scan.prefix)
        return True

    async def wait_for_scan(self) -> ScanStatus:
        if self._scan_task is not None:
            await self._scan_task
        return self.scan_status()

    async def _run_scan(self, prefix: str, community: str) -> None:
        logger.info("Scanning network %s.1-254...", prefix)
        self._publish(EventType.SCAN_STARTED, prefix=prefix)
        hosts = list(SCAN_HOSTS)
        batch_size = max(1, self.settings.scan_batch_size)
        try:
            for start in range(0, len(hosts), batch_size):
                if self._cancel_requested:
                    logger.info("Scan of %s cancelled", prefix)
                    break
                addresses = [f"{prefix}.{h}" for h in hosts[start:start + batch_size]]
                descriptions = await asyncio.gather(
                    *(self.poller.probe(a, community) for a in addresses)
                )
                for address, description in zip(addresses, descriptions):
                    if description and is_printer_description(description):
                        logger.info("Found printer at %s", address)
                        await self._register_discovered(address, community)
                        self._scan.found.append(address)
        except Exception as exc:
            logger.error("Scan of %s failed: %s", prefix, exc)
        finally:
            self._scan.scanning = False
            self._scan.last_scan = self._clock()
            logger.info("Scan complete. Found %d printers.", len(self._scan.found))
            self._publish(EventType.SCAN_COMPLETE, prefix=prefix, found=str(len(self._scan.found)))

    async def _register_discovered(self, address: str, community: str) -> None:
        previous = self._devices.get(address)
        snapshot = await self.poller.poll(address, community, previous)
        async with self._lock:
            self._devices[address] = snapshot
            self._communities[address] = community
