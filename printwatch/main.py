"""Main entry point: wires SNMP, fleet monitor, alerts, history, persistence and the API server."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from printwatch.config import Settings, get_settings
from printwatch.core.alerts import AlertEngine
from printwatch.core.db import PrinterDatabase
from printwatch.core.events import EventBus
from printwatch.core.fleet import FleetMonitor
from printwatch.core.history import HistoryRecorder
from printwatch.core.notify import NotificationDispatcher
from printwatch.core.poller import DevicePoller
from printwatch.core.snmp import SnmpClient

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class PrintWatchService:
    """Builds and owns every long-lived component of a running monitor."""

    def __init__(
        self,
        settings: Settings,
        snmp: SnmpClient | None = None,
        db: PrinterDatabase | None = None,
    ) -> None:
        self.settings = settings
        self.snmp = snmp or SnmpClient(
            port=settings.snmp_port,
            timeout=settings.snmp_timeout,
            retries=settings.snmp_retries,
        )
        self.db = db
        self.event_bus = EventBus()
        self.dispatcher = NotificationDispatcher(settings)
        self.alerts = AlertEngine(settings, self.event_bus, self.dispatcher)
        self.history = HistoryRecorder(
            max_snapshots=settings.max_snapshots,
            retention_days=settings.daily_retention_days,
        )
        self.poller = DevicePoller(self.snmp, settings)
        self.monitor = FleetMonitor(
            self.poller, self.history, self.alerts, settings, self.event_bus
        )

    def update_settings(self, settings: Settings) -> None:
        """Apply new settings to every component; takes effect on the next cycle."""
        self.settings = settings
        self.dispatcher.update_settings(settings)
        self.monitor.update_settings(settings)

    async def load(self) -> None:
        """Restore persisted devices, alerts and history."""
        if self.db is None:
            return
        devices, communities = await self.db.load_devices()
        self.monitor.restore(devices, communities)
        self.alerts.restore(await self.db.load_alerts())
        snapshots, daily = await self.db.load_history()
        self.history.restore(snapshots, daily)
        logger.info(
            "Loaded %d printers, %d alerts, %d history snapshots",
            len(devices),
            self.alerts.unacknowledged_count(),
            len(snapshots),
        )

    async def save(self) -> None:
        if self.db is None:
            return
        await self.db.save_devices(self.monitor.get_all(), self.monitor.communities())
        # Stored oldest first so load order matches the in-memory log
        await self.db.save_alerts(list(reversed(self.alerts.list_alerts())))
        await self.db.save_history(self.history.snapshots, self.history.daily(days=10_000))
        logger.debug("State saved")

    async def close(self) -> None:
        self.snmp.close()
        if self.db is not None:
            await self.db.close()


async def _every(
    interval: float, job: Callable[[], Awaitable[object]], name: str
) -> None:
    """Run ``job`` every ``interval`` seconds; a failure is retried on the next tick."""
    while True:
        await asyncio.sleep(interval)
        try:
            await job()
        except Exception as exc:
            logger.error("%s failed: %s", name, exc)


async def _record_history(service: PrintWatchService) -> None:
    service.monitor.record_history()


def start_background_tasks(service: PrintWatchService) -> list[asyncio.Task[None]]:
    settings = service.settings
    tasks = [
        asyncio.create_task(_every(settings.poll_interval, service.monitor.poll_cycle, "Poll cycle")),
        asyncio.create_task(_every(settings.save_interval, service.save, "Save")),
    ]
    if settings.history_interval:
        tasks.append(
            asyncio.create_task(
                _every(settings.history_interval, lambda: _record_history(service), "History sample")
            )
        )
    return tasks


async def run_server(
    host: str = "127.0.0.1",
    port: int = 5000,
    with_polling: bool = True,
) -> None:
    """Start the API server, optionally with background polling."""
    import uvicorn

    from printwatch.api.server import create_app

    settings = get_settings(api_host=host, api_port=port)
    setup_logging(settings.log_level)

    db = PrinterDatabase(settings.resolved_db_path)
    await db.initialize()

    service = PrintWatchService(settings, db=db)
    await service.load()

    app = create_app(service)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)

    tasks: list[asyncio.Task[None]] = []
    if with_polling:
        # First cycle right away rather than one interval after start-up
        tasks.append(asyncio.create_task(service.monitor.poll_cycle()))
        tasks.extend(start_background_tasks(service))
    try:
        await server.serve()
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        try:
            await service.save()
        except Exception as exc:
            logger.error("Final save failed: %s", exc)
        await service.close()
