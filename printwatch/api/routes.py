"""REST API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from printwatch.api.schemas import (
    AcknowledgeRequest,
    AddPrinterRequest,
    AlertSettingsUpdate,
    CountResponse,
    EventResponse,
    HealthResponse,
    NotificationTestResponse,
    PrinterResponse,
    RefreshRequest,
    RefreshResponse,
    ScanRequest,
    ScanStatusResponse,
    StatsResponse,
)
from printwatch.config import AlertSettings
from printwatch.core.alerts import is_threshold_supply
from printwatch.core.fleet import ScanInProgressError
from printwatch.core.models import AlertEvent, DailyAggregate, DeviceStatus, HistorySnapshot, _now

if TYPE_CHECKING:
    from printwatch.main import PrintWatchService


_ACTIVE_STATUSES = (DeviceStatus.IDLE, DeviceStatus.PRINTING)


def create_routes(service: PrintWatchService) -> APIRouter:
    """Create the API router bound to a running service."""
    router = APIRouter(prefix="/api")
    monitor = service.monitor
    alerts = service.alerts
    history = service.history

    # ------------------------------------------------------------------
    # Printers
    # ------------------------------------------------------------------

    @router.get("/printers", response_model=list[PrinterResponse])
    async def list_printers(
        online: bool | None = Query(None, description="Filter by online status"),
    ) -> list[PrinterResponse]:
        devices = monitor.get_all()
        if online is not None:
            devices = [d for d in devices if d.online is online]
        return [PrinterResponse.from_snapshot(d) for d in devices]

    @router.post("/printers", response_model=PrinterResponse)
    async def add_printer(body: AddPrinterRequest) -> PrinterResponse:
        device = await monitor.add_device(body.address, body.community)
        return PrinterResponse.from_snapshot(device)

    # Registered before the {address} routes so "refresh" isn't taken as an address
    @router.post("/printers/refresh", response_model=RefreshResponse)
    async def refresh_all(body: RefreshRequest | None = None) -> RefreshResponse:
        count = await monitor.refresh_all(body.community if body else None)
        return RefreshResponse(refreshed=count)

    @router.get("/printers/{address}", response_model=PrinterResponse)
    async def get_printer(address: str) -> PrinterResponse:
        device = monitor.get(address)
        if not device:
            raise HTTPException(status_code=404, detail="Printer not found")
        return PrinterResponse.from_snapshot(device)

    @router.delete("/printers/{address}")
    async def remove_printer(address: str) -> dict[str, bool]:
        if not await monitor.remove_device(address):
            raise HTTPException(status_code=404, detail="Printer not found")
        return {"removed": True}

    @router.post("/printers/{address}/refresh", response_model=PrinterResponse)
    async def refresh_printer(
        address: str, body: RefreshRequest | None = None
    ) -> PrinterResponse:
        device = await monitor.refresh_one(address, body.community if body else None)
        if not device:
            raise HTTPException(status_code=404, detail="Printer not found")
        return PrinterResponse.from_snapshot(device)

    # ------------------------------------------------------------------
    # Discovery scan
    # ------------------------------------------------------------------

    @router.post("/scan", response_model=ScanStatusResponse, status_code=202)
    async def start_scan(body: ScanRequest) -> ScanStatusResponse:
        try:
            status = monitor.start_scan(body.prefix, body.community)
        except ScanInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return ScanStatusResponse(**status.model_dump())

    @router.get("/scan/status", response_model=ScanStatusResponse)
    async def scan_status() -> ScanStatusResponse:
        return ScanStatusResponse(**monitor.scan_status().model_dump())

    @router.post("/scan/cancel")
    async def cancel_scan() -> dict[str, bool]:
        return {"cancelled": monitor.cancel_scan()}

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    @router.get("/stats", response_model=StatsResponse)
    async def get_stats() -> StatsResponse:
        devices = monitor.get_all()
        low = service.settings.alerts.low_supply_threshold
        online = sum(1 for d in devices if d.online)
        scan = monitor.scan_status()
        return StatsResponse(
            total_printers=len(devices),
            online_count=online,
            offline_count=len(devices) - online,
            active_count=sum(1 for d in devices if d.status in _ACTIVE_STATUSES),
            low_supply_count=sum(
                1
                for d in devices
                if any(is_threshold_supply(s.name) and 0 <= s.percentage < low for s in d.supplies)
            ),
            unacknowledged_alerts=alerts.unacknowledged_count(),
            scanning=scan.scanning,
            last_scan=scan.last_scan,
        )

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", printers=len(monitor.get_all()), timestamp=_now())

    @router.get("/events", response_model=list[EventResponse])
    async def get_recent_events(
        limit: int = Query(100, ge=1, le=500),
    ) -> list[EventResponse]:
        events = service.event_bus.recent_events[:limit]
        return [
            EventResponse(
                event_type=e.event_type.value,
                address=e.alert.address if e.alert else None,
                timestamp=e.timestamp.isoformat(),
                details=e.details,
            )
            for e in events
        ]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @router.get("/history/snapshots", response_model=list[HistorySnapshot])
    async def history_snapshots(
        minutes: int = Query(60, ge=1, le=60 * 24 * 31),
    ) -> list[HistorySnapshot]:
        return history.recent(minutes)

    @router.get("/history/daily", response_model=list[DailyAggregate])
    async def history_daily(days: int = Query(7, ge=1, le=365)) -> list[DailyAggregate]:
        return history.daily(days)

    @router.get("/history/printer/{address}")
    async def history_printer(
        address: str,
        minutes: int = Query(60, ge=1, le=60 * 24 * 31),
    ) -> dict:
        return history.for_device(address, minutes)

    @router.get("/history/analytics")
    async def history_analytics() -> dict:
        return history.analytics(
            monitor.get_all(), service.settings.alerts.low_supply_threshold
        )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    @router.get("/alerts", response_model=list[AlertEvent])
    async def list_alerts(
        unacknowledged: bool = Query(False, description="Only unacknowledged alerts"),
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[AlertEvent]:
        events = alerts.list_alerts()
        if unacknowledged:
            events = [e for e in events if not e.acknowledged]
        return events[:limit]

    @router.get("/alerts/count", response_model=CountResponse)
    async def alert_count() -> CountResponse:
        return CountResponse(count=alerts.unacknowledged_count())

    @router.post("/alerts/acknowledge-all", response_model=CountResponse)
    async def acknowledge_all(body: AcknowledgeRequest | None = None) -> CountResponse:
        return CountResponse(count=alerts.acknowledge_all(body.by if body else "user"))

    @router.post("/alerts/{alert_id}/acknowledge", response_model=AlertEvent)
    async def acknowledge(alert_id: str, body: AcknowledgeRequest | None = None) -> AlertEvent:
        event = alerts.acknowledge(alert_id, body.by if body else "user")
        if not event:
            raise HTTPException(status_code=404, detail="Alert not found")
        return event

    @router.delete("/alerts/{alert_id}")
    async def delete_alert(alert_id: str) -> dict[str, bool]:
        if not alerts.delete_alert(alert_id):
            raise HTTPException(status_code=404, detail="Alert not found")
        return {"deleted": True}

    @router.delete("/alerts", response_model=CountResponse)
    async def clear_alerts() -> CountResponse:
        return CountResponse(count=alerts.clear_alerts())

    # ------------------------------------------------------------------
    # Settings & notifications
    # ------------------------------------------------------------------

    @router.get("/settings/alerts", response_model=AlertSettings)
    async def get_alert_settings() -> AlertSettings:
        return service.settings.alerts

    @router.put("/settings/alerts", response_model=AlertSettings)
    async def update_alert_settings(body: AlertSettingsUpdate) -> AlertSettings:
        merged = {**service.settings.alerts.model_dump(), **body.model_dump(exclude_none=True)}
        try:
            new_alerts = AlertSettings.model_validate(merged)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))
        service.update_settings(service.settings.model_copy(update={"alerts": new_alerts}))
        return new_alerts

    @router.post("/notifications/test", response_model=NotificationTestResponse)
    async def test_notification() -> NotificationTestResponse:
        results = await service.dispatcher.send_test()
        if not results:
            raise HTTPException(status_code=400, detail="No notification channels enabled")
        return NotificationTestResponse(
            sent=any(error is None for error in results.values()),
            channels=results,
        )

    return router
