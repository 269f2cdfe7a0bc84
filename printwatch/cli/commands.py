"""CLI command implementations for PrintWatch."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from printwatch.config import get_settings
from printwatch.core.db import PrinterDatabase
from printwatch.core.models import AlertEvent, DeviceSnapshot, ScanStatus
from printwatch.main import PrintWatchService

console = Console()


def _setup_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _trunc(text: str, width: int) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"


def _ip_sort_key(d: DeviceSnapshot) -> tuple[int, tuple[int, ...]]:
    """Sort key: online first, then by IP address numerically."""
    try:
        octets = tuple(int(p) for p in d.address.split("."))
    except ValueError:
        octets = (999,)
    return (0 if d.online else 1, octets)


def _pct_style(pct: int, low: int, critical: int) -> str:
    if pct < critical:
        return f"[bold red]{pct}%[/]"
    if pct < low:
        return f"[yellow]{pct}%[/]"
    return f"[green]{pct}%[/]"


def _build_printer_table(
    devices: list[DeviceSnapshot], title: str = "Printers", low: int = 20, critical: int = 10
) -> Table:
    """Build a compact Rich table of printers with their lowest supply."""
    table = Table(
        title=title,
        show_lines=False,
        expand=True,
        padding=(0, 1),
        title_style="bold cyan",
        border_style="bright_black",
    )
    table.add_column("S", width=2, justify="center", no_wrap=True)
    table.add_column("Address", min_width=11, max_width=15, no_wrap=True)
    table.add_column("Name", no_wrap=True, ratio=2)
    table.add_column("Status", width=9, no_wrap=True)
    table.add_column("Pages", width=9, justify="right", no_wrap=True)
    table.add_column("Lowest supply", no_wrap=True, ratio=1)
    table.add_column("Updated", width=8, no_wrap=True, justify="right")

    for device in sorted(devices, key=_ip_sort_key):
        status = "[bold green]ON[/]" if device.online else "[red]--[/]"
        lowest = min(device.supplies, key=lambda s: s.percentage, default=None)
        supply = (
            f"{_trunc(lowest.name, 20)} {_pct_style(lowest.percentage, low, critical)}"
            if lowest
            else "-"
        )
        table.add_row(
            status,
            device.address,
            _trunc(device.display_name, 40),
            device.status.value,
            str(device.total_pages) if device.total_pages is not None else "-",
            supply,
            device.last_update.strftime("%H:%M:%S"),
            style="" if device.online else "dim",
        )
    return table


def _print_device(device: DeviceSnapshot, low: int = 20, critical: int = 10) -> None:
    panel_text = (
        f"[bold]Address:[/]   {device.address}\n"
        f"[bold]Model:[/]     {device.name or 'N/A'}\n"
        f"[bold]Serial:[/]    {device.serial or 'N/A'}\n"
        f"[bold]Location:[/]  {device.location or 'N/A'}\n"
        f"[bold]Contact:[/]   {device.contact or 'N/A'}\n"
        f"[bold]Online:[/]    {'Yes' if device.online else 'No'}\n"
        f"[bold]Status:[/]    {device.status.value}\n"
        f"[bold]Pages:[/]     {device.total_pages if device.total_pages is not None else 'N/A'}\n"
        f"[bold]Updated:[/]   {device.last_update.strftime('%Y-%m-%d %H:%M:%S')}"
    )
    console.print(Panel(panel_text, title=device.display_name, border_style="cyan"))

    if device.supplies:
        supplies = Table(title="Supplies", title_style="bold", border_style="bright_black")
        supplies.add_column("Name")
        supplies.add_column("Type")
        supplies.add_column("Level", justify="right")
        for s in device.supplies:
            supplies.add_row(s.name, s.type.value, _pct_style(s.percentage, low, critical))
        console.print(supplies)

    if device.trays:
        trays = Table(title="Trays", title_style="bold", border_style="bright_black")
        trays.add_column("Name")
        trays.add_column("Status")
        trays.add_column("Level", justify="right")
        trays.add_column("Media")
        for t in device.trays:
            if t.current_level is not None:
                level = f"{t.current_level}/{t.max_capacity or '?'}"
            else:
                level = t.capacity_status.value if t.capacity_status else "-"
            trays.add_row(t.name, t.status.value, level, t.media_name or "-")
        console.print(trays)

    for error in device.errors:
        colour = "red" if error.severity.value == "critical" else "yellow"
        console.print(f"[{colour}]{error.severity.value.upper()}:[/] {error.description}")


async def _open_service() -> PrintWatchService:
    settings = get_settings()
    db = PrinterDatabase(settings.resolved_db_path)
    await db.initialize()
    service = PrintWatchService(settings, db=db)
    await service.load()
    return service


def cmd_poll(
    address: str = typer.Argument(help="IP address of the printer."),
    community: Optional[str] = typer.Option(None, "--community", "-c", help="SNMP community."),
    save: bool = typer.Option(True, "--save/--no-save", help="Register the printer in the database."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    """Poll a single printer and print its current state."""
    _setup_logging(log_level)

    async def _poll() -> tuple[DeviceSnapshot, int, int]:
        service = await _open_service()
        try:
            device = await service.monitor.add_device(address, community)
            if save:
                await service.save()
            cfg = service.settings.alerts
            return device, cfg.low_supply_threshold, cfg.critical_supply_threshold
        finally:
            await service.close()

    device, low, critical = asyncio.run(_poll())
    if not device.online:
        console.print(f"[red]{address} did not respond to SNMP.[/]")
        raise typer.Exit(1)
    _print_device(device, low, critical)


def cmd_scan(
    prefix: str = typer.Argument(help="First three octets of the subnet, e.g. 192.168.1"),
    community: Optional[str] = typer.Option(None, "--community", "-c", help="SNMP community."),
    save: bool = typer.Option(True, "--save/--no-save", help="Store discovered printers."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level."),
) -> None:
    """Scan PREFIX.1-254 for SNMP printers and display results."""
    _setup_logging(log_level)

    async def _scan() -> tuple[ScanStatus, list[DeviceSnapshot]]:
        service = await _open_service()
        try:
            service.monitor.start_scan(prefix, community)
            console.print(f"[bold]Scanning[/] {prefix}.1-254...", highlight=False)
            status = await service.monitor.wait_for_scan()
            if save:
                await service.save()
            found = [d for d in service.monitor.get_all() if d.address in status.found]
            return status, found
        finally:
            await service.close()

    try:
        status, devices = asyncio.run(_scan())
    except ValueError as exc:
        console.print(f"[red]{exc}[/]")
        raise typer.Exit(2)

    if not devices:
        console.print("[yellow]No printers found.[/]")
        raise typer.Exit(0)

    console.print()
    console.print(_build_printer_table(devices, title=f"Printers on {status.prefix}.0/24"))
    console.print(f"\n  [bold]{len(devices)}[/] printers found.\n")


def cmd_devices(
    online: bool = typer.Option(False, "--online", help="Show only online printers."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l"),
) -> None:
    """List all known printers from the database."""
    _setup_logging(log_level)

    async def _list() -> list[DeviceSnapshot]:
        settings = get_settings()
        db = PrinterDatabase(settings.resolved_db_path)
        await db.initialize()
        devices, _ = await db.load_devices()
        await db.close()
        return devices

    devices = asyncio.run(_list())
    if online:
        devices = [d for d in devices if d.online]

    if not devices:
        console.print("[yellow]No printers in database. Run 'printwatch scan' first.[/]")
        raise typer.Exit(0)

    settings = get_settings()
    console.print()
    console.print(
        _build_printer_table(
            devices,
            title="Known Printers",
            low=settings.alerts.low_supply_threshold,
            critical=settings.alerts.critical_supply_threshold,
        )
    )
    console.print(f"\n  [bold]{len(devices)}[/] printers total.\n")


def cmd_alerts(
    unacknowledged: bool = typer.Option(False, "--unacknowledged", "-u", help="Hide acknowledged alerts."),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum alerts to show."),
    log_level: str = typer.Option("WARNING", "--log-level", "-l"),
) -> None:
    """Show the stored alert log, newest first."""
    _setup_logging(log_level)

    async def _load() -> list[AlertEvent]:
        settings = get_settings()
        db = PrinterDatabase(settings.resolved_db_path)
        await db.initialize()
        events = await db.load_alerts()
        await db.close()
        return events

    events = list(reversed(asyncio.run(_load())))
    if unacknowledged:
        events = [e for e in events if not e.acknowledged]
    events = events[:limit]

    if not events:
        console.print("[green]No alerts.[/]")
        raise typer.Exit(0)

    table = Table(title="Alerts", title_style="bold cyan", border_style="bright_black", expand=True)
    table.add_column("Time", width=16, no_wrap=True)
    table.add_column("Type", width=15, no_wrap=True)
    table.add_column("Printer", ratio=1, no_wrap=True)
    table.add_column("Message", ratio=3)
    table.add_column("Ack", width=3, justify="center")
    for e in events:
        table.add_row(
            e.created_at.strftime("%Y-%m-%d %H:%M"),
            e.type.value,
            _trunc(e.device_name, 30),
            e.message,
            "[green]✓[/]" if e.acknowledged else "",
            style="dim" if e.acknowledged else "",
        )
    console.print(table)


def cmd_serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="API server bind host."),
    port: int = typer.Option(5000, "--port", "-p", help="API server bind port."),
    no_poll: bool = typer.Option(False, "--no-poll", help="Disable background polling."),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Start the API server with background polling."""
    _setup_logging(log_level)

    from printwatch.main import run_server

    asyncio.run(run_server(host=host, port=port, with_polling=not no_poll))
