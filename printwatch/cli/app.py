"""Typer CLI application for PrintWatch."""

from __future__ import annotations

import typer

from printwatch.cli.commands import (
    cmd_alerts,
    cmd_devices,
    cmd_poll,
    cmd_scan,
    cmd_serve,
)

app = typer.Typer(
    name="printwatch",
    help="PrintWatch: SNMP printer fleet monitoring and alerting.",
    no_args_is_help=True,
    add_completion=False,
)

app.command("poll", help="Poll one printer over SNMP and show its supplies and trays.")(cmd_poll)
app.command("scan", help="Discover SNMP printers on a /24 network.")(cmd_scan)
app.command("devices", help="List all known printers from the database.")(cmd_devices)
app.command("alerts", help="Show the stored alert log.")(cmd_alerts)
app.command("serve", help="Start the API server with background polling.")(cmd_serve)


if __name__ == "__main__":
    app()
