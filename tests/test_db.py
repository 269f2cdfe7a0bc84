"""Tests for SQLite persistence and service start-up restore."""

from __future__ import annotations

import asyncio

from conftest import FakeSnmp, make_device

from printwatch.config import Settings
from printwatch.core.db import PrinterDatabase
from printwatch.main import PrintWatchService


def test_devices_round_trip(tmp_path):
    async def scenario():
        db = PrinterDatabase(tmp_path / "pw.db")
        await db.initialize()
        await db.save_devices(
            [make_device("10.0.0.2", toner=40), make_device("10.0.0.1", online=False)],
            {"10.0.0.2": "secret"},
        )
        # A second save replaces the first
        await db.save_devices([make_device("10.0.0.1")], {})
        devices, communities = await db.load_devices()
        stats = await db.get_stats()
        await db.close()
        return devices, communities, stats

    devices, communities, stats = asyncio.run(scenario())
    assert [d.address for d in devices] == ["10.0.0.1"]
    assert communities == {"10.0.0.1": "public"}
    assert stats["devices"] == 1


def test_reopen_keeps_data(tmp_path):
    path = tmp_path / "nested" / "pw.db"

    async def write():
        db = PrinterDatabase(path)
        await db.initialize()
        await db.save_devices([make_device("10.0.0.7", toner=33)], {"10.0.0.7": "private"})
        await db.close()

    async def read():
        db = PrinterDatabase(path)
        await db.initialize()
        loaded = await db.load_devices()
        await db.close()
        return loaded

    asyncio.run(write())
    (device,), communities = asyncio.run(read())
    assert device.supplies[0].percentage == 33
    assert communities == {"10.0.0.7": "private"}


def test_service_save_and_load(tmp_path):
    settings = Settings(db_path=str(tmp_path / "pw.db"))
    snmp = FakeSnmp()
    snmp.add_printer("10.0.0.1", supplies=[("Black Toner", 100, 15)])

    async def first_run():
        db = PrinterDatabase(settings.resolved_db_path)
        await db.initialize()
        service = PrintWatchService(settings, snmp=snmp, db=db)
        await service.monitor.add_device("10.0.0.1", "private")
        await service.monitor.poll_cycle()
        await service.save()
        await service.close()
        return service.alerts.list_alerts()

    async def second_run():
        db = PrinterDatabase(settings.resolved_db_path)
        await db.initialize()
        service = PrintWatchService(settings, snmp=snmp, db=db)
        await service.load()
        await service.close()
        return service

    alerts = asyncio.run(first_run())
    service = asyncio.run(second_run())

    assert [d.address for d in service.monitor.get_all()] == ["10.0.0.1"]
    assert service.monitor.communities() == {"10.0.0.1": "private"}
    assert [a.id for a in service.alerts.list_alerts()] == [a.id for a in alerts]
    assert len(service.history.snapshots) == 1
    assert service.history.daily()[0].devices["10.0.0.1"].samples == 1
