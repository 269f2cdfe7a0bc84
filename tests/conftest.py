"""Shared fixtures: an in-memory SNMP agent, a controllable clock and isolated settings."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import pytest

from printwatch import config
from printwatch.config import Settings
from printwatch.core import poller as p
from printwatch.core.models import DeviceSnapshot, Supply, SupplyType
from printwatch.core.resolver import ANCHOR_OID, FIELD_CANDIDATES, SYS_NAME_OID


class FakeSnmp:
    """Dict-backed stand-in for SnmpClient.

    ``gets`` maps (address, oid) to a value, ``walks`` maps (address, base_oid)
    to a column. Addresses in ``failing`` raise on every call; every call is
    recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.gets: dict[tuple[str, str], str] = {}
        self.walks: dict[tuple[str, str], list[str]] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str, str, dict[str, Any]]] = []

    async def get(self, address: str, community: str, oid: str, **kwargs: Any) -> str | None:
        self.calls.append(("get", address, oid, kwargs))
        if address in self.failing:
            raise RuntimeError(f"agent at {address} exploded")
        return self.gets.get((address, oid))

    async def walk(self, address: str, community: str, oid: str, **kwargs: Any) -> list[str]:
        self.calls.append(("walk", address, oid, kwargs))
        if address in self.failing:
            raise RuntimeError(f"agent at {address} exploded")
        return list(self.walks.get((address, oid), []))

    def close(self) -> None:
        pass

    def calls_for(self, address: str) -> list[tuple[str, str, str, dict[str, Any]]]:
        return [c for c in self.calls if c[1] == address]

    def add_printer(
        self,
        address: str,
        description: str = "HP LaserJet Pro M404dn",
        pages: int | None = 100,
        supplies: Iterable[tuple[str, int, int]] = (("Black Toner Cartridge", 100, 80),),
        trays: Iterable[tuple[str, int, int, int, str]] = (("Tray 1", 250, 120, 0, "A4"),),
        sys_name: str | None = None,
    ) -> None:
        self.gets[(address, ANCHOR_OID)] = description
        if pages is not None:
            self.gets[(address, FIELD_CANDIDATES["total_pages"][0])] = str(pages)
        self.gets[(address, FIELD_CANDIDATES["status"][0])] = "3"
        self.gets[(address, FIELD_CANDIDATES["serial"][0])] = "SN-" + address.rsplit(".", 1)[-1]
        if sys_name:
            self.gets[(address, SYS_NAME_OID)] = sys_name
        self.set_supplies(address, supplies)
        trays = list(trays)
        self.walks[(address, p.TRAY_NAME_OID)] = [t[0] for t in trays]
        self.walks[(address, p.TRAY_MAX_OID)] = [str(t[1]) for t in trays]
        self.walks[(address, p.TRAY_LEVEL_OID)] = [str(t[2]) for t in trays]
        self.walks[(address, p.TRAY_STATUS_OID)] = [str(t[3]) for t in trays]
        self.walks[(address, p.TRAY_MEDIA_OID)] = [t[4] for t in trays]

    def set_supplies(self, address: str, supplies: Iterable[tuple[str, int, int]]) -> None:
        supplies = list(supplies)
        self.walks[(address, p.SUPPLY_DESCRIPTION_OID)] = [s[0] for s in supplies]
        self.walks[(address, p.SUPPLY_MAX_OID)] = [str(s[1]) for s in supplies]
        self.walks[(address, p.SUPPLY_LEVEL_OID)] = [str(s[2]) for s in supplies]

    def set_pages(self, address: str, pages: int) -> None:
        self.gets[(address, FIELD_CANDIDATES["total_pages"][0])] = str(pages)

    def unplug(self, address: str) -> None:
        """Stop answering anything for ``address``."""
        self.gets = {k: v for k, v in self.gets.items() if k[0] != address}
        self.walks = {k: v for k, v in self.walks.items() if k[0] != address}


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        # A Monday morning
        self.now = start or datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_device(
    address: str = "10.0.0.5",
    online: bool = True,
    toner: int | None = 80,
    supplies: list[Supply] | None = None,
    **fields: Any,
) -> DeviceSnapshot:
    if supplies is None:
        supplies = []
        if toner is not None:
            supplies.append(
                Supply(name="Black Toner", level=toner, max_capacity=100, type=SupplyType.TONER)
            )
    return DeviceSnapshot(address=address, online=online, supplies=supplies, **fields)


@pytest.fixture(autouse=True)
def _no_config_files(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's config.yaml out of the tests."""
    monkeypatch.setattr(config, "_load_yaml_config", lambda: {})


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def snmp() -> FakeSnmp:
    return FakeSnmp()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
