"""Single-device SNMP polling round producing a canonical DeviceSnapshot."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from printwatch.config import Settings
from printwatch.core.classifier import parse_alerts, parse_supplies, parse_trays
from printwatch.core.models import DeviceSnapshot, DeviceStatus, Supply, Tray, _now
from printwatch.core.resolver import (
    ANCHOR_OID,
    SYS_CONTACT_OID,
    SYS_LOCATION_OID,
    SYS_NAME_OID,
    OidResolver,
    coerce,
)

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 50

# Printer-MIB tables, hrDeviceIndex 1
SUPPLY_DESCRIPTION_OID = "1.3.6.1.2.1.43.11.1.1.6.1"
SUPPLY_MAX_OID = "1.3.6.1.2.1.43.11.1.1.8.1"
SUPPLY_LEVEL_OID = "1.3.6.1.2.1.43.11.1.1.9.1"

TRAY_MAX_OID = "1.3.6.1.2.1.43.8.2.1.9.1"
TRAY_LEVEL_OID = "1.3.6.1.2.1.43.8.2.1.10.1"
TRAY_STATUS_OID = "1.3.6.1.2.1.43.8.2.1.11.1"
TRAY_MEDIA_OID = "1.3.6.1.2.1.43.8.2.1.12.1"
TRAY_NAME_OID = "1.3.6.1.2.1.43.8.2.1.13.1"

ALERT_SEVERITY_OID = "1.3.6.1.2.1.43.18.1.1.2.1"
ALERT_DESCRIPTION_OID = "1.3.6.1.2.1.43.18.1.1.8.1"


class DevicePoller:
    """Runs one polling round against one printer.

    ``poll`` never raises: unreachable devices and unexpected failures both
    come back as an offline snapshot that keeps the previous round's data.
    """

    def __init__(
        self,
        snmp: Any,
        settings: Settings,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.snmp = snmp
        self.settings = settings
        self.resolver = OidResolver(snmp)
        self._clock = clock

    async def probe(self, address: str, community: str) -> str | None:
        """Query only the anchor field; a non-empty sysDescr means reachable."""
        description = await self.snmp.get(address, community, ANCHOR_OID)
        if description is None or not description.strip():
            return None
        return description.strip()

    async def poll(
        self,
        address: str,
        community: str,
        previous: DeviceSnapshot | None = None,
    ) -> DeviceSnapshot:
        try:
            return await self._poll(address, community, previous)
        except Exception as exc:
            logger.error("Poll of %s failed: %s", address, exc)
            return self._offline(address, previous)

    def _offline(self, address: str, previous: DeviceSnapshot | None) -> DeviceSnapshot:
        base = previous if previous is not None else DeviceSnapshot(address=address)
        return base.model_copy(
            update={
                "online": False,
                "status": DeviceStatus.OFFLINE,
                "last_update": self._clock(),
            },
            deep=True,
        )

    def _overrides(self, description: str) -> dict[str, Any]:
        """Longer timeout and more retries for device classes known to answer slowly."""
        lowered = description.lower()
        if any(k.lower() in lowered for k in self.settings.slow_device_keywords):
            return {
                "timeout": self.settings.slow_snmp_timeout,
                "retries": self.settings.slow_snmp_retries,
            }
        return {}

    async def _poll(
        self, address: str, community: str, previous: DeviceSnapshot | None
    ) -> DeviceSnapshot:
        description = await self.probe(address, community)
        if description is None:
            logger.info("%s did not answer sysDescr, marking offline", address)
            return self._offline(address, previous)

        overrides = self._overrides(description)

        serial = await self.resolver.resolve("serial", address, community, **overrides)
        status_code = await self.resolver.resolve("status", address, community, **overrides)
        total_pages = await self.resolver.resolve("total_pages", address, community, **overrides)

        sys_name, location, contact = await asyncio.gather(
            self.snmp.get(address, community, SYS_NAME_OID, **overrides),
            self.snmp.get(address, community, SYS_LOCATION_OID, **overrides),
            self.snmp.get(address, community, SYS_CONTACT_OID, **overrides),
        )

        supplies, trays = await asyncio.gather(
            self._fetch_supplies(address, community, overrides),
            self._fetch_trays(address, community, overrides),
        )
        errors = await self._fetch_errors(address, community, overrides)

        # Counters and serials survive a round where every candidate OID timed out
        if total_pages is None and previous is not None:
            total_pages = previous.total_pages
        if serial is None and previous is not None:
            serial = previous.serial

        now = self._clock()
        snapshot = DeviceSnapshot(
            address=address,
            name=description[:DESCRIPTION_LIMIT],
            model=description[:DESCRIPTION_LIMIT],
            serial=serial,
            sys_name=coerce(sys_name, numeric=False),
            location=coerce(location, numeric=False),
            contact=coerce(contact, numeric=False),
            online=True,
            status=(
                DeviceStatus.from_code(status_code)
                if isinstance(status_code, int)
                else DeviceStatus.UNKNOWN
            ),
            total_pages=total_pages,
            supplies=supplies,
            trays=trays,
            errors=parse_alerts(*errors, now=now),
            last_update=now,
            last_online=now,
        )
        logger.debug(
            "%s polled: status=%s pages=%s supplies=%d trays=%d errors=%d",
            address,
            snapshot.status.value,
            snapshot.total_pages,
            len(snapshot.supplies),
            len(snapshot.trays),
            len(snapshot.errors),
        )
        return snapshot

    async def _fetch_supplies(
        self, address: str, community: str, overrides: dict[str, Any]
    ) -> list[Supply]:
        descriptions = await self.snmp.walk(address, community, SUPPLY_DESCRIPTION_OID, **overrides)
        if not descriptions:
            return []
        maxes = await self.snmp.walk(address, community, SUPPLY_MAX_OID, **overrides)
        levels = await self.snmp.walk(address, community, SUPPLY_LEVEL_OID, **overrides)
        return parse_supplies(descriptions, maxes, levels)

    async def _fetch_trays(
        self, address: str, community: str, overrides: dict[str, Any]
    ) -> list[Tray]:
        names = await self.snmp.walk(address, community, TRAY_NAME_OID, **overrides)
        if not names:
            return []
        maxes = await self.snmp.walk(address, community, TRAY_MAX_OID, **overrides)
        levels = await self.snmp.walk(address, community, TRAY_LEVEL_OID, **overrides)
        statuses = await self.snmp.walk(address, community, TRAY_STATUS_OID, **overrides)
        media = await self.snmp.walk(address, community, TRAY_MEDIA_OID, **overrides)
        return parse_trays(names, maxes, levels, statuses, media)

    async def _fetch_errors(
        self, address: str, community: str, overrides: dict[str, Any]
    ) -> tuple[list[str], list[str]]:
        severities = await self.snmp.walk(address, community, ALERT_SEVERITY_OID, **overrides)
        if not severities:
            return [], []
        descriptions = await self.snmp.walk(
            address, community, ALERT_DESCRIPTION_OID, **overrides
        )
        return severities, descriptions
