"""Async SNMP v2c transport built on pysnmp's asyncio high-level API.

Every operation carries its own timeout and retry count and resolves to absence
(``None`` or an empty list) on any failure; nothing raises past this module.
"""

from __future__ import annotations

import logging
from typing import Any

from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    UdpTransportTarget,
    get_cmd,
    walk_cmd,
)
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject

logger = logging.getLogger(__name__)

_ABSENT_TYPES = (NoSuchObject, NoSuchInstance, EndOfMibView)


def _render(value: Any) -> str | None:
    """Convert a pysnmp value to text, or None for the no-such/end-of-view markers."""
    if value is None or isinstance(value, _ABSENT_TYPES):
        return None
    if hasattr(value, "asOctets"):
        return value.asOctets().decode("utf-8", errors="replace").replace("\x00", "")
    return str(value)


class SnmpClient:
    """Thin SNMP client shared by the poller and the discovery scan."""

    def __init__(self, port: int = 161, timeout: float = 2.0, retries: int = 1) -> None:
        self.port = port
        self.timeout = timeout
        self.retries = retries
        self._engine = SnmpEngine()

    async def _target(
        self, address: str, timeout: float | None, retries: int | None
    ) -> UdpTransportTarget:
        return await UdpTransportTarget.create(
            (address, self.port),
            timeout=self.timeout if timeout is None else timeout,
            retries=self.retries if retries is None else retries,
        )

    async def get(
        self,
        address: str,
        community: str,
        oid: str,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> str | None:
        """GET a single OID. Returns the rendered value or None."""
        try:
            target = await self._target(address, timeout, retries)
            error_indication, error_status, error_index, var_binds = await get_cmd(
                self._engine,
                CommunityData(community, mpModel=1),
                target,
                ContextData(),
                ObjectType(ObjectIdentity(oid)),
            )
        except Exception as exc:
            logger.debug("SNMP get %s %s failed: %s", address, oid, exc)
            return None

        if error_indication:
            logger.debug("SNMP get %s %s: %s", address, oid, error_indication)
            return None
        if error_status:
            logger.debug(
                "SNMP get %s %s: %s at %s", address, oid, error_status.prettyPrint(), error_index
            )
            return None

        for _, value in var_binds:
            return _render(value)
        return None

    async def walk(
        self,
        address: str,
        community: str,
        base_oid: str,
        *,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> list[str]:
        """Walk a subtree and return its values in OID order.

        A failure part-way through discards the partial result.
        """
        values: list[str] = []
        try:
            target = await self._target(address, timeout, retries)
            async for error_indication, error_status, _, var_binds in walk_cmd(
                self._engine,
                CommunityData(community, mpModel=1),
                target,
                ContextData(),
                ObjectType(ObjectIdentity(base_oid)),
                lexicographicMode=False,
            ):
                if error_indication or error_status:
                    logger.debug(
                        "SNMP walk %s %s stopped: %s",
                        address,
                        base_oid,
                        error_indication or error_status.prettyPrint(),
                    )
                    return []
                for _, value in var_binds:
                    rendered = _render(value)
                    if rendered is not None:
                        values.append(rendered)
        except Exception as exc:
            logger.debug("SNMP walk %s %s failed: %s", address, base_oid, exc)
            return []
        return values

    def close(self) -> None:
        self._engine.close_dispatcher()
