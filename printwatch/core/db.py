"""Async SQLite persistence for devices, alerts and history.

Saves are whole-collection replacements run on an interval by the caller;
anything changed after the last save is lost on a crash.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import aiosqlite

from printwatch.core.models import (
    AlertEvent,
    DailyAggregate,
    DeviceSnapshot,
    HistorySnapshot,
    _now,
)

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS devices (
    address TEXT PRIMARY KEY,
    community TEXT NOT NULL,
    data TEXT NOT NULL,
    saved_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    acknowledged INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_alerts_created ON alerts(created_at);

CREATE TABLE IF NOT EXISTS history_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS daily_aggregates (
    date TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
"""


class PrinterDatabase:
    """Async SQLite store for the monitor's state."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the database and create tables if needed."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_CREATE_TABLES)

        # Check/set schema version
        async with self._db.execute("SELECT COUNT(*) FROM schema_version") as cursor:
            count = (await cursor.fetchone())[0]
        if count == 0:
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (_SCHEMA_VERSION,)
            )
        await self._db.commit()
        logger.info("Database initialized at %s", self._db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def save_devices(
        self, devices: Iterable[DeviceSnapshot], communities: dict[str, str]
    ) -> None:
        assert self._db is not None
        saved_at = _now().isoformat()
        rows = [
            (d.address, communities.get(d.address, "public"), d.model_dump_json(), saved_at)
            for d in devices
        ]
        await self._db.execute("DELETE FROM devices")
        await self._db.executemany(
            "INSERT INTO devices (address, community, data, saved_at) VALUES (?, ?, ?, ?)",
            rows,
        )
        await self._db.commit()

    async def load_devices(self) -> tuple[list[DeviceSnapshot], dict[str, str]]:
        assert self._db is not None
        devices: list[DeviceSnapshot] = []
        communities: dict[str, str] = {}
        async with self._db.execute("SELECT * FROM devices ORDER BY address") as cursor:
            for row in await cursor.fetchall():
                devices.append(DeviceSnapshot.model_validate_json(row["data"]))
                communities[row["address"]] = row["community"]
        return devices, communities

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def save_alerts(self, alerts: Iterable[AlertEvent]) -> None:
        assert self._db is not None
        rows = [
            (a.id, a.created_at.isoformat(), int(a.acknowledged), a.model_dump_json())
            for a in alerts
        ]
        await self._db.execute("DELETE FROM alerts")
        await self._db.executemany(
            "INSERT INTO alerts (id, created_at, acknowledged, data) VALUES (?, ?, ?, ?)",
            rows,
        )
        await self._db.commit()

    async def load_alerts(self) -> list[AlertEvent]:
        """All stored alerts, oldest first."""
        assert self._db is not None
        async with self._db.execute("SELECT data FROM alerts ORDER BY created_at ASC") as cursor:
            rows = await cursor.fetchall()
            return [AlertEvent.model_validate_json(row["data"]) for row in rows]

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def save_history(
        self, snapshots: Iterable[HistorySnapshot], daily: Iterable[DailyAggregate]
    ) -> None:
        assert self._db is not None
        await self._db.execute("DELETE FROM history_snapshots")
        await self._db.executemany(
            "INSERT INTO history_snapshots (timestamp, data) VALUES (?, ?)",
            [(s.timestamp.isoformat(), s.model_dump_json()) for s in snapshots],
        )
        await self._db.execute("DELETE FROM daily_aggregates")
        await self._db.executemany(
            "INSERT INTO daily_aggregates (date, data) VALUES (?, ?)",
            [(d.date, d.model_dump_json()) for d in daily],
        )
        await self._db.commit()

    async def load_history(self) -> tuple[list[HistorySnapshot], list[DailyAggregate]]:
        assert self._db is not None
        async with self._db.execute(
            "SELECT data FROM history_snapshots ORDER BY id ASC"
        ) as cursor:
            snapshots = [
                HistorySnapshot.model_validate_json(row["data"]) for row in await cursor.fetchall()
            ]
        async with self._db.execute("SELECT data FROM daily_aggregates ORDER BY date") as cursor:
            daily = [
                DailyAggregate.model_validate_json(row["data"]) for row in await cursor.fetchall()
            ]
        return snapshots, daily

    async def get_stats(self) -> dict[str, int]:
        """Row counts per collection."""
        assert self._db is not None
        stats: dict[str, int] = {}
        for table in ("devices", "alerts", "history_snapshots", "daily_aggregates"):
            async with self._db.execute(f"SELECT COUNT(*) FROM {table}") as cur:
                stats[table] = (await cur.fetchone())[0]
        async with self._db.execute("SELECT COUNT(*) FROM alerts WHERE acknowledged = 0") as cur:
            stats["unacknowledged_alerts"] = (await cur.fetchone())[0]
        return stats
