"""SQLite implementation of RoomLedger."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from tempvoice.errors import LedgerIOFailed
from tempvoice.ledger.base import RoomLedger

logger = logging.getLogger("tempvoice.ledger.sqlite")

T = TypeVar("T")

_SCHEMA = "CREATE TABLE IF NOT EXISTS channels (channelID TEXT PRIMARY KEY)"


class SQLiteLedger(RoomLedger):
    """Ledger stored in a single SQLite table.

    Blocking ``sqlite3`` calls run in a worker thread via
    ``asyncio.to_thread``; an ``asyncio.Lock`` keeps them one at a time on
    the shared connection.
    """

    def __init__(self, path: str | Path = "store.db") -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        if self._conn is not None:
            return
        await self._run(self._open)
        logger.info("Ledger opened at %s", self._path)

    def _open(self) -> None:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.execute(_SCHEMA)
        conn.commit()
        self._conn = conn

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        async with self._lock:
            await asyncio.to_thread(conn.close)

    async def add(self, channel_id: str) -> None:
        await self._write("INSERT OR IGNORE INTO channels (channelID) VALUES (?)", channel_id)

    async def remove(self, channel_id: str) -> None:
        await self._write("DELETE FROM channels WHERE channelID = ?", channel_id)

    async def list_all(self) -> list[str]:
        def _select() -> list[str]:
            rows = self._connection().execute("SELECT channelID FROM channels").fetchall()
            return [row[0] for row in rows]

        return await self._run(_select)

    async def clear_all(self) -> None:
        await self._write("DELETE FROM channels")

    # -- internals --

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LedgerIOFailed("SQLiteLedger used before init()")
        return self._conn

    async def _write(self, sql: str, *params: Any) -> None:
        def _execute() -> None:
            conn = self._connection()
            conn.execute(sql, params)
            conn.commit()

        await self._run(_execute)

    async def _run(self, fn: Callable[[], T]) -> T:
        async with self._lock:
            try:
                return await asyncio.to_thread(fn)
            except sqlite3.Error as exc:
                raise LedgerIOFailed(f"sqlite ledger {self._path}: {exc}") from exc
