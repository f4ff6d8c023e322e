"""PostgreSQL implementation of RoomLedger using asyncpg."""

from __future__ import annotations

from typing import Any

from tempvoice.errors import LedgerIOFailed
from tempvoice.ledger.base import RoomLedger

_SCHEMA = "CREATE TABLE IF NOT EXISTS channels (channelID TEXT PRIMARY KEY)"


class PostgresLedger(RoomLedger):
    """PostgreSQL-backed ledger using asyncpg."""

    def __init__(
        self,
        dsn: str | None = None,
        pool: Any = None,
    ) -> None:
        try:
            import asyncpg as _asyncpg
        except ImportError as exc:
            raise ImportError(
                "asyncpg is required for PostgresLedger. "
                "Install it with: pip install tempvoice[postgres]"
            ) from exc
        self._asyncpg = _asyncpg
        self._dsn = dsn
        self._pool = pool
        self._owns_pool = pool is None

    async def init(self, min_size: int = 1, max_size: int = 4) -> None:
        """Create the connection pool (if needed) and ensure schema exists."""
        if self._pool is None:
            try:
                self._pool = await self._asyncpg.create_pool(
                    self._dsn,
                    min_size=min_size,
                    max_size=max_size,
                )
            except (OSError, self._asyncpg.PostgresError) as exc:
                raise LedgerIOFailed(f"postgres ledger: {exc}") from exc
        await self._execute(_SCHEMA)

    async def close(self) -> None:
        """Release the connection pool if we own it."""
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def add(self, channel_id: str) -> None:
        await self._execute(
            "INSERT INTO channels (channelID) VALUES ($1) ON CONFLICT DO NOTHING",
            channel_id,
        )

    async def remove(self, channel_id: str) -> None:
        await self._execute("DELETE FROM channels WHERE channelID = $1", channel_id)

    async def list_all(self) -> list[str]:
        if self._pool is None:
            raise LedgerIOFailed("PostgresLedger used before init()")
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch("SELECT channelID FROM channels")
        except (OSError, self._asyncpg.PostgresError) as exc:
            raise LedgerIOFailed(f"postgres ledger: {exc}") from exc
        return [row["channelid"] for row in rows]

    async def clear_all(self) -> None:
        await self._execute("DELETE FROM channels")

    async def _execute(self, sql: str, *args: Any) -> None:
        if self._pool is None:
            raise LedgerIOFailed("PostgresLedger used before init()")
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(sql, *args)
        except (OSError, self._asyncpg.PostgresError) as exc:
            raise LedgerIOFailed(f"postgres ledger: {exc}") from exc
