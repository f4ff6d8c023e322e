"""Tests for the in-memory and SQLite ledgers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from tempvoice.errors import LedgerIOFailed
from tempvoice.ledger.base import RoomLedger
from tempvoice.ledger.memory import InMemoryLedger
from tempvoice.ledger.sqlite import SQLiteLedger


@pytest.fixture(params=["memory", "sqlite"])
async def ledger(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        backend: RoomLedger = InMemoryLedger()
    else:
        backend = SQLiteLedger(tmp_path / "store.db")
    async with backend:
        yield backend


class TestLedgerContract:
    async def test_add_list_remove(self, ledger: RoomLedger) -> None:
        await ledger.add("r1")
        await ledger.add("r2")
        assert sorted(await ledger.list_all()) == ["r1", "r2"]
        await ledger.remove("r1")
        assert await ledger.list_all() == ["r2"]

    async def test_duplicate_add_is_noop(self, ledger: RoomLedger) -> None:
        await ledger.add("r1")
        await ledger.add("r1")
        assert await ledger.list_all() == ["r1"]

    async def test_remove_absent_is_noop(self, ledger: RoomLedger) -> None:
        await ledger.remove("missing")
        assert await ledger.list_all() == []

    async def test_clear_all(self, ledger: RoomLedger) -> None:
        for channel_id in ("r1", "r2", "r3"):
            await ledger.add(channel_id)
        await ledger.clear_all()
        assert await ledger.list_all() == []


class TestSQLiteLedger:
    async def test_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "store.db"
        async with SQLiteLedger(path) as first:
            await first.add("r1")
        async with SQLiteLedger(path) as second:
            assert await second.list_all() == ["r1"]

    async def test_schema(self, tmp_path: Path) -> None:
        path = tmp_path / "store.db"
        async with SQLiteLedger(path) as ledger:
            await ledger.add("r1")
        conn = sqlite3.connect(path)
        try:
            rows = conn.execute("SELECT channelID FROM channels").fetchall()
        finally:
            conn.close()
        assert rows == [("r1",)]

    async def test_use_before_init_raises(self, tmp_path: Path) -> None:
        ledger = SQLiteLedger(tmp_path / "store.db")
        with pytest.raises(LedgerIOFailed):
            await ledger.add("r1")

    async def test_unwritable_path_raises(self, tmp_path: Path) -> None:
        ledger = SQLiteLedger(tmp_path / "missing-dir" / "store.db")
        with pytest.raises(LedgerIOFailed):
            await ledger.init()

    async def test_close_twice(self, tmp_path: Path) -> None:
        ledger = SQLiteLedger(tmp_path / "store.db")
        await ledger.init()
        await ledger.close()
        await ledger.close()
