"""Tests for the TempVoice orchestrator."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from tempvoice.config import TempVoiceConfig
from tempvoice.core.framework import TempVoice
from tempvoice.directory.discord import DiscordRoomDirectory
from tempvoice.directory.mock import MockRoomDirectory
from tempvoice.errors import UnknownChannelReference
from tempvoice.ledger.memory import InMemoryLedger
from tempvoice.ledger.sqlite import SQLiteLedger
from tempvoice.models.enums import LifecycleEventType
from tempvoice.models.events import (
    ConnectionReady,
    GatewayEvent,
    GuildSnapshot,
    VoicePresence,
    VoiceStateChange,
)
from tempvoice.models.lifecycle_event import LifecycleEvent
from tempvoice.sources.base import BaseEventSource, EmitCallback
from tempvoice.sources.discord_gateway import DiscordGatewaySource


class _ScriptedSource(BaseEventSource):
    """Emits a fixed list of events, then idles until stopped."""

    def __init__(self, *events: GatewayEvent) -> None:
        super().__init__()
        self.events = list(events)

    @property
    def name(self) -> str:
        return "scripted"

    async def start(self, emit: EmitCallback) -> None:
        self._reset_stop()
        for event in self.events:
            await emit(event)
        await self._stop_event.wait()


def _config(**overrides: object) -> TempVoiceConfig:
    values: dict[str, object] = {
        "token": "secret",
        "lobby_ids": "lobby-1",
        "remote_timeout": 0.2,
        "snapshot_timeout": 0.05,
    }
    values.update(overrides)
    return TempVoiceConfig(**values)  # type: ignore[arg-type]


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout=timeout)


def _join(user_id: str, channel_id: str, before: str | None = None) -> VoiceStateChange:
    return VoiceStateChange(
        guild_id="g1", user_id=user_id, before_channel_id=before, after_channel_id=channel_id
    )


@pytest.fixture
def kit(ledger: InMemoryLedger, directory: MockRoomDirectory) -> TempVoice:
    return TempVoice(_config(), ledger=ledger, directory=directory, source=_ScriptedSource())


class TestStartup:
    async def test_changes_buffered_until_reconciled(
        self, kit: TempVoice, directory: MockRoomDirectory
    ) -> None:
        await kit.handle_event(ConnectionReady(guild_ids=["g1"]))
        await kit.handle_event(_join("u1", "lobby-1"))
        assert directory.calls == []
        assert not kit.reconciled

        await kit.handle_event(GuildSnapshot(guild_id="g1", channel_ids={"lobby-1"}))
        await kit.reconcile()
        await kit.dispatcher.drain()

        assert kit.reconciled
        assert [room.id for room in kit.rooms] == ["room-1"]

    async def test_reconciles_exactly_once(
        self, kit: TempVoice, ledger: InMemoryLedger, directory: MockRoomDirectory
    ) -> None:
        await ledger.add("stale")
        await kit.handle_event(ConnectionReady(guild_ids=["g1"]))
        await kit.handle_event(GuildSnapshot(guild_id="g1"))
        first = await kit.reconcile()

        # A late snapshot and a fresh session must not trigger another pass.
        await kit.handle_event(GuildSnapshot(guild_id="g2"))
        await kit.handle_event(ConnectionReady(guild_ids=["g1", "g2"], session_id="new"))
        second = await kit.reconcile()

        assert first is second
        assert first.purged == ["stale"]
        assert len(directory.calls_for("delete_room")) == 1

    async def test_snapshot_timeout_reconciles_partial(
        self, kit: TempVoice, ledger: InMemoryLedger
    ) -> None:
        await ledger.add("r1")
        await kit.handle_event(ConnectionReady(guild_ids=["g1", "g2"]))
        await kit.handle_event(
            GuildSnapshot(
                guild_id="g1",
                channel_ids={"r1"},
                presences=[VoicePresence(user_id="u1", channel_id="r1")],
            )
        )
        assert not kit.reconciled

        await _until(lambda: kit.reconciled)

        assert kit.report is not None
        assert kit.report.recovered == {"r1": 1}
        assert kit.get_room("r1").occupancy == 1

    async def test_no_guilds_reconciles_immediately(self, kit: TempVoice) -> None:
        await kit.handle_event(ConnectionReady(guild_ids=[]))
        await _until(lambda: kit.reconciled)

    async def test_resumed_session_ignored(self, kit: TempVoice) -> None:
        await kit.handle_event(ConnectionReady(resumed=True))
        await asyncio.sleep(0.1)
        assert not kit.reconciled

    async def test_lobby_occupant_move_counted_once(
        self, kit: TempVoice, directory: MockRoomDirectory
    ) -> None:
        await kit.handle_event(ConnectionReady(guild_ids=["g1"]))
        await kit.handle_event(
            GuildSnapshot(
                guild_id="g1",
                channel_ids={"lobby-1"},
                presences=[VoicePresence(user_id="u1", channel_id="lobby-1")],
            )
        )
        report = await kit.reconcile()
        assert report.created == ["room-1"]

        # The gateway reports the move the directory performed.
        await kit.handle_event(_join("u1", "room-1", before="lobby-1"))
        await kit.dispatcher.drain()
        assert kit.get_room("room-1").occupancy == 1
        assert len(directory.calls_for("create_room")) == 1


class TestEvents:
    async def test_on_handlers(self, kit: TempVoice) -> None:
        seen: list[LifecycleEvent] = []

        @kit.on(LifecycleEventType.ROOM_CREATED)
        async def broken(event: LifecycleEvent) -> None:
            raise RuntimeError("handler bug")

        @kit.on("room_created")
        async def created(event: LifecycleEvent) -> None:
            seen.append(event)

        @kit.on(LifecycleEventType.RECONCILIATION_COMPLETED)
        async def reconciled(event: LifecycleEvent) -> None:
            seen.append(event)

        await kit.handle_event(ConnectionReady(guild_ids=[]))
        await kit.reconcile()
        await kit.handle_event(_join("u1", "lobby-1"))
        await kit.dispatcher.drain()

        assert [e.type for e in seen] == [
            LifecycleEventType.RECONCILIATION_COMPLETED,
            LifecycleEventType.ROOM_CREATED,
        ]
        assert seen[0].data["policy"] == "occupancy"
        assert seen[1].room_id == "room-1"


class TestQueries:
    async def test_get_room_unknown(self, kit: TempVoice) -> None:
        with pytest.raises(UnknownChannelReference):
            kit.get_room("nope")

    async def test_lobby_is_not_a_room(self, kit: TempVoice) -> None:
        with pytest.raises(UnknownChannelReference):
            kit.get_room("lobby-1")


class TestRunStop:
    async def test_run_until_stopped(self, ledger: InMemoryLedger) -> None:
        directory = MockRoomDirectory()
        source = _ScriptedSource(
            ConnectionReady(guild_ids=[]),
            _join("u1", "lobby-1"),
        )
        kit = TempVoice(_config(), ledger=ledger, directory=directory, source=source)
        runner = asyncio.create_task(kit.run())

        await _until(lambda: kit.reconciled)
        await kit.dispatcher.drain()
        # The lobby is unknown to this directory, so no room is created.
        assert directory.calls_for("get_channel") == [{"channel_id": "lobby-1"}]
        assert len(kit.rooms) == 0

        await kit.stop()
        await asyncio.wait_for(runner, timeout=1.0)
        assert runner.exception() is None

    async def test_source_failure_propagates(self, ledger: InMemoryLedger) -> None:
        class _FailingSource(_ScriptedSource):
            async def start(self, emit: EmitCallback) -> None:
                raise RuntimeError("bad token")

        kit = TempVoice(
            _config(), ledger=ledger, directory=MockRoomDirectory(), source=_FailingSource()
        )
        with pytest.raises(RuntimeError, match="bad token"):
            await asyncio.wait_for(kit.run(), timeout=1.0)

    async def test_stop_is_idempotent(self, kit: TempVoice) -> None:
        await kit.start()
        await kit.stop()
        await kit.stop()

    async def test_default_backends(self, tmp_path: Path) -> None:
        kit = TempVoice(_config(ledger_path=tmp_path / "store.db"))
        assert isinstance(kit._ledger, SQLiteLedger)
        assert isinstance(kit._directory, DiscordRoomDirectory)
        assert isinstance(kit._source, DiscordGatewaySource)
        await kit.stop()
