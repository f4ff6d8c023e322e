"""Offline walkthrough of the room lifecycle.

Drives TempVoice with hand-written gateway events against the in-memory
ledger and the recording mock directory, so no Discord token is needed.
Shows:
- Startup reconciliation purging a stale room from a previous run
- A user joining the lobby and getting a room
- The owner's move being counted once
- The room being deleted when the last user leaves

Run with:
    uv run python examples/offline_lifecycle.py
"""

from __future__ import annotations

import asyncio
import logging

from tempvoice import (
    ChannelInfo,
    ConnectionReady,
    GuildSnapshot,
    InMemoryLedger,
    LifecycleEvent,
    LifecycleEventType,
    MockRoomDirectory,
    TempVoice,
    TempVoiceConfig,
    UserInfo,
    VoiceStateChange,
)
from tempvoice.sources.base import BaseEventSource, EmitCallback


class IdleSource(BaseEventSource):
    """A source that never emits; events are fed in by hand below."""

    @property
    def name(self) -> str:
        return "idle"

    async def start(self, emit: EmitCallback) -> None:
        await self._stop_event.wait()


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    directory = MockRoomDirectory(
        channels={"lobby": ChannelInfo(id="lobby", guild_id="g1", parent_id="voice", position=2)},
        users={"alice": UserInfo(id="alice", username="alice", global_name="Alice")},
    )
    ledger = InMemoryLedger(["left-over-from-crash"])
    config = TempVoiceConfig(token="not-used", lobby_ids="lobby")
    kit = TempVoice(config, ledger=ledger, directory=directory, source=IdleSource())

    @kit.on(LifecycleEventType.ROOM_CREATED)
    async def on_created(event: LifecycleEvent) -> None:
        print(f"  -> created {event.data['name']!r} ({event.room_id})")

    @kit.on(LifecycleEventType.ROOM_DELETED)
    async def on_deleted(event: LifecycleEvent) -> None:
        print(f"  -> deleted {event.room_id} ({event.data['reason']})")

    print("Startup:")
    await kit.handle_event(ConnectionReady(guild_ids=["g1"]))
    await kit.handle_event(GuildSnapshot(guild_id="g1", channel_ids={"lobby"}))
    await kit.reconcile()

    print("Alice joins the lobby:")
    await kit.handle_event(
        VoiceStateChange(guild_id="g1", user_id="alice", after_channel_id="lobby")
    )
    await kit.dispatcher.drain()
    room = kit.rooms[0]

    # The gateway reports the move the bot just made.
    await kit.handle_event(
        VoiceStateChange(
            guild_id="g1", user_id="alice", before_channel_id="lobby", after_channel_id=room.id
        )
    )
    await kit.dispatcher.drain()
    print(f"  occupancy of {room.id}: {kit.get_room(room.id).occupancy}")

    print("Alice leaves:")
    await kit.handle_event(
        VoiceStateChange(guild_id="g1", user_id="alice", before_channel_id=room.id)
    )
    await kit.dispatcher.drain()

    print(f"Rooms left: {len(kit.rooms)}, ledger: {await ledger.list_all()}")
    await kit.stop()


if __name__ == "__main__":
    asyncio.run(main())
