"""Tests for the Discord gateway source."""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any

import pytest

from tempvoice.directory.config import DiscordConfig
from tempvoice.models.events import (
    ConnectionReady,
    GatewayEvent,
    GuildSnapshot,
    VoiceStateChange,
)
from tempvoice.sources.base import SourceStatus
from tempvoice.sources.discord_gateway import (
    OP_DISPATCH,
    OP_HEARTBEAT,
    OP_HEARTBEAT_ACK,
    OP_HELLO,
    OP_IDENTIFY,
    OP_INVALID_SESSION,
    OP_RECONNECT,
    OP_RESUME,
    DiscordGatewaySource,
)


class _FakeWebSocket:
    """Feeds queued gateway payloads and records what the client sends."""

    def __init__(self, *payloads: dict[str, Any]) -> None:
        self.incoming: asyncio.Queue[str] = asyncio.Queue()
        for payload in payloads:
            self.incoming.put_nowait(json.dumps(payload))
        self.sent: list[dict[str, Any]] = []
        self.close_code: int | None = None

    async def recv(self) -> str:
        return await self.incoming.get()

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000) -> None:
        self.close_code = code


def _source() -> DiscordGatewaySource:
    return DiscordGatewaySource(DiscordConfig(bot_token="secret"), reconnect=False)


def _voice_state(user_id: str, channel_id: str | None, **member: Any) -> dict[str, Any]:
    return {
        "guild_id": "g1",
        "user_id": user_id,
        "channel_id": channel_id,
        "member": {"user": {"id": user_id, "username": f"user-{user_id}"}, **member},
    }


class TestTranslate:
    def test_ready(self) -> None:
        source = _source()
        [event] = source.translate(
            "READY",
            {
                "session_id": "sess",
                "resume_gateway_url": "wss://resume.discord.gg",
                "user": {"id": "bot"},
                "guilds": [{"id": "g1", "unavailable": True}, {"id": "g2"}],
            },
        )
        assert event == ConnectionReady(user_id="bot", guild_ids=["g1", "g2"], session_id="sess")
        assert source._resume_url == "wss://resume.discord.gg/?v=10&encoding=json"

    def test_guild_create_snapshot(self) -> None:
        source = _source()
        [snapshot] = source.translate(
            "GUILD_CREATE",
            {
                "id": "g1",
                "channels": [{"id": "lobby-1"}, {"id": "r1"}],
                "members": [{"user": {"id": "u1", "global_name": "Alice"}, "nick": None}],
                "voice_states": [
                    {"user_id": "u1", "channel_id": "lobby-1"},
                    {"user_id": "u2", "channel_id": "r1"},
                ],
            },
        )
        assert isinstance(snapshot, GuildSnapshot)
        assert snapshot.channel_ids == {"lobby-1", "r1"}
        assert [(p.user_id, p.channel_id, p.display_name) for p in snapshot.presences] == [
            ("u1", "lobby-1", "Alice"),
            ("u2", "r1", None),
        ]

    def test_unavailable_guild_skipped(self) -> None:
        assert _source().translate("GUILD_CREATE", {"id": "g1", "unavailable": True}) == []

    def test_voice_state_uses_cache_for_previous_channel(self) -> None:
        source = _source()
        source.translate(
            "GUILD_CREATE",
            {"id": "g1", "voice_states": [{"user_id": "u1", "channel_id": "lobby-1"}]},
        )

        [moved] = source.translate("VOICE_STATE_UPDATE", _voice_state("u1", "r1"))
        [left] = source.translate("VOICE_STATE_UPDATE", _voice_state("u1", None))
        [joined] = source.translate("VOICE_STATE_UPDATE", _voice_state("u1", "lobby-1"))

        assert isinstance(moved, VoiceStateChange)
        assert (moved.before_channel_id, moved.after_channel_id) == ("lobby-1", "r1")
        assert (left.before_channel_id, left.after_channel_id) == ("r1", None)
        assert (joined.before_channel_id, joined.after_channel_id) == (None, "lobby-1")

    def test_mute_toggle_is_not_a_move(self) -> None:
        source = _source()
        source.translate("VOICE_STATE_UPDATE", _voice_state("u1", "r1"))
        [toggle] = source.translate("VOICE_STATE_UPDATE", _voice_state("u1", "r1"))
        assert isinstance(toggle, VoiceStateChange)
        assert not toggle.moved

    def test_display_name_prefers_nick(self) -> None:
        source = _source()
        payload = _voice_state("u1", "r1", nick="Ally")
        payload["member"]["user"]["global_name"] = "Alice"
        [change] = source.translate("VOICE_STATE_UPDATE", payload)
        assert change.display_name == "Ally"  # type: ignore[union-attr]

    def test_voice_state_outside_guild_ignored(self) -> None:
        payload = _voice_state("u1", "dm-call")
        payload["guild_id"] = None
        assert _source().translate("VOICE_STATE_UPDATE", payload) == []

    def test_guild_delete_clears_cache(self) -> None:
        source = _source()
        source.translate("VOICE_STATE_UPDATE", _voice_state("u1", "r1"))
        source.translate("GUILD_DELETE", {"id": "g1"})
        [change] = source.translate("VOICE_STATE_UPDATE", _voice_state("u1", "r2"))
        assert change.before_channel_id is None  # type: ignore[union-attr]

    def test_unknown_dispatch_ignored(self) -> None:
        assert _source().translate("MESSAGE_CREATE", {"id": "m1"}) == []


class TestSession:
    async def test_identify_and_dispatch(self) -> None:
        source = _source()
        ws = _FakeWebSocket(
            {"op": OP_HELLO, "d": {"heartbeat_interval": 45000}},
            {
                "op": OP_DISPATCH,
                "t": "READY",
                "s": 1,
                "d": {"session_id": "sess", "user": {"id": "bot"}, "guilds": [{"id": "g1"}]},
            },
            {"op": OP_RECONNECT, "d": None},
        )
        emitted: list[GatewayEvent] = []

        async def emit(event: GatewayEvent) -> None:
            emitted.append(event)

        await asyncio.wait_for(source._run_session(ws, emit), timeout=1.0)
        await source._stop_heartbeat()

        identify = next(p for p in ws.sent if p["op"] == OP_IDENTIFY)
        assert identify["d"]["token"] == "secret"
        assert identify["d"]["intents"] == 1 | 128
        assert emitted == [ConnectionReady(user_id="bot", guild_ids=["g1"], session_id="sess")]
        assert source._seq == 1
        assert source.status == SourceStatus.CONNECTED
        health = await source.healthcheck()
        assert health.events_received == 1

    async def test_resume_when_session_known(self) -> None:
        source = _source()
        source._session_id = "sess"
        source._seq = 42
        ws = _FakeWebSocket(
            {"op": OP_HELLO, "d": {"heartbeat_interval": 45000}},
            {"op": OP_RECONNECT, "d": None},
        )

        async def emit(event: GatewayEvent) -> None:
            pass

        await asyncio.wait_for(source._run_session(ws, emit), timeout=1.0)
        await source._stop_heartbeat()

        resume = next(p for p in ws.sent if p["op"] == OP_RESUME)
        assert resume["d"] == {"token": "secret", "session_id": "sess", "seq": 42}
        assert not any(p["op"] == OP_IDENTIFY for p in ws.sent)

    async def test_invalid_session_forgets_session(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(random, "uniform", lambda a, b: 0)
        source = _source()
        source._session_id = "sess"
        source._seq = 3
        ws = _FakeWebSocket()

        async def emit(event: GatewayEvent) -> None:
            pass

        keep = await source._handle_payload(ws, {"op": OP_INVALID_SESSION, "d": False}, emit)

        assert keep is False
        assert source._session_id is None
        assert source._seq is None

    async def test_server_heartbeat_request_answered(self) -> None:
        source = _source()
        source._seq = 7
        ws = _FakeWebSocket()

        async def emit(event: GatewayEvent) -> None:
            pass

        assert await source._handle_payload(ws, {"op": OP_HEARTBEAT}, emit)
        assert ws.sent == [{"op": OP_HEARTBEAT, "d": 7}]

    async def test_unacknowledged_heartbeat_closes_connection(self) -> None:
        source = _source()
        ws = _FakeWebSocket()

        await asyncio.wait_for(source._heartbeat(ws, 0.01), timeout=1.0)

        assert ws.sent[0]["op"] == OP_HEARTBEAT
        assert ws.close_code == 4000

    async def test_heartbeat_ack_recorded(self) -> None:
        source = _source()
        source._heartbeat_acked = False

        async def emit(event: GatewayEvent) -> None:
            pass

        await source._handle_payload(_FakeWebSocket(), {"op": OP_HEARTBEAT_ACK}, emit)
        assert source._heartbeat_acked is True

    async def test_stop_sets_status(self) -> None:
        source = _source()
        await source.stop()
        assert source.status == SourceStatus.STOPPED
        assert source._should_stop()
