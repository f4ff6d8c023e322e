"""Discord gateway event source."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
import sys
from typing import Any

import websockets
from websockets import ClientConnection

from tempvoice.directory.config import DiscordConfig
from tempvoice.errors import TempVoiceError
from tempvoice.models.events import (
    ConnectionReady,
    GatewayEvent,
    GuildSnapshot,
    VoicePresence,
    VoiceStateChange,
)
from tempvoice.sources.base import BaseEventSource, EmitCallback, SourceStatus

logger = logging.getLogger("tempvoice.sources.discord")

# Gateway opcodes
OP_DISPATCH = 0
OP_HEARTBEAT = 1
OP_IDENTIFY = 2
OP_RESUME = 6
OP_RECONNECT = 7
OP_INVALID_SESSION = 9
OP_HELLO = 10
OP_HEARTBEAT_ACK = 11

# Close codes after which reconnecting cannot help
_FATAL_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})

_GATEWAY_QUERY = "?v=10&encoding=json"


class GatewayError(TempVoiceError):
    """The gateway refused the session."""


class DiscordGatewaySource(BaseEventSource):
    """Discord gateway client that emits normalized presence events.

    Keeps a voice-state cache so every ``VOICE_STATE_UPDATE`` can be
    reported together with the channel the user was in before. After a
    dropped connection it resumes the session when possible, so missed
    dispatches are replayed instead of lost.

    Example:
        source = DiscordGatewaySource(DiscordConfig(bot_token=token))
        await source.start(handle_event)
    """

    def __init__(
        self,
        config: DiscordConfig,
        *,
        reconnect: bool = True,
        max_reconnect_backoff: float = 60.0,
    ) -> None:
        super().__init__()
        self._config = config
        self._reconnect = reconnect
        self._max_reconnect_backoff = max_reconnect_backoff
        self._ws: ClientConnection | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._heartbeat_acked = True
        self._seq: int | None = None
        self._session_id: str | None = None
        self._resume_url: str | None = None
        # (guild_id, user_id) -> voice channel the user is connected to
        self._voice_channels: dict[tuple[str, str], str] = {}

    @property
    def name(self) -> str:
        return "discord-gateway"

    async def start(self, emit: EmitCallback) -> None:
        """Connect, identify (or resume) and emit events until stopped."""
        self._reset_stop()
        backoff = 1.0
        while not self._should_stop():
            self._set_status(SourceStatus.CONNECTING)
            url = self._resume_url or self._config.gateway_url
            try:
                async with websockets.connect(url, max_size=None) as ws:
                    self._ws = ws
                    await self._run_session(ws, emit)
                    backoff = 1.0
            except asyncio.CancelledError:
                raise
            except websockets.ConnectionClosed as exc:
                code = exc.rcvd.code if exc.rcvd is not None else None
                if code in _FATAL_CLOSE_CODES:
                    self._set_status(SourceStatus.ERROR, f"closed with {code}")
                    raise GatewayError(f"Gateway closed the session with code {code}") from exc
                if not self._reconnect or self._should_stop():
                    self._set_status(SourceStatus.ERROR, str(exc))
                    raise
                logger.warning(
                    "Gateway connection closed (%s), reconnecting in %.1fs", exc, backoff
                )
            except Exception as exc:
                if not self._reconnect or self._should_stop():
                    self._set_status(SourceStatus.ERROR, str(exc))
                    raise
                self._set_status(SourceStatus.ERROR, str(exc))
                logger.warning("Gateway connection lost (%s), reconnecting in %.1fs", exc, backoff)
            finally:
                await self._stop_heartbeat()
                self._ws = None

            if self._should_stop() or not self._reconnect:
                return
            self._set_status(SourceStatus.RECONNECTING)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self._max_reconnect_backoff)

    async def stop(self) -> None:
        await super().stop()
        await self._stop_heartbeat()
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
            self._ws = None
        logger.info("Gateway source stopped")

    # -- Session --

    async def _run_session(self, ws: ClientConnection, emit: EmitCallback) -> None:
        hello = json.loads(await ws.recv())
        if hello.get("op") != OP_HELLO:
            raise GatewayError(f"Expected HELLO, got op {hello.get('op')}")
        interval = hello["d"]["heartbeat_interval"] / 1000
        self._heartbeat_acked = True
        self._heartbeat_task = asyncio.get_running_loop().create_task(
            self._heartbeat(ws, interval), name="discord_gateway_heartbeat"
        )

        if self._session_id is not None and self._seq is not None:
            await self._send(ws, OP_RESUME, self.resume_payload())
        else:
            await self._send(ws, OP_IDENTIFY, self.identify_payload())
        self._set_status(SourceStatus.CONNECTED)

        while not self._should_stop():
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=1.0)
            except TimeoutError:
                continue
            if not await self._handle_payload(ws, json.loads(raw), emit):
                return

    async def _handle_payload(
        self, ws: ClientConnection, payload: dict[str, Any], emit: EmitCallback
    ) -> bool:
        """Handle one gateway payload. Returns ``False`` to reconnect."""
        op = payload.get("op")
        if op == OP_DISPATCH:
            if payload.get("s") is not None:
                self._seq = payload["s"]
            for event in self.translate(payload.get("t") or "", payload.get("d") or {}):
                self._record_event()
                await emit(event)
        elif op == OP_HEARTBEAT:
            await self._send(ws, OP_HEARTBEAT, self._seq)
        elif op == OP_HEARTBEAT_ACK:
            self._heartbeat_acked = True
        elif op == OP_RECONNECT:
            logger.info("Gateway requested reconnect")
            return False
        elif op == OP_INVALID_SESSION:
            if not payload.get("d"):
                self._forget_session()
            logger.info("Gateway invalidated the session")
            await asyncio.sleep(random.uniform(1.0, 5.0))
            return False
        return True

    async def _heartbeat(self, ws: ClientConnection, interval: float) -> None:
        await asyncio.sleep(interval * random.random())
        while True:
            if not self._heartbeat_acked:
                logger.warning("Heartbeat not acknowledged, dropping connection")
                await ws.close(code=4000)
                return
            self._heartbeat_acked = False
            await self._send(ws, OP_HEARTBEAT, self._seq)
            await asyncio.sleep(interval)

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task

    @staticmethod
    async def _send(ws: ClientConnection, op: int, data: Any) -> None:
        await ws.send(json.dumps({"op": op, "d": data}))

    def identify_payload(self) -> dict[str, Any]:
        return {
            "token": self._config.bot_token.get_secret_value(),
            "intents": self._config.intents,
            "properties": {"os": sys.platform, "browser": "tempvoice", "device": "tempvoice"},
        }

    def resume_payload(self) -> dict[str, Any]:
        return {
            "token": self._config.bot_token.get_secret_value(),
            "session_id": self._session_id,
            "seq": self._seq,
        }

    def _forget_session(self) -> None:
        self._session_id = None
        self._seq = None
        self._resume_url = None

    # -- Dispatch translation --

    def translate(self, event_type: str, data: dict[str, Any]) -> list[GatewayEvent]:
        """Turn one gateway dispatch into normalized events."""
        if event_type == "READY":
            return [self._on_ready(data)]
        if event_type == "RESUMED":
            return [ConnectionReady(session_id=self._session_id, resumed=True)]
        if event_type == "GUILD_CREATE":
            snapshot = self._on_guild_create(data)
            return [snapshot] if snapshot is not None else []
        if event_type == "GUILD_DELETE":
            self._drop_guild(str(data.get("id")))
            return []
        if event_type == "VOICE_STATE_UPDATE":
            change = self._on_voice_state(data)
            return [change] if change is not None else []
        return []

    def _on_ready(self, data: dict[str, Any]) -> ConnectionReady:
        self._session_id = data.get("session_id")
        resume_url = data.get("resume_gateway_url")
        self._resume_url = f"{resume_url}/{_GATEWAY_QUERY}" if resume_url else None
        self._voice_channels.clear()
        user = data.get("user") or {}
        return ConnectionReady(
            user_id=str(user["id"]) if "id" in user else None,
            guild_ids=[str(g["id"]) for g in data.get("guilds", [])],
            session_id=self._session_id,
        )

    def _on_guild_create(self, data: dict[str, Any]) -> GuildSnapshot | None:
        if data.get("unavailable"):
            logger.debug("Guild %s unavailable, skipping snapshot", data.get("id"))
            return None
        guild_id = str(data["id"])
        names = {
            str(member["user"]["id"]): _display_name(member)
            for member in data.get("members", [])
            if member.get("user")
        }
        self._drop_guild(guild_id)
        presences: list[VoicePresence] = []
        for state in data.get("voice_states", []):
            channel_id = state.get("channel_id")
            if channel_id is None:
                continue
            user_id = str(state["user_id"])
            self._voice_channels[(guild_id, user_id)] = str(channel_id)
            presences.append(
                VoicePresence(
                    user_id=user_id,
                    channel_id=str(channel_id),
                    display_name=names.get(user_id),
                )
            )
        return GuildSnapshot(
            guild_id=guild_id,
            channel_ids={str(c["id"]) for c in data.get("channels", [])},
            presences=presences,
        )

    def _on_voice_state(self, data: dict[str, Any]) -> VoiceStateChange | None:
        if data.get("guild_id") is None:
            return None
        guild_id = str(data["guild_id"])
        user_id = str(data["user_id"])
        key = (guild_id, user_id)
        before = self._voice_channels.get(key)
        after = str(data["channel_id"]) if data.get("channel_id") is not None else None
        if after is None:
            self._voice_channels.pop(key, None)
        else:
            self._voice_channels[key] = after
        member = data.get("member")
        return VoiceStateChange(
            guild_id=guild_id,
            user_id=user_id,
            before_channel_id=before,
            after_channel_id=after,
            display_name=_display_name(member) if member else None,
        )

    def _drop_guild(self, guild_id: str) -> None:
        for key in [k for k in self._voice_channels if k[0] == guild_id]:
            del self._voice_channels[key]


def _display_name(member: dict[str, Any]) -> str | None:
    user = member.get("user") or {}
    return member.get("nick") or user.get("global_name") or user.get("username")
