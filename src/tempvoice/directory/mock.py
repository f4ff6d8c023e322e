"""Mock room directory for testing."""

from __future__ import annotations

import asyncio
from typing import Any

from tempvoice.directory.base import RoomDirectory
from tempvoice.models.directory import ChannelInfo, DirectoryResult, UserInfo


class MockRoomDirectory(RoomDirectory):
    """Records every call for verification in tests.

    ``fail`` holds operation names that return a failed result and ``hang``
    holds operation names that never complete (to exercise timeouts).
    Created rooms get sequential IDs ``room-1``, ``room-2``, ...
    """

    def __init__(
        self,
        channels: dict[str, ChannelInfo] | None = None,
        users: dict[str, UserInfo] | None = None,
        *,
        fail: set[str] | None = None,
        hang: set[str] | None = None,
    ) -> None:
        self.channels: dict[str, ChannelInfo] = dict(channels or {})
        self.users: dict[str, UserInfo] = dict(users or {})
        self.fail: set[str] = set(fail or ())
        self.hang: set[str] = set(hang or ())
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._counter = 0

    def calls_for(self, operation: str) -> list[dict[str, Any]]:
        return [args for op, args in self.calls if op == operation]

    async def _record(self, operation: str, **args: Any) -> bool:
        self.calls.append((operation, args))
        if operation in self.hang:
            await asyncio.Event().wait()
        return operation not in self.fail

    async def create_room(
        self,
        guild_id: str,
        name: str,
        parent_id: str | None = None,
        position: int | None = None,
    ) -> DirectoryResult:
        ok = await self._record(
            "create_room", guild_id=guild_id, name=name, parent_id=parent_id, position=position
        )
        if not ok:
            return DirectoryResult(success=False, error="mock_failure")
        self._counter += 1
        channel = ChannelInfo(
            id=f"room-{self._counter}",
            guild_id=guild_id,
            name=name,
            parent_id=parent_id,
            position=position or 0,
        )
        self.channels[channel.id] = channel
        return DirectoryResult(success=True, channel_id=channel.id, channel=channel)

    async def place_room(
        self, channel_id: str, parent_id: str | None, position: int
    ) -> DirectoryResult:
        ok = await self._record(
            "place_room", channel_id=channel_id, parent_id=parent_id, position=position
        )
        return self._result(ok, channel_id)

    async def delete_room(self, channel_id: str) -> DirectoryResult:
        ok = await self._record("delete_room", channel_id=channel_id)
        if ok:
            self.channels.pop(channel_id, None)
        return self._result(ok, channel_id)

    async def move_user(self, guild_id: str, user_id: str, channel_id: str) -> DirectoryResult:
        ok = await self._record(
            "move_user", guild_id=guild_id, user_id=user_id, channel_id=channel_id
        )
        return self._result(ok, channel_id)

    async def set_owner_permissions(self, channel_id: str, user_id: str) -> DirectoryResult:
        ok = await self._record(
            "set_owner_permissions", channel_id=channel_id, user_id=user_id
        )
        return self._result(ok, channel_id)

    async def get_channel(self, channel_id: str) -> DirectoryResult:
        ok = await self._record("get_channel", channel_id=channel_id)
        channel = self.channels.get(channel_id)
        if not ok or channel is None:
            return DirectoryResult(success=False, channel_id=channel_id, error="mock_failure")
        return DirectoryResult(success=True, channel_id=channel_id, channel=channel)

    async def get_user(self, user_id: str) -> DirectoryResult:
        ok = await self._record("get_user", user_id=user_id)
        if not ok:
            return DirectoryResult(success=False, error="mock_failure")
        return DirectoryResult(success=True, user=self.users.get(user_id, UserInfo(id=user_id)))

    @staticmethod
    def _result(ok: bool, channel_id: str) -> DirectoryResult:
        if ok:
            return DirectoryResult(success=True, channel_id=channel_id)
        return DirectoryResult(success=False, channel_id=channel_id, error="mock_failure")
