"""Discord REST directory: manages voice rooms via the Discord HTTP API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from tempvoice.directory.base import RoomDirectory
from tempvoice.directory.config import (
    CHANNEL_TYPE_GUILD_VOICE,
    OVERWRITE_TYPE_MEMBER,
    OWNER_PERMISSIONS,
    DiscordConfig,
)
from tempvoice.models.directory import ChannelInfo, DirectoryResult, UserInfo

logger = logging.getLogger("tempvoice.directory.discord")


class DiscordRoomDirectory(RoomDirectory):
    """Create, place and delete voice rooms through Discord's REST API v10."""

    def __init__(self, config: DiscordConfig) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_base,
            timeout=config.timeout,
            headers={"Authorization": config.authorization},
        )

    async def create_room(
        self,
        guild_id: str,
        name: str,
        parent_id: str | None = None,
        position: int | None = None,
    ) -> DirectoryResult:
        payload: dict[str, Any] = {"name": name, "type": CHANNEL_TYPE_GUILD_VOICE}
        if parent_id is not None:
            payload["parent_id"] = parent_id
        if position is not None:
            payload["position"] = position
        result = await self._api_call("POST", f"/guilds/{guild_id}/channels", payload)
        if result.success:
            data = result.metadata.pop("body", {})
            channel = _channel_info(data)
            return DirectoryResult(success=True, channel_id=channel.id, channel=channel)
        return result

    async def place_room(
        self, channel_id: str, parent_id: str | None, position: int
    ) -> DirectoryResult:
        return await self._api_call(
            "PATCH",
            f"/channels/{channel_id}",
            {"parent_id": parent_id, "position": position},
            channel_id=channel_id,
        )

    async def delete_room(self, channel_id: str) -> DirectoryResult:
        result = await self._api_call("DELETE", f"/channels/{channel_id}", channel_id=channel_id)
        if not result.success and result.error == "discord_404":
            # Unknown channel: someone already removed it.
            return DirectoryResult(
                success=True, channel_id=channel_id, metadata={"already_deleted": True}
            )
        return result

    async def move_user(self, guild_id: str, user_id: str, channel_id: str) -> DirectoryResult:
        return await self._api_call(
            "PATCH",
            f"/guilds/{guild_id}/members/{user_id}",
            {"channel_id": channel_id},
            channel_id=channel_id,
        )

    async def set_owner_permissions(self, channel_id: str, user_id: str) -> DirectoryResult:
        return await self._api_call(
            "PUT",
            f"/channels/{channel_id}/permissions/{user_id}",
            {"type": OVERWRITE_TYPE_MEMBER, "allow": str(OWNER_PERMISSIONS), "deny": "0"},
            channel_id=channel_id,
        )

    async def get_channel(self, channel_id: str) -> DirectoryResult:
        result = await self._api_call("GET", f"/channels/{channel_id}", channel_id=channel_id)
        if not result.success:
            return result
        data = result.metadata.pop("body", {})
        return DirectoryResult(success=True, channel_id=channel_id, channel=_channel_info(data))

    async def get_user(self, user_id: str) -> DirectoryResult:
        result = await self._api_call("GET", f"/users/{user_id}")
        if not result.success:
            return result
        data = result.metadata.pop("body", {})
        user = UserInfo(
            id=str(data.get("id", user_id)),
            username=data.get("username") or "",
            global_name=data.get("global_name"),
        )
        return DirectoryResult(success=True, user=user)

    async def _api_call(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        *,
        channel_id: str | None = None,
    ) -> DirectoryResult:
        try:
            resp = await self._client.request(method, path, json=payload)
            resp.raise_for_status()
        except httpx.TimeoutException:
            return DirectoryResult(success=False, channel_id=channel_id, error="timeout")
        except httpx.HTTPStatusError as exc:
            return self._parse_error(exc, channel_id)
        except httpx.HTTPError as exc:
            return DirectoryResult(success=False, channel_id=channel_id, error=str(exc))

        body: Any = resp.json() if resp.content else {}
        return DirectoryResult(success=True, channel_id=channel_id, metadata={"body": body})

    @staticmethod
    def _parse_error(exc: httpx.HTTPStatusError, channel_id: str | None) -> DirectoryResult:
        """Extract a Discord API error when available."""
        status = exc.response.status_code
        try:
            body = exc.response.json()
        except ValueError:
            body = {}
        metadata: dict[str, Any] = {}
        if isinstance(body, dict):
            if "code" in body:
                metadata["code"] = body["code"]
            if "message" in body:
                metadata["message"] = body["message"]
        return DirectoryResult(
            success=False,
            channel_id=channel_id,
            error=f"discord_{status}",
            metadata=metadata,
        )

    async def close(self) -> None:
        await self._client.aclose()


def _channel_info(data: dict[str, Any]) -> ChannelInfo:
    parent_id = data.get("parent_id")
    guild_id = data.get("guild_id")
    return ChannelInfo(
        id=str(data["id"]),
        guild_id=str(guild_id) if guild_id is not None else None,
        name=data.get("name") or "",
        parent_id=str(parent_id) if parent_id is not None else None,
        position=int(data.get("position") or 0),
    )
