"""Remote directory metadata and call results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChannelInfo(BaseModel):
    """Metadata for a remote channel."""

    id: str
    guild_id: str | None = None
    name: str = ""
    parent_id: str | None = None
    position: int = 0


class UserInfo(BaseModel):
    """Metadata for a remote user."""

    id: str
    username: str = ""
    global_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.global_name or self.username or self.id


class DirectoryResult(BaseModel):
    """Result of a single remote directory call."""

    success: bool
    channel_id: str | None = None
    error: str | None = None
    channel: ChannelInfo | None = None
    user: UserInfo | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
