"""Abstract base class for the remote room directory."""

from __future__ import annotations

from abc import ABC, abstractmethod

from tempvoice.models.directory import DirectoryResult


class RoomDirectory(ABC):
    """Remote side of room management: create, place, delete, move, permit.

    Every call is request/response and may fail or hang. Implementations
    report failures through :class:`DirectoryResult` instead of raising so
    the lifecycle controller decides what a failure means.
    """

    @property
    def name(self) -> str:
        """Directory name."""
        return self.__class__.__name__

    @abstractmethod
    async def create_room(
        self,
        guild_id: str,
        name: str,
        parent_id: str | None = None,
        position: int | None = None,
    ) -> DirectoryResult:
        """Create a voice room. ``channel_id`` on the result is the new room."""
        ...

    @abstractmethod
    async def place_room(
        self, channel_id: str, parent_id: str | None, position: int
    ) -> DirectoryResult:
        """Move a room under *parent_id* at *position*."""
        ...

    @abstractmethod
    async def delete_room(self, channel_id: str) -> DirectoryResult:
        """Delete a room. A room that is already gone counts as success."""
        ...

    @abstractmethod
    async def move_user(self, guild_id: str, user_id: str, channel_id: str) -> DirectoryResult:
        """Move a connected user into *channel_id*."""
        ...

    @abstractmethod
    async def set_owner_permissions(self, channel_id: str, user_id: str) -> DirectoryResult:
        """Let *user_id* manage the room and move members in and out of it."""
        ...

    @abstractmethod
    async def get_channel(self, channel_id: str) -> DirectoryResult:
        """Fetch channel metadata into ``result.channel``."""
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> DirectoryResult:
        """Fetch user metadata into ``result.user``."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. Override in subclasses that hold connections."""
