"""Remote room directory clients."""

from tempvoice.directory.base import RoomDirectory
from tempvoice.directory.config import DiscordConfig
from tempvoice.directory.discord import DiscordRoomDirectory
from tempvoice.directory.mock import MockRoomDirectory

__all__ = ["DiscordConfig", "DiscordRoomDirectory", "MockRoomDirectory", "RoomDirectory"]
