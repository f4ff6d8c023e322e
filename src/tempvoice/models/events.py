"""Normalized gateway events consumed by the lifecycle engine."""

from __future__ import annotations

from collections import Counter

from pydantic import BaseModel, Field


class ConnectionReady(BaseModel):
    """The gateway session is ready; ``guild_ids`` snapshots will follow."""

    user_id: str | None = None
    guild_ids: list[str] = Field(default_factory=list)
    session_id: str | None = None
    resumed: bool = False


class VoiceStateChange(BaseModel):
    """A user's voice channel changed.

    ``before_channel_id`` is ``None`` when the user was not in voice before;
    ``after_channel_id`` is ``None`` when the user disconnected.
    """

    guild_id: str
    user_id: str
    before_channel_id: str | None = None
    after_channel_id: str | None = None
    display_name: str | None = None

    @property
    def moved(self) -> bool:
        return self.before_channel_id != self.after_channel_id


class VoicePresence(BaseModel):
    """One user currently connected to a voice channel."""

    user_id: str
    channel_id: str
    display_name: str | None = None


class GuildSnapshot(BaseModel):
    """Channels and voice presences of one guild at connection time."""

    guild_id: str
    channel_ids: set[str] = Field(default_factory=set)
    presences: list[VoicePresence] = Field(default_factory=list)


GatewayEvent = ConnectionReady | VoiceStateChange | GuildSnapshot


class LiveSnapshot(BaseModel):
    """Voice presences across every guild, used by startup reconciliation."""

    guilds: dict[str, GuildSnapshot] = Field(default_factory=dict)

    def add(self, guild: GuildSnapshot) -> None:
        self.guilds[guild.guild_id] = guild

    def occupancy(self) -> Counter[str]:
        """Count occupants per channel ID."""
        counts: Counter[str] = Counter()
        for guild in self.guilds.values():
            for presence in guild.presences:
                counts[presence.channel_id] += 1
        return counts

    def guild_of(self, channel_id: str) -> str | None:
        for guild in self.guilds.values():
            if channel_id in guild.channel_ids:
                return guild.guild_id
            if any(p.channel_id == channel_id for p in guild.presences):
                return guild.guild_id
        return None

    def occupants(self, channel_id: str) -> list[tuple[str, VoicePresence]]:
        """Return ``(guild_id, presence)`` pairs for everyone in *channel_id*."""
        return [
            (guild.guild_id, presence)
            for guild in self.guilds.values()
            for presence in guild.presences
            if presence.channel_id == channel_id
        ]
