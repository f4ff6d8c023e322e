"""Discord API configuration."""

from __future__ import annotations

from pydantic import BaseModel, SecretStr

# Gateway intents
INTENT_GUILDS = 1 << 0
INTENT_GUILD_VOICE_STATES = 1 << 7

# Permission bits granted to a room's owner
PERMISSION_MANAGE_CHANNELS = 1 << 4
PERMISSION_MOVE_MEMBERS = 1 << 24
OWNER_PERMISSIONS = PERMISSION_MANAGE_CHANNELS | PERMISSION_MOVE_MEMBERS

CHANNEL_TYPE_GUILD_VOICE = 2
OVERWRITE_TYPE_MEMBER = 1


class DiscordConfig(BaseModel):
    """Discord REST and gateway configuration."""

    bot_token: SecretStr
    api_base: str = "https://discord.com/api/v10"
    gateway_url: str = "wss://gateway.discord.gg/?v=10&encoding=json"
    timeout: float = 30.0
    intents: int = INTENT_GUILDS | INTENT_GUILD_VOICE_STATES

    @property
    def authorization(self) -> str:
        return f"Bot {self.bot_token.get_secret_value()}"
