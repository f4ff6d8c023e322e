"""Gateway event sources for tempvoice.

Sources connect to a gateway and emit normalized presence events
(``ConnectionReady``, ``GuildSnapshot``, ``VoiceStateChange``) to the
orchestrator.

Built-in sources:
    - DiscordGatewaySource: Discord gateway over websockets
"""

from tempvoice.sources.base import (
    BaseEventSource,
    EmitCallback,
    EventSource,
    SourceHealth,
    SourceStatus,
)
from tempvoice.sources.discord_gateway import DiscordGatewaySource, GatewayError

__all__ = [
    "BaseEventSource",
    "DiscordGatewaySource",
    "EmitCallback",
    "EventSource",
    "GatewayError",
    "SourceHealth",
    "SourceStatus",
]
