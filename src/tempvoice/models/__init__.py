"""Data models for tempvoice."""

from tempvoice.models.directory import ChannelInfo, DirectoryResult, UserInfo
from tempvoice.models.enums import LifecycleEventType, ReconciliationPolicy, RoomState
from tempvoice.models.events import (
    ConnectionReady,
    GatewayEvent,
    GuildSnapshot,
    LiveSnapshot,
    VoicePresence,
    VoiceStateChange,
)
from tempvoice.models.lifecycle_event import LifecycleEvent
from tempvoice.models.report import ReconciliationReport
from tempvoice.models.room import EphemeralRoom

__all__ = [
    "ChannelInfo",
    "ConnectionReady",
    "DirectoryResult",
    "EphemeralRoom",
    "GatewayEvent",
    "GuildSnapshot",
    "LifecycleEvent",
    "LifecycleEventType",
    "LiveSnapshot",
    "ReconciliationPolicy",
    "ReconciliationReport",
    "RoomState",
    "UserInfo",
    "VoicePresence",
    "VoiceStateChange",
]
