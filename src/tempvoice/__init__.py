"""tempvoice - Ephemeral per-user Discord voice rooms."""

from tempvoice._version import __version__
from tempvoice.config import TempVoiceConfig
from tempvoice.core.controller import LifecycleController
from tempvoice.core.framework import TempVoice
from tempvoice.core.locks import GuildLockManager, InMemoryLockManager
from tempvoice.core.reconcile import ReconciliationEngine
from tempvoice.core.registry import RoomRegistry
from tempvoice.directory import (
    DiscordConfig,
    DiscordRoomDirectory,
    MockRoomDirectory,
    RoomDirectory,
)
from tempvoice.errors import (
    ConfigError,
    LedgerIOFailed,
    RemoteCallFailed,
    TempVoiceError,
    UnknownChannelReference,
)
from tempvoice.ledger import InMemoryLedger, RoomLedger, SQLiteLedger
from tempvoice.models import (
    ChannelInfo,
    ConnectionReady,
    DirectoryResult,
    EphemeralRoom,
    GatewayEvent,
    GuildSnapshot,
    LifecycleEvent,
    LifecycleEventType,
    LiveSnapshot,
    ReconciliationPolicy,
    ReconciliationReport,
    RoomState,
    UserInfo,
    VoicePresence,
    VoiceStateChange,
)
from tempvoice.sources import BaseEventSource, DiscordGatewaySource, EventSource, SourceStatus

__all__ = [
    "BaseEventSource",
    "ChannelInfo",
    "ConfigError",
    "ConnectionReady",
    "DirectoryResult",
    "DiscordConfig",
    "DiscordGatewaySource",
    "DiscordRoomDirectory",
    "EphemeralRoom",
    "EventSource",
    "GatewayEvent",
    "GuildLockManager",
    "GuildSnapshot",
    "InMemoryLedger",
    "InMemoryLockManager",
    "LedgerIOFailed",
    "LifecycleController",
    "LifecycleEvent",
    "LifecycleEventType",
    "LiveSnapshot",
    "MockRoomDirectory",
    "ReconciliationEngine",
    "ReconciliationPolicy",
    "ReconciliationReport",
    "RemoteCallFailed",
    "RoomDirectory",
    "RoomLedger",
    "RoomRegistry",
    "RoomState",
    "SQLiteLedger",
    "SourceStatus",
    "TempVoice",
    "TempVoiceConfig",
    "TempVoiceError",
    "UnknownChannelReference",
    "UserInfo",
    "VoicePresence",
    "VoiceStateChange",
    "__version__",
]
