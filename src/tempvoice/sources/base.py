"""Base abstraction for gateway event sources."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum, unique

from pydantic import BaseModel

from tempvoice.models.events import GatewayEvent


@unique
class SourceStatus(StrEnum):
    """Connection status for an event source."""

    STOPPED = "stopped"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


class SourceHealth(BaseModel):
    """Health information for an event source."""

    status: SourceStatus = SourceStatus.STOPPED
    connected_at: datetime | None = None
    last_event_at: datetime | None = None
    events_received: int = 0
    error: str | None = None


EmitCallback = Callable[[GatewayEvent], Awaitable[None]]


class EventSource(ABC):
    """Delivers normalized presence events to the lifecycle engine.

    Lifecycle:
        1. Create the source with its configuration
        2. Call ``start(emit)``: it connects and runs until stopped
        3. The source awaits ``emit(event)`` for each ``ConnectionReady``,
           ``GuildSnapshot`` and ``VoiceStateChange``
        4. Call ``stop()`` to disconnect

    Events for one connection must be emitted in the order they were
    received. Duplicates are tolerated downstream.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs."""
        ...

    @abstractmethod
    async def start(self, emit: EmitCallback) -> None:
        """Connect and emit events until ``stop()`` is called."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop receiving events and release the connection."""
        ...

    @property
    def status(self) -> SourceStatus:
        return SourceStatus.STOPPED

    async def healthcheck(self) -> SourceHealth:
        return SourceHealth(status=self.status)


class BaseEventSource(EventSource):
    """Convenience base class with status, counters and a stop signal."""

    def __init__(self) -> None:
        self._status = SourceStatus.STOPPED
        self._connected_at: datetime | None = None
        self._last_event_at: datetime | None = None
        self._events_received = 0
        self._error: str | None = None
        self._stop_event = asyncio.Event()

    @property
    def status(self) -> SourceStatus:
        return self._status

    async def healthcheck(self) -> SourceHealth:
        return SourceHealth(
            status=self._status,
            connected_at=self._connected_at,
            last_event_at=self._last_event_at,
            events_received=self._events_received,
            error=self._error,
        )

    def _set_status(self, status: SourceStatus, error: str | None = None) -> None:
        self._status = status
        self._error = error
        if status == SourceStatus.CONNECTED:
            self._connected_at = datetime.now(UTC)
            self._error = None

    def _record_event(self) -> None:
        self._events_received += 1
        self._last_event_at = datetime.now(UTC)

    def _should_stop(self) -> bool:
        return self._stop_event.is_set()

    def _reset_stop(self) -> None:
        self._stop_event.clear()

    async def stop(self) -> None:
        self._stop_event.set()
        self._status = SourceStatus.STOPPED
