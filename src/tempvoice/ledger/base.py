"""Abstract base class for the room ledger."""

from __future__ import annotations

from abc import ABC, abstractmethod


class RoomLedger(ABC):
    """Durable set of room IDs this process believes it owns.

    The ledger is only used for crash recovery: it tells startup
    reconciliation which channels to look at. It never records occupancy.
    Implement this ABC to plug in any storage backend. The library ships
    with ``InMemoryLedger`` for tests, ``SQLiteLedger`` as the default and
    ``PostgresLedger`` for shared databases.

    Backends raise :class:`~tempvoice.errors.LedgerIOFailed` on I/O errors.
    """

    async def init(self) -> None:  # noqa: B027
        """Open connections and ensure the schema exists."""

    @abstractmethod
    async def add(self, channel_id: str) -> None:
        """Record *channel_id*. Adding an existing ID is a no-op."""
        ...

    @abstractmethod
    async def remove(self, channel_id: str) -> None:
        """Forget *channel_id*. Removing an absent ID is a no-op."""
        ...

    @abstractmethod
    async def list_all(self) -> list[str]:
        """Return every recorded ID."""
        ...

    @abstractmethod
    async def clear_all(self) -> None:
        """Forget every recorded ID."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. Override in backends that hold connections."""

    async def __aenter__(self) -> RoomLedger:
        await self.init()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
