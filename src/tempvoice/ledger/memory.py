"""In-memory implementation of RoomLedger."""

from __future__ import annotations

from tempvoice.ledger.base import RoomLedger


class InMemoryLedger(RoomLedger):
    """Dict-based ledger for development and testing. Not durable."""

    def __init__(self, channel_ids: list[str] | None = None) -> None:
        # dict keeps insertion order
        self._ids: dict[str, None] = dict.fromkeys(channel_ids or [])

    async def add(self, channel_id: str) -> None:
        self._ids[channel_id] = None

    async def remove(self, channel_id: str) -> None:
        self._ids.pop(channel_id, None)

    async def list_all(self) -> list[str]:
        return list(self._ids)

    async def clear_all(self) -> None:
        self._ids.clear()

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
