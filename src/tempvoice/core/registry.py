"""In-process authoritative state of lobbies and managed rooms."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from tempvoice.models.enums import RoomState
from tempvoice.models.room import EphemeralRoom

logger = logging.getLogger("tempvoice.registry")


class RoomRegistry:
    """Lobby IDs plus a map of managed room ID to its occupancy state.

    **Concurrency note:** no method contains an ``await``, so every call is
    atomic within a single event-loop iteration. Multi-step sequences
    (decrement then delete) are serialized by the lifecycle controller's
    per-guild ordering domain, not here.

    Increment and decrement never create entries: creation is an explicit
    :meth:`upsert` issued by the controller or by reconciliation.
    """

    def __init__(self, lobby_ids: Iterable[str] = ()) -> None:
        self._lobbies: frozenset[str] = frozenset(lobby_ids)
        self._rooms: dict[str, EphemeralRoom] = {}

    # -- Queries --

    @property
    def lobby_ids(self) -> frozenset[str]:
        return self._lobbies

    def is_lobby(self, channel_id: str | None) -> bool:
        return channel_id is not None and channel_id in self._lobbies

    def is_managed(self, channel_id: str | None) -> bool:
        return channel_id is not None and channel_id in self._rooms

    def get(self, channel_id: str) -> EphemeralRoom | None:
        room = self._rooms.get(channel_id)
        return room.model_copy() if room is not None else None

    def rooms(self) -> list[EphemeralRoom]:
        return [room.model_copy() for room in self._rooms.values()]

    def find_awaiting(self, guild_id: str, user_id: str) -> EphemeralRoom | None:
        """Return the room created for *user_id* that they have not entered yet."""
        for room in self._rooms.values():
            if (
                room.awaiting_owner
                and room.owner_user_id == user_id
                and room.guild_id == guild_id
                and room.is_live
            ):
                return room.model_copy()
        return None

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rooms))

    # -- Mutations --

    def upsert(self, room: EphemeralRoom) -> EphemeralRoom:
        if room.id in self._lobbies:
            raise ValueError(f"Lobby {room.id} cannot be registered as a room")
        self._rooms[room.id] = room.model_copy()
        return room

    def increment_occupancy(self, channel_id: str) -> tuple[int, bool]:
        room = self._rooms.get(channel_id)
        if room is None or not room.is_live:
            return 0, False
        update: dict[str, object] = {"occupancy": room.occupancy + 1}
        if room.state == RoomState.EMPTY:
            update["state"] = RoomState.ACTIVE
        self._rooms[channel_id] = room.model_copy(update=update)
        return room.occupancy + 1, True

    def decrement_occupancy(self, channel_id: str) -> tuple[int, bool]:
        """Decrement occupancy, clamping at zero. A room reaching zero becomes EMPTY."""
        room = self._rooms.get(channel_id)
        if room is None or not room.is_live:
            return 0, False
        count = max(room.occupancy - 1, 0)
        update: dict[str, object] = {"occupancy": count}
        if count == 0 and room.state == RoomState.ACTIVE:
            update["state"] = RoomState.EMPTY
        self._rooms[channel_id] = room.model_copy(update=update)
        return count, True

    def owner_arrived(self, channel_id: str, user_id: str) -> bool:
        """Consume the awaiting-owner marker if *user_id* is that owner.

        Returns ``True`` when the arrival was already counted at creation.
        """
        room = self._rooms.get(channel_id)
        if room is None or not room.awaiting_owner or room.owner_user_id != user_id:
            return False
        self._rooms[channel_id] = room.model_copy(update={"awaiting_owner": False})
        return True

    def mark_active(self, channel_id: str) -> None:
        room = self._rooms.get(channel_id)
        if room is not None and room.state == RoomState.CREATING:
            self._rooms[channel_id] = room.model_copy(update={"state": RoomState.ACTIVE})

    def begin_delete(self, channel_id: str) -> EphemeralRoom | None:
        """Transition a room to DELETING.

        Returns the room, or ``None`` if it is untracked or already being
        deleted; the transition happens at most once per room.
        """
        room = self._rooms.get(channel_id)
        if room is None or not room.is_live:
            return None
        room = room.model_copy(update={"state": RoomState.DELETING})
        self._rooms[channel_id] = room
        return room.model_copy()

    def remove(self, channel_id: str) -> EphemeralRoom | None:
        room = self._rooms.pop(channel_id, None)
        if room is None:
            return None
        return room.model_copy(update={"state": RoomState.GONE})
