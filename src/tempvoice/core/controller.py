"""Lifecycle controller: creates, counts and deletes ephemeral rooms."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from tempvoice.config import DEFAULT_ROOM_PATTERN, MAX_ROOM_NAME_LENGTH
from tempvoice.core.locks import GuildLockManager, InMemoryLockManager
from tempvoice.core.registry import RoomRegistry
from tempvoice.directory.base import RoomDirectory
from tempvoice.errors import LedgerIOFailed, RemoteCallFailed
from tempvoice.ledger.base import RoomLedger
from tempvoice.models.directory import ChannelInfo, DirectoryResult
from tempvoice.models.enums import LifecycleEventType, RoomState
from tempvoice.models.events import VoiceStateChange
from tempvoice.models.lifecycle_event import LifecycleEvent
from tempvoice.models.room import EphemeralRoom

logger = logging.getLogger("tempvoice.controller")

NotifyFn = Callable[[LifecycleEvent], Awaitable[None]]


def _default_room_name(display_name: str) -> str:
    return (DEFAULT_ROOM_PATTERN % display_name)[:MAX_ROOM_NAME_LENGTH]


class LifecycleController:
    """Turns voice-presence changes into room creations and deletions.

    Each change is applied as a leave step followed by a join step, both
    under the guild's lock, so a user can never inherit a room that is being
    torn down by their own move.

    Failure policy:

    * A failed lobby lookup or room creation aborts the join step and
      leaves no registry or ledger entry behind.
    * A failed placement, move or permission grant after creation is
      reported as ``room_degraded``; the room stays tracked.
    * A failed or timed-out delete is logged and the room is dropped from
      local state anyway. The remote room may leak; a registry entry never
      does.
    * Ledger errors are logged; the registry stays authoritative for the
      rest of the process lifetime.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        ledger: RoomLedger,
        directory: RoomDirectory,
        *,
        room_name: Callable[[str], str] = _default_room_name,
        lock_manager: GuildLockManager | None = None,
        remote_timeout: float = 10.0,
        notify: NotifyFn | None = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._directory = directory
        self._room_name = room_name
        self._locks = lock_manager or InMemoryLockManager()
        self._remote_timeout = remote_timeout
        self._notify_fn = notify

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def lock_manager(self) -> GuildLockManager:
        return self._locks

    async def handle(self, change: VoiceStateChange) -> None:
        """Apply one voice-presence change: leave step, then join step."""
        if not change.moved:
            # Mute, deafen or stream toggles keep the user in the same channel.
            return
        async with self._locks.locked(change.guild_id):
            if change.before_channel_id is not None:
                await self.leave(
                    change.guild_id, change.before_channel_id, user_id=change.user_id
                )
            if change.after_channel_id is not None:
                await self.join(
                    change.guild_id,
                    change.user_id,
                    change.after_channel_id,
                    display_name=change.display_name,
                )

    # -- Leave step --

    async def leave(
        self, guild_id: str, channel_id: str, *, user_id: str | None = None
    ) -> None:
        """Count a user leaving *channel_id*; delete the room when it empties."""
        async with self._locks.locked(guild_id):
            if not self._registry.is_managed(channel_id):
                if not self._registry.is_lobby(channel_id):
                    logger.debug("Ignoring leave from unmanaged channel %s", channel_id)
                return

            count, ok = self._registry.decrement_occupancy(channel_id)
            if not ok:
                logger.debug("Ignoring leave from room %s, deletion in progress", channel_id)
                return
            logger.debug("User %s left room %s (%d remaining)", user_id, channel_id, count)
            if count == 0:
                await self.delete_room(channel_id, reason="empty")

    async def delete_room(self, channel_id: str, *, reason: str = "empty") -> bool:
        """Delete a managed room exactly once.

        Returns ``False`` when the room is untracked or already being
        deleted.
        """
        room = self._registry.begin_delete(channel_id)
        if room is None:
            return False

        remote_deleted = await self._remote_delete(channel_id)
        await self._ledger_remove(channel_id)
        self._registry.remove(channel_id)

        logger.info(
            "Voice room %s deleted (%s)%s",
            channel_id,
            reason,
            "" if remote_deleted else ", remote delete failed",
        )
        await self._notify(
            LifecycleEventType.ROOM_DELETED,
            room_id=channel_id,
            guild_id=room.guild_id,
            data={"reason": reason, "remote_deleted": remote_deleted},
        )
        return True

    async def purge(self, channel_id: str, *, reason: str = "stale") -> None:
        """Delete a ledger-recorded room that was never registered this run."""
        if self._registry.is_managed(channel_id):
            await self.delete_room(channel_id, reason=reason)
            return
        remote_deleted = await self._remote_delete(channel_id)
        await self._ledger_remove(channel_id)
        logger.info("Stale voice room %s purged (%s)", channel_id, reason)
        await self._notify(
            LifecycleEventType.ROOM_DELETED,
            room_id=channel_id,
            data={"reason": reason, "remote_deleted": remote_deleted},
        )

    # -- Join step --

    async def join(
        self,
        guild_id: str,
        user_id: str,
        channel_id: str,
        *,
        display_name: str | None = None,
    ) -> EphemeralRoom | None:
        """Count a user entering *channel_id*, creating a room if it is a lobby."""
        async with self._locks.locked(guild_id):
            if self._registry.is_managed(channel_id):
                if self._registry.owner_arrived(channel_id, user_id):
                    logger.debug("Owner %s arrived in room %s", user_id, channel_id)
                    return self._registry.get(channel_id)
                count, ok = self._registry.increment_occupancy(channel_id)
                if not ok:
                    logger.debug("Ignoring join into room %s, deletion in progress", channel_id)
                    return None
                logger.debug("User %s joined room %s (%d present)", user_id, channel_id, count)
                return self._registry.get(channel_id)

            if self._registry.is_lobby(channel_id):
                return await self.create_room(
                    guild_id, user_id, channel_id, display_name=display_name
                )
            return None

    async def create_room(
        self,
        guild_id: str,
        user_id: str,
        lobby_id: str,
        *,
        display_name: str | None = None,
    ) -> EphemeralRoom | None:
        """Create a room for *user_id* next to *lobby_id* and move them in."""
        try:
            lookup = await self._remote(
                "get_channel", self._directory.get_channel(lobby_id), channel_id=lobby_id
            )
            lobby = lookup.channel or ChannelInfo(id=lobby_id)
            name = self._room_name(await self._display_name(user_id, display_name))
            created = await self._remote(
                "create_room",
                self._directory.create_room(guild_id, name, lobby.parent_id, lobby.position),
                guild_id=guild_id,
                user_id=user_id,
            )
        except RemoteCallFailed as exc:
            logger.warning("No room created for user %s: %s", user_id, exc)
            return None

        if created.channel_id is None:
            logger.warning("Directory returned no room ID for user %s", user_id)
            return None

        room = EphemeralRoom(
            id=created.channel_id,
            guild_id=guild_id,
            owner_user_id=user_id,
            parent_id=lobby.parent_id,
            position=lobby.position,
            occupancy=1,
            state=RoomState.CREATING,
            awaiting_owner=True,
        )
        self._registry.upsert(room)
        await self._ledger_add(room.id)
        self._registry.mark_active(room.id)

        logger.info("Voice room '%s' (%s) created for %s", name, room.id, user_id)
        await self._notify(
            LifecycleEventType.ROOM_CREATED,
            room_id=room.id,
            guild_id=guild_id,
            user_id=user_id,
            data={"name": name, "lobby_id": lobby_id},
        )

        await self._finish_setup(room)
        return self._registry.get(room.id)

    async def _finish_setup(self, room: EphemeralRoom) -> None:
        """Place the room, move the owner in and grant them management rights."""
        assert room.guild_id is not None and room.owner_user_id is not None
        failed: list[str] = []

        try:
            await self._remote(
                "place_room",
                self._directory.place_room(room.id, room.parent_id, room.position),
                channel_id=room.id,
            )
        except RemoteCallFailed:
            failed.append("place_room")

        try:
            await self._remote(
                "move_user",
                self._directory.move_user(room.guild_id, room.owner_user_id, room.id),
                channel_id=room.id,
                user_id=room.owner_user_id,
            )
        except RemoteCallFailed:
            # A timed-out move may still land; the owner stays counted either way.
            failed.append("move_user")

        try:
            await self._remote(
                "set_owner_permissions",
                self._directory.set_owner_permissions(room.id, room.owner_user_id),
                channel_id=room.id,
                user_id=room.owner_user_id,
            )
        except RemoteCallFailed:
            failed.append("set_owner_permissions")

        if failed:
            await self._notify(
                LifecycleEventType.ROOM_DEGRADED,
                room_id=room.id,
                guild_id=room.guild_id,
                user_id=room.owner_user_id,
                data={"failed": failed},
            )

    async def _display_name(self, user_id: str, hint: str | None) -> str:
        if hint:
            return hint
        try:
            result = await self._remote("get_user", self._directory.get_user(user_id))
        except RemoteCallFailed:
            return user_id
        return result.user.display_name if result.user is not None else user_id

    # -- Remote and ledger calls --

    async def _remote(
        self,
        operation: str,
        call: Coroutine[Any, Any, DirectoryResult],
        *,
        channel_id: str | None = None,
        guild_id: str | None = None,
        user_id: str | None = None,
    ) -> DirectoryResult:
        """Await a directory call bounded by the remote timeout.

        Raises :class:`RemoteCallFailed` on a failed result, a timeout or an
        unexpected exception from the directory.
        """
        try:
            result = await asyncio.wait_for(call, timeout=self._remote_timeout)
        except TimeoutError:
            result = DirectoryResult(success=False, channel_id=channel_id, error="timeout")
        except Exception as exc:
            logger.exception("Directory %s raised", operation)
            result = DirectoryResult(success=False, channel_id=channel_id, error=repr(exc))

        if not result.success:
            logger.warning(
                "Directory %s failed for %s: %s",
                operation,
                channel_id or "-",
                result.error,
                extra={"operation": operation, "channel_id": channel_id, "error": result.error},
            )
            await self._notify(
                LifecycleEventType.REMOTE_CALL_FAILED,
                room_id=channel_id,
                guild_id=guild_id,
                user_id=user_id,
                data={"operation": operation, "error": result.error},
            )
            raise RemoteCallFailed(operation, channel_id, result.error)
        return result

    async def _remote_delete(self, channel_id: str) -> bool:
        try:
            await self._remote(
                "delete_room", self._directory.delete_room(channel_id), channel_id=channel_id
            )
        except RemoteCallFailed:
            return False
        return True

    async def _ledger_add(self, channel_id: str) -> None:
        try:
            await self._ledger.add(channel_id)
        except LedgerIOFailed as exc:
            await self._ledger_failed("add", channel_id, exc)

    async def _ledger_remove(self, channel_id: str) -> None:
        try:
            await self._ledger.remove(channel_id)
        except LedgerIOFailed as exc:
            await self._ledger_failed("remove", channel_id, exc)

    async def _ledger_failed(self, operation: str, channel_id: str, exc: LedgerIOFailed) -> None:
        logger.error(
            "Ledger %s failed for room %s: %s",
            operation,
            channel_id,
            exc,
            extra={"operation": operation, "channel_id": channel_id},
        )
        await self._notify(
            LifecycleEventType.LEDGER_FAILED,
            room_id=channel_id,
            data={"operation": operation, "error": str(exc)},
        )

    async def _notify(
        self,
        event_type: LifecycleEventType,
        *,
        room_id: str | None = None,
        guild_id: str | None = None,
        user_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        if self._notify_fn is None:
            return
        await self._notify_fn(
            LifecycleEvent(
                type=event_type,
                room_id=room_id,
                guild_id=guild_id,
                user_id=user_id,
                data=data or {},
            )
        )
