"""Per-guild FIFO workers for voice-presence changes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from tempvoice.models.events import VoiceStateChange

logger = logging.getLogger("tempvoice.dispatcher")

ChangeHandler = Callable[[VoiceStateChange], Awaitable[None]]

_STOP = object()


class GuildDispatcher:
    """Feeds voice changes to a handler, one worker task per guild.

    Changes for one guild are handled strictly in arrival order. A slow or
    hung handler call only holds up its own guild. Handler exceptions are
    logged and the worker keeps going.
    """

    def __init__(self, handler: ChangeHandler, *, stop_timeout: float = 5.0) -> None:
        self._handler = handler
        self._stop_timeout = stop_timeout
        self._queues: dict[str, asyncio.Queue[VoiceStateChange | object]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    def submit(self, change: VoiceStateChange) -> None:
        """Enqueue *change* (non-blocking)."""
        if self._closed:
            logger.debug("Dispatcher stopped, dropping change for guild %s", change.guild_id)
            return
        queue = self._queues.get(change.guild_id)
        if queue is None:
            queue = self._queues[change.guild_id] = asyncio.Queue()
            self._workers[change.guild_id] = asyncio.get_running_loop().create_task(
                self._run(change.guild_id, queue), name=f"tempvoice_guild_{change.guild_id}"
            )
        queue.put_nowait(change)

    async def drain(self) -> None:
        """Wait until every queued change has been handled."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def stop(self) -> None:
        """Signal every worker to finish, cancelling those that do not."""
        self._closed = True
        for queue in self._queues.values():
            queue.put_nowait(_STOP)
        for guild_id, task in list(self._workers.items()):
            try:
                await asyncio.wait_for(task, timeout=self._stop_timeout)
            except (TimeoutError, asyncio.CancelledError):
                logger.warning("Worker for guild %s did not stop in time, cancelling", guild_id)
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._workers.clear()
        self._queues.clear()

    @property
    def guild_ids(self) -> list[str]:
        return list(self._workers)

    async def _run(self, guild_id: str, queue: asyncio.Queue[VoiceStateChange | object]) -> None:
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                assert isinstance(item, VoiceStateChange)
                await self._handler(item)
            except Exception:
                logger.exception(
                    "Voice change handler failed",
                    extra={"guild_id": guild_id},
                )
            finally:
                queue.task_done()
