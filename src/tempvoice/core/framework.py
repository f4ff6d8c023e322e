"""TempVoice orchestrator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from tempvoice.config import TempVoiceConfig
from tempvoice.core.controller import LifecycleController
from tempvoice.core.dispatcher import GuildDispatcher
from tempvoice.core.locks import GuildLockManager
from tempvoice.core.reconcile import ReconciliationEngine
from tempvoice.core.registry import RoomRegistry
from tempvoice.directory.base import RoomDirectory
from tempvoice.directory.config import DiscordConfig
from tempvoice.errors import UnknownChannelReference
from tempvoice.ledger.base import RoomLedger
from tempvoice.ledger.sqlite import SQLiteLedger
from tempvoice.models.enums import LifecycleEventType
from tempvoice.models.events import (
    ConnectionReady,
    GatewayEvent,
    GuildSnapshot,
    LiveSnapshot,
    VoiceStateChange,
)
from tempvoice.models.lifecycle_event import LifecycleEvent
from tempvoice.models.report import ReconciliationReport
from tempvoice.models.room import EphemeralRoom
from tempvoice.sources.base import EventSource, SourceHealth

logger = logging.getLogger("tempvoice.framework")

LifecycleEventHandler = Callable[[LifecycleEvent], Awaitable[None]]


def _default_ledger(config: TempVoiceConfig) -> RoomLedger:
    if config.ledger_dsn:
        from tempvoice.ledger.postgres import PostgresLedger

        return PostgresLedger(dsn=config.ledger_dsn)
    return SQLiteLedger(config.ledger_path)


class TempVoice:
    """Central orchestrator tying the event source, registry, ledger and directory."""

    def __init__(
        self,
        config: TempVoiceConfig,
        *,
        ledger: RoomLedger | None = None,
        directory: RoomDirectory | None = None,
        source: EventSource | None = None,
        lock_manager: GuildLockManager | None = None,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            config: Startup configuration.
            ledger: Durable room ledger. Defaults to ``SQLiteLedger`` at
                ``config.ledger_path``, or ``PostgresLedger`` when
                ``config.ledger_dsn`` is set.
            directory: Remote channel directory. Defaults to
                ``DiscordRoomDirectory``.
            source: Gateway event source. Defaults to ``DiscordGatewaySource``.
            lock_manager: Per-guild locking backend. Defaults to
                ``InMemoryLockManager``.
        """
        self._config = config
        discord = DiscordConfig(bot_token=config.token)
        if directory is None:
            from tempvoice.directory.discord import DiscordRoomDirectory

            directory = DiscordRoomDirectory(discord)
        if source is None:
            from tempvoice.sources.discord_gateway import DiscordGatewaySource

            source = DiscordGatewaySource(discord)

        self._ledger = ledger or _default_ledger(config)
        self._directory = directory
        self._source = source
        self._registry = RoomRegistry(config.lobby_ids)
        self._controller = LifecycleController(
            self._registry,
            self._ledger,
            self._directory,
            room_name=config.room_name,
            lock_manager=lock_manager,
            remote_timeout=config.remote_timeout,
            notify=self._emit,
        )
        self._reconciler = ReconciliationEngine(
            self._controller, self._ledger, policy=config.policy
        )
        self._dispatcher = GuildDispatcher(self._controller.handle)
        self._event_handlers: list[tuple[str, LifecycleEventHandler]] = []

        # Startup state
        self._snapshot = LiveSnapshot()
        self._expected_guilds: set[str] | None = None
        self._pending: list[VoiceStateChange] = []
        self._reconciled = False
        self._report: ReconciliationReport | None = None
        self._reconcile_task: asyncio.Task[ReconciliationReport] | None = None
        self._snapshot_timer: asyncio.Task[None] | None = None
        self._source_task: asyncio.Task[None] | None = None
        self._stopped = False

    # -- Properties --

    @property
    def config(self) -> TempVoiceConfig:
        return self._config

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def controller(self) -> LifecycleController:
        return self._controller

    @property
    def dispatcher(self) -> GuildDispatcher:
        return self._dispatcher

    @property
    def rooms(self) -> list[EphemeralRoom]:
        """Snapshot of every tracked room."""
        return self._registry.rooms()

    @property
    def reconciled(self) -> bool:
        return self._reconciled

    @property
    def report(self) -> ReconciliationReport | None:
        """The startup reconciliation report, once it has run."""
        return self._report

    def get_room(self, channel_id: str) -> EphemeralRoom:
        """Return the tracked room *channel_id*.

        Raises:
            UnknownChannelReference: If the ID is not a managed room.
        """
        room = self._registry.get(channel_id)
        if room is None:
            raise UnknownChannelReference(f"Channel {channel_id} is not a managed room")
        return room

    async def healthcheck(self) -> SourceHealth:
        return await self._source.healthcheck()

    # -- Lifecycle events --

    def on(self, event_type: LifecycleEventType | str) -> Callable[..., Any]:
        """Decorator to register a lifecycle event handler filtered by type."""

        def decorator(fn: LifecycleEventHandler) -> LifecycleEventHandler:
            self._event_handlers.append((str(event_type), fn))
            return fn

        return decorator

    async def _emit(self, event: LifecycleEvent) -> None:
        for filter_type, handler in self._event_handlers:
            if filter_type == event.type:
                try:
                    await handler(event)
                except Exception:
                    logger.exception(
                        "Lifecycle event handler failed",
                        extra={"event_type": event.type, "room_id": event.room_id},
                    )

    # -- Event intake --

    async def handle_event(self, event: GatewayEvent) -> None:
        """Route one normalized gateway event."""
        if isinstance(event, VoiceStateChange):
            if self._reconciled:
                self._dispatcher.submit(event)
            else:
                self._pending.append(event)
        elif isinstance(event, GuildSnapshot):
            self._on_snapshot(event)
        elif isinstance(event, ConnectionReady):
            self._on_ready(event)

    def _on_ready(self, event: ConnectionReady) -> None:
        if event.resumed:
            logger.info("Gateway session resumed")
            return
        if self._expected_guilds is not None:
            # State is kept from the first session; occupancy drift is not resynced.
            logger.warning(
                "New gateway session %s after startup, not reconciling again", event.session_id
            )
            return
        self._expected_guilds = set(event.guild_ids)
        logger.info("Gateway ready, waiting for %d guild snapshot(s)", len(self._expected_guilds))
        if self._snapshot_complete():
            self._schedule_reconcile()
            return
        self._snapshot_timer = asyncio.get_running_loop().create_task(
            self._snapshot_deadline(), name="tempvoice_snapshot_timeout"
        )

    def _on_snapshot(self, snapshot: GuildSnapshot) -> None:
        if self._reconcile_task is not None:
            logger.debug("Ignoring late snapshot for guild %s", snapshot.guild_id)
            return
        self._snapshot.add(snapshot)
        if self._expected_guilds is not None and self._snapshot_complete():
            self._schedule_reconcile()

    def _snapshot_complete(self) -> bool:
        assert self._expected_guilds is not None
        return self._expected_guilds <= set(self._snapshot.guilds)

    async def _snapshot_deadline(self) -> None:
        await asyncio.sleep(self._config.snapshot_timeout)
        missing = sorted((self._expected_guilds or set()) - set(self._snapshot.guilds))
        logger.warning(
            "Snapshot timeout, reconciling without %d guild(s): %s",
            len(missing),
            ", ".join(missing),
        )
        self._schedule_reconcile()

    # -- Reconciliation --

    async def reconcile(self) -> ReconciliationReport:
        """Run startup reconciliation against the snapshots collected so far.

        Runs at most once per process; later calls return the first report.
        """
        return await self._schedule_reconcile()

    def _schedule_reconcile(self) -> asyncio.Task[ReconciliationReport]:
        if self._reconcile_task is None:
            timer = self._snapshot_timer
            if timer is not None and timer is not asyncio.current_task():
                timer.cancel()
            self._snapshot_timer = None
            self._reconcile_task = asyncio.get_running_loop().create_task(
                self._run_reconciliation(), name="tempvoice_reconcile"
            )
        return self._reconcile_task

    async def _run_reconciliation(self) -> ReconciliationReport:
        try:
            report = await self._reconciler.run(self._snapshot)
        except Exception:
            logger.exception("Reconciliation failed, starting with an empty registry view")
            report = ReconciliationReport(policy=self._reconciler.policy)
        self._report = report

        self._reconciled = True
        pending, self._pending = self._pending, []
        for change in pending:
            self._dispatcher.submit(change)
        if pending:
            logger.info("Replaying %d voice change(s) received during startup", len(pending))

        await self._emit(
            LifecycleEvent(
                type=LifecycleEventType.RECONCILIATION_COMPLETED,
                data=report.model_dump(mode="json"),
            )
        )
        return report

    # -- Run / stop --

    async def start(self) -> None:
        """Open the ledger and start the event source in the background."""
        if self._source_task is not None:
            return
        await self._ledger.init()
        self._source_task = asyncio.get_running_loop().create_task(
            self._run_source(), name=f"source:{self._source.name}"
        )
        logger.info("Started with %d lobby channel(s)", len(self._registry.lobby_ids))

    async def run(self) -> None:
        """Start, then block until the event source ends or ``stop()`` is called."""
        await self.start()
        assert self._source_task is not None
        task = self._source_task
        try:
            await asyncio.wait({task})
            error = None if task.cancelled() else task.exception()
            if error is not None:
                raise error
        finally:
            await self.stop()

    async def _run_source(self) -> None:
        try:
            logger.info("Starting source %s", self._source.name)
            await self._source.start(self.handle_event)
            logger.info("Source %s stopped cleanly", self._source.name)
        except asyncio.CancelledError:
            logger.debug("Source %s cancelled", self._source.name)
            raise
        except Exception:
            logger.exception("Source %s failed", self._source.name)
            raise

    async def stop(self) -> None:
        """Stop the source and workers, then close the directory and ledger."""
        if self._stopped:
            return
        self._stopped = True

        await self._source.stop()
        task, self._source_task = self._source_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

        for pending_task in (self._snapshot_timer, self._reconcile_task):
            if pending_task is not None and not pending_task.done():
                pending_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await pending_task

        await self._dispatcher.stop()
        await self._directory.close()
        await self._ledger.close()
        logger.info("Stopped with %d room(s) tracked", len(self._registry))

    async def __aenter__(self) -> TempVoice:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
