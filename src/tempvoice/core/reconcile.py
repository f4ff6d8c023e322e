"""Startup reconciliation of the ledger against live voice presence."""

from __future__ import annotations

import logging

from tempvoice.core.controller import LifecycleController
from tempvoice.errors import LedgerIOFailed
from tempvoice.ledger.base import RoomLedger
from tempvoice.models.enums import ReconciliationPolicy, RoomState
from tempvoice.models.events import LiveSnapshot
from tempvoice.models.report import ReconciliationReport
from tempvoice.models.room import EphemeralRoom

logger = logging.getLogger("tempvoice.reconcile")


class ReconciliationEngine:
    """Rebuild the registry from the ledger and a live presence snapshot.

    The ledger only nominates candidate room IDs; the live snapshot decides
    whether a candidate is still in use. A candidate nobody occupies (or
    that the snapshot does not mention at all) is deleted and forgotten.
    Occupied candidates are registered with their live occupancy. Finally
    every user already waiting in a lobby gets a room, as if they had just
    joined.

    Running the engine again against an unchanged snapshot issues no new
    directory calls: rooms it created are still awaiting their owners, and
    those owners are skipped.
    """

    def __init__(
        self,
        controller: LifecycleController,
        ledger: RoomLedger,
        *,
        policy: ReconciliationPolicy = ReconciliationPolicy.OCCUPANCY,
    ) -> None:
        self._controller = controller
        self._registry = controller.registry
        self._ledger = ledger
        self._policy = policy

    @property
    def policy(self) -> ReconciliationPolicy:
        return self._policy

    async def run(self, snapshot: LiveSnapshot) -> ReconciliationReport:
        report = ReconciliationReport(policy=self._policy)
        candidates = await self._load_candidates()
        occupancy = snapshot.occupancy()

        for channel_id in candidates:
            if self._registry.is_lobby(channel_id):
                # A lobby must never be managed, let alone deleted.
                logger.warning("Ledger lists lobby %s as a room; forgetting it", channel_id)
                await self._forget(channel_id)
                report.skipped.append(channel_id)
                continue

            tracked = self._registry.get(channel_id)
            if tracked is not None and tracked.awaiting_owner:
                # Mid-creation: the owner has not been moved in yet.
                report.skipped.append(channel_id)
                continue

            live = occupancy.get(channel_id, 0)
            if self._policy == ReconciliationPolicy.PURGE and tracked is None:
                live = 0

            if live == 0:
                await self._controller.purge(channel_id, reason="stale")
                report.purged.append(channel_id)
                continue

            guild_id = snapshot.guild_of(channel_id)
            if tracked is None:
                room = EphemeralRoom(
                    id=channel_id,
                    guild_id=guild_id,
                    occupancy=live,
                    state=RoomState.ACTIVE,
                )
            else:
                room = tracked.model_copy(
                    update={"occupancy": live, "guild_id": tracked.guild_id or guild_id}
                )
            self._registry.upsert(room)
            report.recovered[channel_id] = live
            logger.info("Recovered voice room %s with %d occupant(s)", channel_id, live)

        for lobby_id in sorted(self._registry.lobby_ids):
            for guild_id, presence in snapshot.occupants(lobby_id):
                awaiting = self._registry.find_awaiting(guild_id, presence.user_id)
                if awaiting is not None:
                    if awaiting.id not in report.skipped:
                        report.skipped.append(awaiting.id)
                    continue
                room = await self._controller.join(
                    guild_id,
                    presence.user_id,
                    lobby_id,
                    display_name=presence.display_name,
                )
                if room is not None:
                    report.created.append(room.id)

        logger.info(
            "Reconciliation (%s) done: %d recovered, %d purged, %d created",
            self._policy,
            len(report.recovered),
            len(report.purged),
            len(report.created),
        )
        return report

    async def _load_candidates(self) -> list[str]:
        try:
            return await self._ledger.list_all()
        except LedgerIOFailed as exc:
            logger.error("Could not read ledger, recovering nothing: %s", exc)
            return []

    async def _forget(self, channel_id: str) -> None:
        try:
            await self._ledger.remove(channel_id)
        except LedgerIOFailed as exc:
            logger.error("Ledger remove failed for %s: %s", channel_id, exc)
