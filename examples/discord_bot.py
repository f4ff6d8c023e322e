"""Run tempvoice against Discord with lifecycle logging hooks.

Equivalent to the ``tempvoice`` command, but shows how to embed the
orchestrator and react to lifecycle events in your own code.

Requires:
    TEMPVOICE_TOKEN    bot token with Manage Channels and Move Members
    TEMPVOICE_LOBBIES  space-separated lobby channel IDs

Run with:
    uv run python examples/discord_bot.py
"""

from __future__ import annotations

import asyncio
import logging
import os

from tempvoice import LifecycleEvent, LifecycleEventType, TempVoice, TempVoiceConfig

logger = logging.getLogger("examples.discord_bot")


async def main() -> None:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    config = TempVoiceConfig(
        token=os.environ["TEMPVOICE_TOKEN"],
        lobby_ids=os.environ["TEMPVOICE_LOBBIES"],
        room_pattern="🔊 %s",
    )
    kit = TempVoice(config)

    @kit.on(LifecycleEventType.RECONCILIATION_COMPLETED)
    async def on_reconciled(event: LifecycleEvent) -> None:
        logger.info(
            "Recovered %d room(s), purged %d",
            len(event.data["recovered"]),
            len(event.data["purged"]),
        )

    @kit.on(LifecycleEventType.ROOM_DEGRADED)
    async def on_degraded(event: LifecycleEvent) -> None:
        logger.warning("Room %s set up partially: %s", event.room_id, event.data["failed"])

    try:
        await kit.run()
    finally:
        logger.info("Shut down with %d room(s) still tracked", len(kit.rooms))


if __name__ == "__main__":
    asyncio.run(main())
