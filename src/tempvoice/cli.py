"""Command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from collections.abc import Sequence

from pydantic import ValidationError

from tempvoice._version import __version__
from tempvoice.config import DEFAULT_ROOM_PATTERN, TempVoiceConfig
from tempvoice.core.framework import TempVoice
from tempvoice.errors import ConfigError
from tempvoice.models.enums import ReconciliationPolicy

logger = logging.getLogger("tempvoice.cli")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tempvoice",
        description="Create a private voice room for every user who joins a lobby channel.",
    )
    p.add_argument(
        "-t",
        "--token",
        default=os.environ.get("TEMPVOICE_TOKEN"),
        help="Bot token (env TEMPVOICE_TOKEN)",
    )
    p.add_argument(
        "-c",
        "--channels",
        default=os.environ.get("TEMPVOICE_LOBBIES", ""),
        help="Space-separated lobby channel IDs (env TEMPVOICE_LOBBIES)",
    )
    p.add_argument(
        "-rp",
        "--room-pattern",
        default=DEFAULT_ROOM_PATTERN,
        help="Room name pattern with one %%s for the display name",
    )
    p.add_argument("--db", default="store.db", help="SQLite ledger path")
    p.add_argument("--dsn", default=None, help="PostgreSQL DSN, used instead of --db")
    p.add_argument(
        "--policy",
        choices=[policy.value for policy in ReconciliationPolicy],
        default=ReconciliationPolicy.OCCUPANCY.value,
        help="Startup reconciliation policy",
    )
    p.add_argument("--remote-timeout", type=float, default=10.0, help="Seconds per API call")
    p.add_argument(
        "--snapshot-timeout",
        type=float,
        default=15.0,
        help="Seconds to wait for guild snapshots before reconciling",
    )
    p.add_argument("--log-level", default="INFO", help="Logging level")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def load_config(args: argparse.Namespace) -> TempVoiceConfig:
    """Build a :class:`TempVoiceConfig` from parsed arguments.

    Raises:
        ConfigError: If a setting is missing or invalid.
    """
    if not args.token:
        raise ConfigError("a bot token is required (--token or TEMPVOICE_TOKEN)")
    try:
        config = TempVoiceConfig(
            token=args.token,
            lobby_ids=args.channels,
            room_pattern=args.room_pattern,
            ledger_path=args.db,
            ledger_dsn=args.dsn,
            policy=args.policy,
            remote_timeout=args.remote_timeout,
            snapshot_timeout=args.snapshot_timeout,
        )
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    if not config.lobby_ids:
        raise ConfigError(
            "at least one lobby channel is required (--channels or TEMPVOICE_LOBBIES)"
        )
    return config


async def serve(config: TempVoiceConfig) -> None:
    """Run until SIGINT or SIGTERM."""
    app = TempVoice(config)
    loop = asyncio.get_running_loop()
    stopping: set[asyncio.Task[None]] = set()

    def _shutdown(signame: str) -> None:
        logger.info("Received %s, shutting down", signame)
        task = loop.create_task(app.stop())
        stopping.add(task)
        task.add_done_callback(stopping.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig.name)
    try:
        await app.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        if stopping:
            await asyncio.gather(*stopping)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args)
    except ConfigError as exc:
        parser.error(str(exc))

    asyncio.run(serve(config))
    return 0
