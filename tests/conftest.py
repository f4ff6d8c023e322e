"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from tempvoice.core.controller import LifecycleController
from tempvoice.core.registry import RoomRegistry
from tempvoice.directory.mock import MockRoomDirectory
from tempvoice.ledger.memory import InMemoryLedger
from tempvoice.models.directory import ChannelInfo, UserInfo
from tempvoice.models.lifecycle_event import LifecycleEvent

GUILD = "g1"
LOBBY = "lobby-1"
CATEGORY = "cat-1"


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay."""

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry([LOBBY])


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def directory() -> MockRoomDirectory:
    return MockRoomDirectory(
        channels={
            LOBBY: ChannelInfo(
                id=LOBBY, guild_id=GUILD, name="Join to create", parent_id=CATEGORY, position=3
            )
        },
        users={"u1": UserInfo(id="u1", username="alice", global_name="Alice")},
    )


@pytest.fixture
def events() -> list[LifecycleEvent]:
    return []


@pytest.fixture
def controller(
    registry: RoomRegistry,
    ledger: InMemoryLedger,
    directory: MockRoomDirectory,
    events: list[LifecycleEvent],
) -> LifecycleController:
    async def notify(event: LifecycleEvent) -> None:
        events.append(event)

    return LifecycleController(registry, ledger, directory, remote_timeout=0.2, notify=notify)
