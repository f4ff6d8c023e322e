"""Lifecycle event model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from tempvoice.models.enums import LifecycleEventType


class LifecycleEvent(BaseModel):
    """An event emitted by the lifecycle engine for observability."""

    type: LifecycleEventType
    room_id: str | None = None
    guild_id: str | None = None
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)
