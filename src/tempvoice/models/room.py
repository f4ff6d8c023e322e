"""Ephemeral room model."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from tempvoice.models.enums import RoomState


class EphemeralRoom(BaseModel):
    """A voice room created and owned by tempvoice."""

    id: str
    guild_id: str | None = None
    owner_user_id: str | None = None
    parent_id: str | None = None
    position: int = 0
    occupancy: int = Field(default=0, ge=0)
    state: RoomState = RoomState.ACTIVE
    # The owner is counted at creation; their arrival event must not count twice.
    awaiting_owner: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_live(self) -> bool:
        return self.state not in (RoomState.DELETING, RoomState.GONE)
