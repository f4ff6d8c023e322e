"""Startup configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

from tempvoice.models.enums import ReconciliationPolicy

DEFAULT_ROOM_PATTERN = "%s's Room"
MAX_ROOM_NAME_LENGTH = 100


class TempVoiceConfig(BaseModel):
    """Configuration for a tempvoice process."""

    token: SecretStr
    lobby_ids: frozenset[str] = Field(default_factory=frozenset)
    room_pattern: str = DEFAULT_ROOM_PATTERN
    ledger_path: Path = Path("store.db")
    ledger_dsn: str | None = None
    policy: ReconciliationPolicy = ReconciliationPolicy.OCCUPANCY
    remote_timeout: float = Field(default=10.0, gt=0)
    snapshot_timeout: float = Field(default=15.0, gt=0)

    @field_validator("lobby_ids", mode="before")
    @classmethod
    def _split_lobbies(cls, value: Any) -> Any:
        if isinstance(value, str):
            return frozenset(value.split())
        return value

    @field_validator("room_pattern")
    @classmethod
    def _one_placeholder(cls, value: str) -> str:
        if value.replace("%%", "").count("%") != 1 or "%s" not in value:
            raise ValueError("room_pattern needs exactly one %s placeholder")
        return value

    def room_name(self, display_name: str) -> str:
        """Render the room name for *display_name*."""
        return (self.room_pattern % display_name)[:MAX_ROOM_NAME_LENGTH]
