"""Reconciliation report model."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tempvoice.models.enums import ReconciliationPolicy


class ReconciliationReport(BaseModel):
    """What a reconciliation pass did."""

    policy: ReconciliationPolicy = ReconciliationPolicy.OCCUPANCY
    recovered: dict[str, int] = Field(default_factory=dict)
    purged: list[str] = Field(default_factory=list)
    created: list[str] = Field(default_factory=list)
    # Room IDs left untouched: lobbies found in the ledger and rooms awaiting their owner.
    skipped: list[str] = Field(default_factory=list)
