"""All string enums for tempvoice."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class RoomState(StrEnum):
    CREATING = "creating"
    ACTIVE = "active"
    EMPTY = "empty"
    DELETING = "deleting"
    GONE = "gone"


@unique
class ReconciliationPolicy(StrEnum):
    """How startup reconciliation treats rooms recorded in the ledger.

    * ``OCCUPANCY`` keeps rooms the live snapshot shows as occupied.
    * ``PURGE`` deletes every recorded room and starts from a clean slate.
    """

    OCCUPANCY = "occupancy"
    PURGE = "purge"


@unique
class LifecycleEventType(StrEnum):
    ROOM_CREATED = "room_created"
    ROOM_DELETED = "room_deleted"
    ROOM_DEGRADED = "room_degraded"
    REMOTE_CALL_FAILED = "remote_call_failed"
    LEDGER_FAILED = "ledger_failed"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
