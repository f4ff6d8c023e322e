"""Durable ledger of managed room IDs."""

from tempvoice.ledger.base import RoomLedger
from tempvoice.ledger.memory import InMemoryLedger
from tempvoice.ledger.sqlite import SQLiteLedger

__all__ = ["InMemoryLedger", "RoomLedger", "SQLiteLedger"]
